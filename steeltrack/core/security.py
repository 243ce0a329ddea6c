"""
Security utilities for SteelTrack
Access code hashing, session tokens and the per-session access context
"""
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import settings
from .crypto import FieldCipher
from .exceptions import AuthenticationError
from .logging import get_logger

security_logger = get_logger("security")

# Access code hashing; hex_sha256 verifies hashes written by older releases
# and is flagged for upgrade on the next successful login.
code_context = CryptContext(
    schemes=["pbkdf2_sha256", "hex_sha256"],
    deprecated=["hex_sha256"],
)


def hash_access_code(code: str) -> str:
    """Generate access code hash"""
    return code_context.hash(code)


def verify_access_code(code: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """
    Verify an access code against a stored hash

    Returns (valid, replacement_hash); replacement_hash is set when the
    stored hash uses a deprecated scheme.
    """
    try:
        return code_context.verify_and_update(code, hashed)
    except ValueError:
        # Unrecognised hash format
        return False, None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify JWT access token and return payload"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Could not validate session token") from e


class AccessContext:
    """
    Holds the active access code and the cipher bound to it.

    Every service that reads or writes sensitive fields takes one of these
    explicitly. close() forgets the code; a closed context cannot encrypt
    or decrypt.
    """

    def __init__(self, access_code: str, cipher: Optional[FieldCipher] = None):
        if not access_code:
            raise AuthenticationError("Access code is required")
        self._access_code = access_code
        self.cipher = cipher or FieldCipher()

    @property
    def is_open(self) -> bool:
        return self._access_code is not None

    @property
    def access_code(self) -> str:
        if self._access_code is None:
            raise AuthenticationError("Access context has been closed")
        return self._access_code

    def encrypt(self, plaintext: str) -> str:
        return self.cipher.encrypt(plaintext, self.access_code)

    def decrypt(self, blob: str) -> str:
        return self.cipher.decrypt(blob, self.access_code)

    def close(self):
        self._access_code = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SessionRegistry:
    """In-process map of session id to access context"""

    def __init__(self, ttl_minutes: Optional[int] = None):
        self.ttl = timedelta(minutes=ttl_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self._sessions: Dict[str, Tuple[AccessContext, datetime]] = {}
        self._lock = threading.Lock()

    def open(self, context: AccessContext) -> str:
        session_id = secrets.token_urlsafe(24)
        now = datetime.now(timezone.utc)
        with self._lock:
            expired = [
                sid for sid, (ctx, expires_at) in self._sessions.items()
                if expires_at <= now or not ctx.is_open
            ]
            stale = [self._sessions.pop(sid)[0] for sid in expired]
            self._sessions[session_id] = (context, now + self.ttl)
        for ctx in stale:
            ctx.close()
        if stale:
            security_logger.info(f"Purged {len(stale)} expired session(s)")
        security_logger.info(f"Session opened: {session_id[:8]}")
        return session_id

    def get(self, session_id: str) -> AccessContext:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                raise AuthenticationError("Session not found or logged out")
            context, expires_at = entry
            if expires_at <= datetime.now(timezone.utc) or not context.is_open:
                del self._sessions[session_id]
                context.close()
                raise AuthenticationError("Session expired")
        return context

    def close(self, session_id: str) -> bool:
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False
        entry[0].close()
        security_logger.info(f"Session closed: {session_id[:8]}")
        return True

    def close_all(self, keep: Optional[str] = None) -> int:
        """Close every session except keep; returns the number closed"""
        with self._lock:
            doomed = [sid for sid in self._sessions if sid != keep]
            entries = [self._sessions.pop(sid) for sid in doomed]
        for context, _ in entries:
            context.close()
        return len(entries)

    def __len__(self):
        return len(self._sessions)


session_registry = SessionRegistry()
