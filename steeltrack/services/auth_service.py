"""
Authentication Service
Access code setup, login/logout and access code rotation
"""
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from steeltrack.core.crypto import FieldCipher
from steeltrack.core.exceptions import AuthenticationError, BusinessLogicError
from steeltrack.core.logging import get_logger
from steeltrack.core.security import (
    AccessContext, SessionRegistry, create_access_token, hash_access_code,
    session_registry, verify_access_code
)
from steeltrack.models import AccessCredential
from steeltrack.services.encryption_service import EncryptionService

security_logger = get_logger("security")


class AuthService:
    """
    One application-wide access code. It unlocks the API and doubles as
    the passphrase for field encryption.
    """

    def __init__(
        self,
        db: Session,
        registry: Optional[SessionRegistry] = None,
        cipher: Optional[FieldCipher] = None,
    ):
        self.db = db
        self.registry = registry if registry is not None else session_registry
        self.cipher = cipher or FieldCipher()

    def has_credential(self) -> bool:
        return self.db.execute(select(AccessCredential.id).limit(1)).first() is not None

    def setup_access_code(self, code: str) -> AccessCredential:
        """Store the first access code; refused once one exists"""
        if self.has_credential():
            raise BusinessLogicError("An access code is already configured")
        credential = AccessCredential(code_hash=hash_access_code(code))
        self.db.add(credential)
        self.db.commit()
        self.db.refresh(credential)
        security_logger.info("Access code configured")
        return credential

    def verify(self, code: str) -> bool:
        """Check a code against the stored hashes, upgrading legacy hashes on match"""
        for credential in self.db.execute(select(AccessCredential)).scalars():
            valid, new_hash = verify_access_code(code, credential.code_hash)
            if not valid:
                continue
            if new_hash:
                credential.code_hash = new_hash
                self.db.commit()
                security_logger.info("Upgraded legacy access code hash")
            return True
        return False

    def open_session(self, code: str) -> Tuple[str, str]:
        context = AccessContext(code, self.cipher)
        session_id = self.registry.open(context)
        token = create_access_token({"sub": "steeltrack", "sid": session_id})
        return token, session_id

    def login(self, code: str) -> Tuple[str, str]:
        """
        Verify the code and open a session

        Returns (token, session_id)
        """
        if not self.verify(code):
            security_logger.warning("Failed login attempt")
            raise AuthenticationError("Invalid access code")
        token, session_id = self.open_session(code)
        security_logger.info("Login successful")
        return token, session_id

    def logout(self, session_id: str) -> bool:
        """Close the session and forget its access code"""
        closed = self.registry.close(session_id)
        if closed:
            security_logger.info("Logout")
        return closed

    def change_access_code(self, current_code: str, new_code: str) -> Tuple[Dict[str, Any], str]:
        """
        Re-encrypt all data under a new code and replace the credential.

        Every open session is closed since their contexts hold the old code.
        Returns (counts, token) where token belongs to a fresh session under
        the new code.
        """
        if not self.verify(current_code):
            raise AuthenticationError("Current access code is incorrect")
        if new_code == current_code:
            raise BusinessLogicError("New access code must differ from the current one")

        old_context = AccessContext(current_code, self.cipher)
        new_context = AccessContext(new_code, self.cipher)
        try:
            counts = EncryptionService(self.db, old_context).rekey(new_context, commit=False)
            for credential in self.db.execute(select(AccessCredential)).scalars():
                self.db.delete(credential)
            self.db.flush()
            self.db.add(AccessCredential(code_hash=hash_access_code(new_code)))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        finally:
            old_context.close()
            new_context.close()

        counts["sessions_closed"] = self.registry.close_all()
        token, _ = self.open_session(new_code)
        security_logger.info("Access code changed and data re-keyed")
        return counts, token
