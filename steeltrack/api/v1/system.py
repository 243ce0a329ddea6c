"""
System API endpoints
Encryption diagnostics and maintenance
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from steeltrack.api import deps
from steeltrack.core.security import AccessContext
from steeltrack.schemas.system import EncryptionStatusResponse, EncryptLegacyResponse
from steeltrack.services.encryption_service import EncryptionService

router = APIRouter()


@router.get("/encryption-status", response_model=EncryptionStatusResponse)
def encryption_status(
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Counts of encrypted and plaintext sensitive values"""
    return EncryptionService(db, context).encryption_status()


@router.post("/encrypt-legacy", response_model=EncryptLegacyResponse)
def encrypt_legacy(
    db: Session = Depends(deps.get_db),
    context: AccessContext = Depends(deps.get_access_context),
):
    """Encrypt every sensitive value still stored as plaintext"""
    return EncryptionService(db, context).encrypt_legacy_rows()
