"""
Authentication API endpoints
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from steeltrack.api import deps
from steeltrack.core.config import settings
from steeltrack.schemas.auth import AccessCodeRequest, ChangeAccessCodeRequest, RekeyResponse, Token
from steeltrack.services.auth_service import AuthService

router = APIRouter()


@router.get("/status")
def auth_status(db: Session = Depends(deps.get_db)):
    """Whether an access code has been configured yet"""
    return {"configured": AuthService(db).has_credential()}


@router.post("/setup", status_code=status.HTTP_201_CREATED)
def setup_access_code(request: AccessCodeRequest, db: Session = Depends(deps.get_db)):
    """
    Configure the application access code. Only allowed once.
    """
    AuthService(db).setup_access_code(request.access_code)
    return {"message": "Access code configured"}


@router.post("/login", response_model=Token)
def login(request: AccessCodeRequest, db: Session = Depends(deps.get_db)):
    """
    Unlock the application with the access code.
    """
    token, _ = AuthService(db).login(request.access_code)
    return Token(access_token=token, expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)


@router.post("/logout")
def logout(
    session: deps.CurrentSession = Depends(deps.get_current_session),
    db: Session = Depends(deps.get_db),
):
    """End the current session and forget its access code"""
    AuthService(db).logout(session.session_id)
    return {"message": "Logged out"}


@router.post("/change-code", response_model=RekeyResponse)
def change_access_code(
    request: ChangeAccessCodeRequest,
    session: deps.CurrentSession = Depends(deps.get_current_session),
    db: Session = Depends(deps.get_db),
):
    """
    Replace the access code and re-encrypt all stored data under it.

    All sessions are closed; the returned token opens a new one.
    """
    counts, token = AuthService(db).change_access_code(request.current_code, request.new_code)
    return RekeyResponse(**counts, access_token=token)
