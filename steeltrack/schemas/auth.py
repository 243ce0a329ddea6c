"""Access code and session schemas"""

from pydantic import BaseModel, Field


class AccessCodeRequest(BaseModel):
    access_code: str = Field(..., min_length=4, max_length=128)


class ChangeAccessCodeRequest(BaseModel):
    current_code: str = Field(..., min_length=1, max_length=128)
    new_code: str = Field(..., min_length=4, max_length=128)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class RekeyResponse(BaseModel):
    lots_updated: int
    sales_updated: int
    sessions_closed: int
    access_token: str
    token_type: str = "bearer"
