from pydantic import BaseModel, EmailStr, Field, model_validator
from datetime import datetime
from typing import Literal

class UserCreate(BaseModel):
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=8, max_length=72, description="Plain password (will be hashed). Minimum 8 characters.")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")

class UserResponse(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: Literal["admin", "manager", "user"]
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

class RefreshRequest(BaseModel):
    refresh_token: str

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=72)
    new_password: str = Field(..., min_length=8, max_length=72, description="Minimum 8 characters.")
    confirm_password: str = Field(..., min_length=8, max_length=72)

    @model_validator(mode="after")
    def check_confirmation(self):
        if self.new_password != self.confirm_password:
            raise ValueError("confirm_password does not match new_password")
        return self
