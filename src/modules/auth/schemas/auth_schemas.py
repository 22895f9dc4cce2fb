from pydantic import BaseModel, EmailStr
from typing import Optional, List
from datetime import datetime
from modules.documents.models.user import UserRole

class LoginRequest(BaseModel):
    email: str
    password: str

class TokenResponse(BaseModel):
    access_token: Optional[str] = None
    token_type: str = "bearer"
    user_id: int
    user_name: Optional[str] = None
    user_role: str
    landing_path: str
    mfa_required: bool = False
    mfa_token: Optional[str] = None

class LoginStatusResponse(BaseModel):
    email: str
    blocked: bool
    remaining_seconds: int

class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    confirm_password: str
    full_name: Optional[str] = None

class VerifyEmailRequest(BaseModel):
    token: str

class ResendVerificationRequest(BaseModel):
    email: EmailStr

class ResendVerificationResponse(BaseModel):
    sent: bool
    remaining_seconds: int
    message: str

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None

class PasswordChangeRequest(BaseModel):
    new_password: str
    confirm_password: str

class MFAEnrollResponse(BaseModel):
    secret: str
    provisioning_uri: str

class MFAVerifyRequest(BaseModel):
    code: str

class MFAChallengeRequest(BaseModel):
    mfa_token: str
    code: str

class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    title: Optional[str] = None
    department: Optional[str] = None
    role: UserRole
    is_verified: bool
    is_totp_enabled: bool
    failed_login_attempts: int
    blocked: bool
    last_failed_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int = 1
    per_page: int = 10
    pages: int = 0
