from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.dependencies import get_current_user, get_client_ip
from modules.auth.services.account_service import AccountService
from modules.auth.services.login_service import LoginService, get_login_service
from modules.auth.services.mfa_service import MFAService
from modules.auth.schemas.auth_schemas import (
    LoginRequest, TokenResponse, LoginStatusResponse, SignupRequest,
    VerifyEmailRequest, ResendVerificationRequest, ResendVerificationResponse,
    ProfileUpdate, PasswordChangeRequest, MFAEnrollResponse, MFAVerifyRequest,
    MFAChallengeRequest, UserResponse
)
from modules.documents.models.user import User
from modules.notifications.services.notification_service import NotificationService, get_notification_service

router = APIRouter(prefix="/auth", tags=["authentication"])

@router.post("/login", response_model=TokenResponse)
def login(
    login_data: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    service: LoginService = Depends(get_login_service)
):
    """Endpoint de login con control de intentos fallidos"""
    return service.login(db, login_data.email, login_data.password, get_client_ip(request))

@router.get("/login-status", response_model=LoginStatusResponse)
def login_status(
    email: str = Query(..., description="Email a consultar"),
    db: Session = Depends(get_db),
    service: LoginService = Depends(get_login_service)
):
    """Estado de bloqueo y enfriamiento para un email"""
    return service.login_status(db, email)

@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def signup(
    data: SignupRequest,
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service)
):
    return AccountService.signup(db, notifications, data.email, data.password,
                                 data.confirm_password, data.full_name)

@router.post("/verify-email", response_model=UserResponse)
def verify_email(data: VerifyEmailRequest, db: Session = Depends(get_db)):
    return AccountService.verify_email(db, data.token)

@router.post("/resend-verification", response_model=ResendVerificationResponse)
def resend_verification(
    data: ResendVerificationRequest,
    db: Session = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service)
):
    return AccountService.resend_verification(db, notifications, data.email)

@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Obtener información del usuario actual"""
    return current_user

@router.put("/me", response_model=UserResponse)
def update_current_user(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return AccountService.update_profile(db, current_user, data.model_dump(exclude_unset=True))

@router.post("/password")
def change_password(
    data: PasswordChangeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    AccountService.change_password(db, current_user, data.new_password, data.confirm_password)
    return {"message": "Password updated successfully."}

@router.post("/mfa/enroll", response_model=MFAEnrollResponse)
def mfa_enroll(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return MFAService.enroll(db, current_user)

@router.post("/mfa/verify", response_model=UserResponse)
def mfa_verify(
    data: MFAVerifyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return MFAService.verify_enrollment(db, current_user, data.code)

@router.post("/mfa/challenge", response_model=TokenResponse)
def mfa_challenge(data: MFAChallengeRequest, db: Session = Depends(get_db)):
    return MFAService.challenge(db, data.mfa_token, data.code)
