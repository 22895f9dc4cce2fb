from .auth_schemas import (
    LoginRequest, TokenResponse, LoginStatusResponse, SignupRequest,
    VerifyEmailRequest, ResendVerificationRequest, ResendVerificationResponse,
    ProfileUpdate, PasswordChangeRequest, MFAEnrollResponse, MFAVerifyRequest,
    MFAChallengeRequest, UserResponse, UserListResponse
)

__all__ = [
    'LoginRequest', 'TokenResponse', 'LoginStatusResponse', 'SignupRequest',
    'VerifyEmailRequest', 'ResendVerificationRequest', 'ResendVerificationResponse',
    'ProfileUpdate', 'PasswordChangeRequest', 'MFAEnrollResponse', 'MFAVerifyRequest',
    'MFAChallengeRequest', 'UserResponse', 'UserListResponse'
]
