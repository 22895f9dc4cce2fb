from modules.documents.models.user import UserRole

ROLE_PERMISSIONS = {
    UserRole.USER: ["upload", "send", "sign", "report"],
    UserRole.ADMIN: ["upload", "send", "sign", "report", "audit", "manage"],
}

def can_perform_action(user_role: UserRole, action: str) -> bool:
    return action in ROLE_PERMISSIONS.get(user_role, [])
