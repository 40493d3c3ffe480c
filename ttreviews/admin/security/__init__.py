from ttreviews.admin.security.admin_session import (
    AdminAuthError,
    AdminIdentity,
    AdminSessionVerifier,
    require_role,
)

__all__ = ["AdminAuthError", "AdminIdentity", "AdminSessionVerifier", "require_role"]
