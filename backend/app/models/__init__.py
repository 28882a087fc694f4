from backend.app.models.refresh_token import RefreshToken
from backend.app.models.role import Role, user_roles
from backend.app.models.user import User

__all__ = ["RefreshToken", "Role", "User", "user_roles"]
