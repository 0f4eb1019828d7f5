# ============================================================
# tuition/core/security.py
#
# Access tokens are issued by the main school suite at login.
# This service only VERIFIES them, for two reasons:
#
# 1. Only finance staff may run a fee setup (role guard).
# 2. Every audit entry records who did it. The display name
#    comes from the token, never from the request body.
#
# How it flows:
#   Request → get_current_user() verifies JWT
#           → returns CurrentUser (user id, role, display name)
#           → require_roles() checks the role if the endpoint asks
# ============================================================

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

from tuition.core.config import settings

bearer_scheme = HTTPBearer()

FINANCE_ROLES = ("admin", "accountant")


class TokenData(BaseModel):
    """Claims we read from the suite's access token."""
    user_id: str
    role: str                   # admin | accountant | staff
    full_name: str
    email: Optional[str] = None


class CurrentUser(BaseModel):
    user_id: str
    role: str
    full_name: str
    email: Optional[str] = None

    @property
    def audit_name(self) -> str:
        """Identity written into audit entries."""
        return self.full_name or self.email or self.user_id


def verify_token(token: str) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        if payload.get("type", "access") != "access":
            raise credentials_exception
        return TokenData(**payload)
    except (JWTError, ValueError):
        raise credentials_exception


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:
    token_data = verify_token(credentials.credentials)
    return CurrentUser(**token_data.model_dump())


def require_roles(*allowed_roles: str):
    """
    Dependency factory:
        user: CurrentUser = Depends(require_roles("admin", "accountant"))
    """
    async def check_role(
        current_user: CurrentUser = Depends(get_current_user)
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {' or '.join(allowed_roles)}",
            )
        return current_user
    return check_role
