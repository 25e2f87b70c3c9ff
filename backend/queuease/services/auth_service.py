"""
Bearer token handling for the auth collaborator's JWTs.

Users are registered and logged in elsewhere; the queue only trusts the
``sub`` and ``role`` claims of the tokens that collaborator signs.
"""

from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt

from ..config import get_settings
from ..models.user import TokenData, User, UserRole

settings = get_settings()

DEFAULT_EXPIRY = timedelta(hours=24)


class AuthService:
    """JWT claim decoding."""

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token."""
        to_encode = data.copy()
        expire = datetime.utcnow() + (expires_delta or DEFAULT_EXPIRY)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate JWT token."""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            return None

        user_id = payload.get("sub")
        role = payload.get("role")
        if user_id is None or role not in [r.value for r in UserRole]:
            return None
        return TokenData(user_id=user_id, email=payload.get("email"), role=UserRole(role))

    @classmethod
    def get_current_user(cls, token: str) -> Optional[User]:
        """Get current user from token."""
        token_data = cls.decode_token(token)
        if not token_data:
            return None

        return User(_id=token_data.user_id, email=token_data.email, role=token_data.role)
