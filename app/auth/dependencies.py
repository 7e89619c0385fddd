"""Route guards resolving the bearer token to a ``User``."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import ACCESS, decode_token, token_subject
from app.database import get_db
from app.models.user import User

# Missing Authorization header -> 403 from HTTPBearer itself
_bearer_scheme = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve an access token to its user.

    The account is always re-read, so deactivation and role changes apply to
    tokens that are still unexpired. Any failure is a 401.
    """
    try:
        user_id = token_subject(decode_token(credentials.credentials), ACCESS)
    except JWTError:
        user_id = None

    user = await db.get(User, user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_active_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return user


async def require_admin(user: User = Depends(get_current_active_user)) -> User:
    """Administrators only; used for system operations such as the status sweep."""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return user
