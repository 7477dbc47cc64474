import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from routejobs.core.db import get_db
from routejobs.core.security import decode_token
from routejobs.models.user import User, UserRole

logger = logging.getLogger("auth")

bearer = HTTPBearer(auto_error=False)

OPERATOR_ROLES = (UserRole.DISPATCHER, UserRole.ADMIN)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user whose role still matches the token."""
    if creds is None:
        raise _unauthorized("Not authenticated")

    try:
        claims = decode_token(creds.credentials)
    except JWTError:
        raise _unauthorized("Invalid token")

    user_id = claims.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise _unauthorized("User inactive or not found")

    # a role change on the account invalidates tokens issued for the old role
    if claims.get("role") and claims["role"] != user.role.value:
        logger.info("Rejected stale %s token for user %s (now %s)", claims["role"], user.id, user.role.value)
        raise _unauthorized("Token role is out of date")
    return user


def require_roles(*roles: UserRole):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            logger.debug("User %s (%s) denied; needs one of %s", user.id, user.role.value, [r.value for r in roles])
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return _guard


require_operator = require_roles(*OPERATOR_ROLES)
require_driver = require_roles(UserRole.DRIVER)
