"""API dependencies for authentication and database access."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.database import get_db
from swimschool.core.security import Operator, verify_token
from swimschool.core.settings import settings

security = HTTPBearer()


async def get_current_operator(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> Operator:
    """Resolve the operator behind a bearer token."""
    token_data = verify_token(credentials.credentials)
    if token_data is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Operator(
        username=token_data.username,
        email=token_data.username,
        is_admin=token_data.username == settings.admin_email,
    )


async def get_current_admin(
    operator: Annotated[Operator, Depends(get_current_operator)]
) -> Operator:
    """Coverage mutations are admin-only."""
    if not operator.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return operator


# Dependency aliases for easier use
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentOperator = Annotated[Operator, Depends(get_current_operator)]
AdminUser = Annotated[Operator, Depends(get_current_admin)]
