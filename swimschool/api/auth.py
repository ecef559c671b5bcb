"""Operator login."""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from swimschool.api.dependencies import CurrentOperator
from swimschool.core.security import Operator, Token, authenticate_operator, create_access_token
from swimschool.core.settings import settings

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=Token)
async def login(form: Annotated[OAuth2PasswordRequestForm, Depends()]) -> Token:
    """Exchange admin credentials for a bearer token."""
    operator = authenticate_operator(form.username, form.password)
    if operator is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = create_access_token(
        {"sub": operator.username},
        timedelta(minutes=settings.access_token_expire_minutes),
    )
    return Token(access_token=token, token_type="bearer")


@router.get("/me", response_model=Operator)
async def read_current_operator(operator: CurrentOperator) -> Operator:
    return operator
