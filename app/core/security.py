# core/security.py
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Sequence

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from app.constants import UserRole
from app.core.exceptions import NotAuthorizedError
from app.database import get_db
from app.crud.crud import crud_user

# Environment variables for JWT
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

if SECRET_KEY is None:
    raise ValueError("SECRET_KEY environment variable is not set.")

# Tokens are issued by the login service; this backend only decodes them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/login", auto_error=False)

class TokenData(BaseModel):
    email: Optional[EmailStr] = None
    user_id: Optional[int] = None
    role: Optional[UserRole] = None
    law_firm_id: Optional[int] = Field(None, description="Resolved from the user's law firm membership, not from the token.")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token is None:
        raise credentials_exception

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email: str = payload.get("sub")
        user_id: int = payload.get("user_id")
        role: str = payload.get("role")

        if email is None or user_id is None or role is None:
            raise credentials_exception

        token_data = TokenData(email=email, user_id=user_id, role=UserRole(role))
    except JWTError:
        raise credentials_exception
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = crud_user.get(db, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive or deleted.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token_data


async def get_current_law_firm_context(
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> TokenData:
    """
    Dependency that ensures the current user belongs to an active law firm.
    The first membership wins when a user belongs to several firms.
    """
    law_firm_ids = crud_user.get_law_firm_ids(db, current_user.user_id)
    if not law_firm_ids:
        raise NotAuthorizedError()
    current_user.law_firm_id = law_firm_ids[0]
    return current_user


class HasRole:
    """
    Dependency class to restrict an endpoint to a set of staff roles.
    """
    def __init__(self, roles: Sequence[UserRole]):
        self.roles = tuple(roles)

    async def __call__(self, current_user: TokenData = Depends(get_current_law_firm_context)):
        if current_user.role not in self.roles:
            allowed = ", ".join(role.value for role in self.roles)
            raise NotAuthorizedError(f"Not enough privileges: Requires one of the roles {allowed}.")
        return current_user
