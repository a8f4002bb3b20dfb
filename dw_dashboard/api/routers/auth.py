"""POST /login, POST /crear-usuario -- credential endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from dw_dashboard.auth import service
from dw_dashboard.db.users import get_user_store

router = APIRouter()



class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str


class CreateUserRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)
    rol: str | None = Field(None, description="Role stored in the session claim")


class MessageResponse(BaseModel):
    message: str



@router.post("/login", response_model=LoginResponse)
def login_endpoint(req: LoginRequest, store=Depends(get_user_store)):
    """Verify credentials and return a signed session token."""
    token = service.login(req.username, req.password, store)
    return LoginResponse(token=token)


@router.post("/crear-usuario", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def create_user_endpoint(req: CreateUserRequest, store=Depends(get_user_store)):
    """Provision a user with a bcrypt-hashed password."""
    service.create_user(req.username, req.password, req.rol, store)
    return MessageResponse(message="User created.")
