from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.exceptions import envelope
from ...core.security import UserRole
from ...api.deps import get_current_user, get_admin_user, pagination, rate_limit_check
from ...services.auth_service import AuthService
from ...schemas.auth import (
    UserLogin, UserRegister, UserUpdate, UserResponse,
    RefreshTokenRequest, ChangePassword
)
from ...schemas.common import PageParams, Pagination
from ...models.user import User

router = APIRouter(prefix="/accounts", tags=["Accounts"])

def _user(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Register a new patient account."""
    result = AuthService(db).register_user(user_data)
    return envelope("User registered successfully", result.model_dump(mode="json"))

@router.post("/login")
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Authenticate user and return access tokens."""
    result = AuthService(db).authenticate_user(login_data)
    return envelope("Login successful", result.model_dump(mode="json"))

@router.post("/refresh")
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Refresh access token using refresh token."""
    result = AuthService(db).refresh_access_token(refresh_data.refresh_token)
    return envelope("Token refreshed successfully", result.model_dump(mode="json"))

@router.post("/logout")
async def logout(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Logout user by revoking refresh token."""
    AuthService(db).logout_user(refresh_data.refresh_token)
    return envelope("Successfully logged out")

@router.get("/me")
async def get_profile(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return envelope("Profile retrieved successfully", {"user": _user(current_user)})

@router.put("/me")
async def update_profile(
    update_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    user = AuthService(db).update_profile(current_user, update_data)
    return envelope("Profile updated successfully", {"user": _user(user)})

@router.post("/me/password")
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    AuthService(db).change_password(
        current_user, password_data.current_password, password_data.new_password
    )
    return envelope("Password changed successfully")

@router.post("/me/deactivate")
async def deactivate_account(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    AuthService(db).deactivate_account(current_user)
    return envelope("Account deactivated successfully")

# Admin routes
@router.get("")
async def list_users(
    role: Optional[UserRole] = None,
    page: PageParams = Depends(pagination),
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    """List all users (admin only)."""
    users, total = AuthService(db).list_users(page.offset, page.limit, role)
    return envelope("Users retrieved successfully", {
        "users": [_user(user) for user in users],
        "pagination": Pagination.build(page.page, page.limit, total).model_dump(),
    })
