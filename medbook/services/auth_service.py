from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import Optional
import logging

from ..core.config import settings
from ..core.database import transaction
from ..models.user import User, RefreshToken
from ..core.exceptions import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from ..core.security import (
    verify_password, get_password_hash, create_token_pair,
    verify_token, hash_token, Token, UserRole, REFRESH
)
from ..schemas.auth import UserLogin, UserRegister, UserUpdate, TokenResponse, UserResponse

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_TAKEN = "User with this email already exists"

class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def register_user(self, user_data: UserRegister) -> TokenResponse:
        """Register a new patient account and sign it in."""
        if self.email_taken(user_data.email):
            raise ConflictError(EMAIL_TAKEN)

        new_user = User(
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            name=user_data.name,
            phone=user_data.phone,
            date_of_birth=user_data.date_of_birth,
            gender=user_data.gender,
            address=user_data.address,
            role=UserRole.PATIENT,
            is_active=True,
        )

        try:
            with transaction(self.db):
                self.db.add(new_user)
                self.db.flush()
                tokens = self.issue_tokens(new_user)
        except IntegrityError:
            # A concurrent registration claimed the email after the check
            raise ConflictError(EMAIL_TAKEN)
        self.db.refresh(new_user)

        logger.info(f"Registered patient account {new_user.id}")
        return self._token_response(tokens, new_user)

    def authenticate_user(self, login_data: UserLogin) -> TokenResponse:
        """Authenticate user and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        # Unknown email, inactive account and bad password look the same
        if (
            not user
            or not user.is_active
            or not verify_password(login_data.password, user.password_hash)
        ):
            raise UnauthorizedError(INVALID_CREDENTIALS)

        user.last_login = datetime.utcnow()
        tokens = self.issue_tokens(user)
        self.db.commit()

        return self._token_response(tokens, user)

    def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Rotate the token pair using a stored refresh token."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != REFRESH:
            raise UnauthorizedError("Invalid refresh token")

        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.is_revoked == False,
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise UnauthorizedError("Invalid or expired refresh token")

        user = self.db.query(User).filter(User.id == token_payload.sub).first()
        if not user or not user.is_active:
            raise UnauthorizedError("User not found or inactive")

        stored_token.is_revoked = True
        tokens = self.issue_tokens(user)
        self.db.commit()

        return self._token_response(tokens, user)

    def logout_user(self, refresh_token: str) -> None:
        """Revoke a single refresh token."""
        self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token)
        ).update({"is_revoked": True})
        self.db.commit()

    def get_profile(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user: User, update_data: UserUpdate) -> User:
        """Patch semantics: only fields present in the request are written."""
        for field, value in update_data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)

        self.db.commit()
        self.db.refresh(user)
        return user

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise BadRequestError("Current password is incorrect")

        user.password_hash = get_password_hash(new_password)
        self.db.commit()

    def deactivate_account(self, user: User) -> None:
        """Soft delete: the row stays, sign-in and refresh stop working."""
        user.is_active = False
        self._revoke_all_refresh_tokens(user.id)
        self.db.commit()
        logger.info(f"Deactivated account {user.id}")

    def list_users(self, offset: int, limit: int, role: Optional[UserRole] = None):
        query = self.db.query(User)
        if role:
            query = query.filter(User.role == role)

        total = query.count()
        users = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
        return users, total

    def email_taken(self, email: str) -> bool:
        return self.db.query(User.id).filter(User.email == email).first() is not None

    def issue_tokens(self, user: User) -> Token:
        """Create a token pair and store the refresh half."""
        tokens = create_token_pair(user.id, user.email, user.role)
        self._store_refresh_token(user.id, tokens.refresh_token)
        return tokens

    def _token_response(self, tokens: Token, user: User) -> TokenResponse:
        return TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            user=UserResponse.model_validate(user)
        )

    def _revoke_all_refresh_tokens(self, user_id: int):
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

    def _store_refresh_token(self, user_id: int, refresh_token: str):
        """Store refresh token in database."""
        token_payload = verify_token(refresh_token)
        expires_at = datetime.utcfromtimestamp(token_payload.exp) if token_payload and token_payload.exp else datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        # One live refresh token per user
        self._revoke_all_refresh_tokens(user_id)

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            expires_at=expires_at
        ))
