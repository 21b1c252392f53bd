from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi.security import HTTPBearer
from pydantic import BaseModel
import hashlib
import secrets
from enum import Enum

from .config import settings
from .exceptions import ForbiddenError, UnauthorizedError

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer credentials are optional at the scheme level; deps decides what a
# missing header means
security = HTTPBearer(auto_error=False)

ACCESS = "access"
REFRESH = "refresh"

class UserRole(str, Enum):
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    PATIENT = "PATIENT"

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

class TokenPayload(BaseModel):
    sub: Optional[int] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    exp: Optional[int] = None
    jti: Optional[str] = None
    token_type: Optional[str] = None  # ACCESS or REFRESH

# Passwords
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def hash_token(token: str) -> str:
    """Digest used to store refresh tokens without keeping the raw value."""
    return hashlib.sha256(token.encode()).hexdigest()

# JWT
def _lifetime(token_type: str) -> timedelta:
    if token_type == REFRESH:
        return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

def issue_token(user_id: int, email: str, role: UserRole, token_type: str) -> str:
    """Sign a token for one account. Every token carries a fresh jti."""
    claims = {
        # python-jose requires a string subject
        "sub": str(user_id),
        "email": email,
        "role": UserRole(role).value,
        "exp": datetime.utcnow() + _lifetime(token_type),
        "jti": secrets.token_hex(8),
        "token_type": token_type,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def verify_token(token: str) -> Optional[TokenPayload]:
    """Decode a token; None when the signature or expiry does not check out."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None
    return TokenPayload(**payload)

def create_token_pair(user_id: int, email: str, role: UserRole) -> Token:
    return Token(
        access_token=issue_token(user_id, email, role, ACCESS),
        refresh_token=issue_token(user_id, email, role, REFRESH),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )

# Security exceptions
class AuthenticationError(UnauthorizedError):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(detail)
        self.headers = {"WWW-Authenticate": "Bearer"}

class AuthorizationError(ForbiddenError):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(detail)
