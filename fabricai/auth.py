# auth.py
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from fabricai.db import get_db
from fabricai.errors import Conflict
from fabricai.models import Profile, ROLE_ADMIN, ROLE_SELLER
from fabricai.settings import settings

log = logging.getLogger(__name__)

# Generations per month for each subscription plan, -1 meaning unlimited.
PLAN_LIMITS = {
    "free": 3,
    "pro": 50,
    "business": -1,
}


# ===================================================================
# Pydantic Schemas (Data Validation)
# ===================================================================

class UserCreate(BaseModel):
    """Schema for user registration request."""
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None

class ProfileOut(BaseModel):
    """Schema for safely exposing profile data."""
    id: uuid.UUID
    email: str
    role: str
    full_name: Optional[str] = None
    plan: str
    generations_used: int
    created_at: datetime

    class Config:
        from_attributes = True

class MeOut(ProfileOut):
    remaining_generations: int

class Token(BaseModel):
    """Schema for the authentication token response."""
    access_token: str
    token_type: str


# ===================================================================
# Configuration
# ===================================================================

router = APIRouter(prefix="/auth", tags=["Auth"])

pwd_context = CryptContext(schemes=["scrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ===================================================================
# Utility Functions
# ===================================================================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies a plain password against a hashed one."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Hashes a plain password."""
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Creates a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

def remaining_generations(profile: Profile) -> int:
    """Generations left on the profile's plan; -1 for unlimited plans."""
    limit = PLAN_LIMITS.get(profile.plan or "free", PLAN_LIMITS["free"])
    if limit < 0:
        return -1
    return max(0, limit - (profile.generations_used or 0))

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[Profile]:
    """Fetches a profile from the database by email."""
    result = await db.execute(select(Profile).where(Profile.email == email.lower()))
    return result.scalars().first()

async def create_profile(
    db: AsyncSession,
    email: str,
    password: str,
    role: str = ROLE_SELLER,
    full_name: Optional[str] = None,
) -> Profile:
    """Creates a new identity record; raises Conflict when the email is taken."""
    if await get_user_by_email(db, email):
        raise Conflict("An account with this email already exists.")

    profile = Profile(
        email=email.lower(),
        hashed_password=get_password_hash(password),
        role=role,
        full_name=full_name,
    )
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return profile


# ===================================================================
# Current User Dependencies
# ===================================================================

async def _user_from_token(token: str, db: AsyncSession) -> Optional[Profile]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        user_id = payload.get("user_id")
        if user_id is None:
            return None
        return await db.get(Profile, uuid.UUID(user_id))
    except (JWTError, ValueError) as e:
        log.warning(f"Invalid JWT decode attempt: {e}")
        return None


async def get_current_user(
    token: str = Depends(oauth2_scheme), db: AsyncSession = Depends(get_db)
) -> Profile:
    """Dependency to get the current authenticated user from a token."""
    user = await _user_from_token(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme), db: AsyncSession = Depends(get_db)
) -> Optional[Profile]:
    """Like get_current_user, but anonymous requests resolve to None."""
    if not token:
        return None
    return await _user_from_token(token, db)


async def require_admin(current_user: Profile = Depends(get_current_user)) -> Profile:
    """
    Server-side authorization gate for admin-only endpoints.
    The client's role check is a display filter only.
    """
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return current_user


# ===================================================================
# API Endpoints
# ===================================================================

@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=ProfileOut)
async def register_user(user_in: UserCreate, db: AsyncSession = Depends(get_db)):
    """
    Handles new user registration.
    Emails listed in ADMIN_EMAILS are registered with the admin role.
    """
    role = ROLE_ADMIN if user_in.email.lower() in settings.admin_emails else ROLE_SELLER
    profile = await create_profile(db, user_in.email, user_in.password, role=role, full_name=user_in.full_name)
    log.info(f"Registered new {role} account {profile.email}")
    return profile


@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)
):
    """
    Handles user login and returns a JWT access token.
    Uses OAuth2PasswordRequestForm, expecting form-data (`username` and `password`).
    """
    user = await get_user_by_email(db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"user_id": str(user.id)})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=MeOut)
async def read_users_me(current_user: Profile = Depends(get_current_user)):
    """Fetches the profile of the currently authenticated user."""
    data = ProfileOut.model_validate(current_user).model_dump()
    data["remaining_generations"] = remaining_generations(current_user)
    return data
