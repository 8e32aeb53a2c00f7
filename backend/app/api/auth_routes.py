"""
JWT Authentication routes — register, login, me.

Rate limiting for these endpoints is enforced at the middleware level
(RateLimitMiddleware in main.py): 5 requests per minute per IP.
"""
import os
import re
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from passlib.context import CryptContext
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from app.db import get_db
from app.api.deps import get_current_user, sanitize_role
from app.models.orm_models import UserAccount
from app.models.records import BUILDINGS, SHIFTS

logger = logging.getLogger("precision-pulse.auth")

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$")
_MIN_PASSWORD_LEN = 8


def _validate_email(email: str) -> str:
    """Validate email format. Raises HTTPException 422 on failure."""
    email = email.strip().lower()
    if not _EMAIL_RE.match(email):
        raise HTTPException(status_code=422, detail="Invalid email format")
    return email


def _validate_password(password: str) -> None:
    if len(password) < _MIN_PASSWORD_LEN:
        raise HTTPException(
            status_code=422,
            detail=f"Password must be at least {_MIN_PASSWORD_LEN} characters"
        )


router = APIRouter(prefix="/api/auth", tags=["Authentication"])

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class RegisterRequest(BaseModel):
    email: str
    password: str
    name: str = ""
    building: Optional[str] = None
    shift: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str
    access_role: str
    building: Optional[str] = None
    shift: Optional[str] = None
    name: str = ""


def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _token_for(user: UserAccount) -> TokenResponse:
    role = sanitize_role(user.access_role)
    token = create_access_token({
        "sub": user.id,
        "email": user.email,
        "role": role,
        "building": user.building or "",
    })
    return TokenResponse(
        access_token=token,
        user_id=user.id,
        email=user.email,
        access_role=role,
        building=user.building,
        shift=user.shift,
        name=user.name or "",
    )


@router.post("/register", response_model=TokenResponse)
async def register(req: RegisterRequest, db: AsyncSession = Depends(get_db)):
    req.email = _validate_email(req.email)
    _validate_password(req.password)
    if req.building and req.building not in BUILDINGS:
        raise HTTPException(status_code=422, detail=f"Unknown building '{req.building}'")
    if req.shift and req.shift not in SHIFTS:
        raise HTTPException(status_code=422, detail=f"Unknown shift '{req.shift}'")

    result = await db.execute(select(UserAccount).where(UserAccount.email == req.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Email already registered")

    # First account bootstraps the system; everyone after starts as a Worker
    existing = await db.scalar(select(func.count(UserAccount.id)))
    role = "Super Admin" if not existing else "Worker"

    user = UserAccount(
        email=req.email,
        hashed_password=pwd_context.hash(req.password),
        name=req.name.strip() or None,
        access_role=role,
        building=req.building,
        shift=req.shift,
    )
    db.add(user)
    await db.flush()
    logger.info("Registered account", extra={"user_id": user.id, "building": user.building})
    return _token_for(user)


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest, db: AsyncSession = Depends(get_db)):
    req.email = _validate_email(req.email)
    if len(req.password) < _MIN_PASSWORD_LEN:
        # Same error as a bad login so account existence is not confirmed
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    result = await db.execute(select(UserAccount).where(UserAccount.email == req.email))
    user = result.scalar_one_or_none()
    if not user or not pwd_context.verify(req.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    if not user.active:
        raise HTTPException(status_code=403, detail="Account deactivated")
    return _token_for(user)


@router.get("/me")
async def get_me(user: UserAccount = Depends(get_current_user)):
    return {
        "user_id": user.id,
        "email": user.email,
        "name": user.name or "",
        "access_role": sanitize_role(user.access_role),
        "building": user.building,
        "shift": user.shift,
    }
