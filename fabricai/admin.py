# admin.py
"""
Admin endpoints: account management over the identity store, and usage
reporting with configurable daily/weekly generation caps.

Account management needs the privileged ADMIN_SERVICE_KEY to be configured;
without it those endpoints answer 503 instead of failing per request.
"""

import logging
import uuid
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fabricai.auth import ProfileOut, create_profile, get_password_hash, remaining_generations, require_admin
from fabricai.db import get_db
from fabricai.errors import ConfigurationError, InvalidRequest, NotFound, ServiceError
from fabricai.models import GenerationLog, Profile, UsageLimits, ROLE_SELLER
from fabricai.settings import Settings, get_settings

log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

USAGE_WINDOW_DAYS = 30
DEFAULT_COST_PER_IMAGE = 0.003


# ===================================================================
# Schemas
# ===================================================================

class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["admin", "venditore"] = ROLE_SELLER
    full_name: Optional[str] = None

class RoleUpdate(BaseModel):
    role: Literal["admin", "venditore"]

class PasswordUpdate(BaseModel):
    password: str = Field(..., min_length=6)

class LimitsUpdate(BaseModel):
    daily_limit: Optional[int] = Field(None, ge=0)
    weekly_limit: Optional[int] = Field(None, ge=0)
    cost_per_image: float = Field(DEFAULT_COST_PER_IMAGE, ge=0)


# ===================================================================
# Identity admin client
# ===================================================================

class IdentityAdmin:
    """Privileged operations over identity records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, user_id: uuid.UUID) -> Profile:
        profile = await self.db.get(Profile, user_id)
        if profile is None:
            raise NotFound("User not found.")
        return profile

    async def list_users(self):
        result = await self.db.execute(select(Profile).order_by(Profile.created_at.desc()))
        return result.scalars().all()

    async def create_user(self, email: str, password: str, role: str, full_name: Optional[str]) -> Profile:
        return await create_profile(self.db, email, password, role=role, full_name=full_name)

    async def delete_user(self, user_id: uuid.UUID) -> None:
        await self.db.delete(await self._get(user_id))
        await self._commit()

    async def set_role(self, user_id: uuid.UUID, role: str) -> Profile:
        profile = await self._get(user_id)
        profile.role = role
        await self._commit()
        return profile

    async def set_password(self, user_id: uuid.UUID, password: str) -> Profile:
        profile = await self._get(user_id)
        profile.hashed_password = get_password_hash(password)
        await self._commit()
        return profile

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            log.exception("Identity store update failed.")
            raise ServiceError(str(e))


def get_identity_admin(
    config: Settings = Depends(get_settings), db: AsyncSession = Depends(get_db)
) -> IdentityAdmin:
    if not config.ADMIN_SERVICE_KEY:
        raise ConfigurationError("Admin client not configured", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return IdentityAdmin(db)


def _user_payload(profile: Profile) -> dict:
    data = ProfileOut.model_validate(profile).model_dump(mode="json")
    data["remaining_generations"] = remaining_generations(profile)
    return data


# ===================================================================
# Users
# ===================================================================

@router.get("/users")
async def list_users(
    identity: IdentityAdmin = Depends(get_identity_admin),
    admin: Profile = Depends(require_admin),
):
    users = await identity.list_users()
    return {"success": True, "users": [_user_payload(u) for u in users]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: AdminUserCreate,
    identity: IdentityAdmin = Depends(get_identity_admin),
    admin: Profile = Depends(require_admin),
):
    profile = await identity.create_user(payload.email, payload.password, payload.role, payload.full_name)
    log.info(f"Admin {admin.email} created {profile.role} account {profile.email}")
    return {"success": True, "user": _user_payload(profile)}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    identity: IdentityAdmin = Depends(get_identity_admin),
    admin: Profile = Depends(require_admin),
):
    if user_id == admin.id:
        raise InvalidRequest("You cannot delete your own account.")
    await identity.delete_user(user_id)
    log.info(f"Admin {admin.email} deleted account {user_id}")
    return {"success": True}


@router.put("/users/{user_id}/role")
async def update_role(
    user_id: uuid.UUID,
    payload: RoleUpdate,
    identity: IdentityAdmin = Depends(get_identity_admin),
    admin: Profile = Depends(require_admin),
):
    profile = await identity.set_role(user_id, payload.role)
    log.info(f"Admin {admin.email} set role of {profile.email} to {payload.role}")
    return {"success": True, "user": _user_payload(profile)}


@router.put("/users/{user_id}/password")
async def update_password(
    user_id: uuid.UUID,
    payload: PasswordUpdate,
    identity: IdentityAdmin = Depends(get_identity_admin),
    admin: Profile = Depends(require_admin),
):
    profile = await identity.set_password(user_id, payload.password)
    log.info(f"Admin {admin.email} reset the password of {profile.email}")
    return {"success": True}


# ===================================================================
# Usage
# ===================================================================

async def get_limits(db: AsyncSession) -> UsageLimits:
    limits = await db.get(UsageLimits, 1)
    if limits is None:
        limits = UsageLimits(id=1, cost_per_image=DEFAULT_COST_PER_IMAGE)
    return limits


def compute_usage_stats(timestamps, total: int, limits: UsageLimits, today: date) -> dict:
    """
    Aggregates generation timestamps into the dashboard figures.
    Weeks start on Monday; `usageByDate` covers the last 30 days.
    """
    days = Counter(ts.date() for ts in timestamps)
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    window_start = today - timedelta(days=USAGE_WINDOW_DAYS - 1)

    count_today = days.get(today, 0)
    count_week = sum(n for d, n in days.items() if week_start <= d <= today)
    count_month = sum(n for d, n in days.items() if month_start <= d <= today)
    cost = limits.cost_per_image if limits.cost_per_image is not None else DEFAULT_COST_PER_IMAGE

    return {
        "today": count_today,
        "thisWeek": count_week,
        "thisMonth": count_month,
        "total": total,
        "costToday": round(count_today * cost, 6),
        "costThisWeek": round(count_week * cost, 6),
        "costThisMonth": round(count_month * cost, 6),
        "dailyLimit": limits.daily_limit,
        "weeklyLimit": limits.weekly_limit,
        "costPerImage": cost,
        "usageByDate": {d.isoformat(): n for d, n in sorted(days.items()) if d >= window_start},
    }


@router.get("/usage/stats")
async def usage_stats(db: AsyncSession = Depends(get_db), admin: Profile = Depends(require_admin)):
    today = datetime.now(timezone.utc).date()
    since = min(today.replace(day=1), today - timedelta(days=USAGE_WINDOW_DAYS - 1))
    since_dt = datetime.combine(since, time.min, tzinfo=timezone.utc)

    timestamps = (await db.execute(
        select(GenerationLog.created_at).where(GenerationLog.created_at >= since_dt)
    )).scalars().all()
    total = (await db.execute(select(func.count()).select_from(GenerationLog))).scalar_one()
    limits = await get_limits(db)

    return {"success": True, "stats": compute_usage_stats(timestamps, total, limits, today)}


@router.put("/usage/limits")
async def update_limits(
    payload: LimitsUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    limits = await db.get(UsageLimits, 1)
    if limits is None:
        limits = UsageLimits(id=1)
        db.add(limits)
    limits.daily_limit = payload.daily_limit
    limits.weekly_limit = payload.weekly_limit
    limits.cost_per_image = payload.cost_per_image

    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        log.exception("Could not save usage limits.")
        raise ServiceError(str(e))

    log.info(f"Usage limits updated by {admin.email}: daily={payload.daily_limit} weekly={payload.weekly_limit}")
    return {
        "success": True,
        "limits": {
            "daily_limit": limits.daily_limit,
            "weekly_limit": limits.weekly_limit,
            "cost_per_image": limits.cost_per_image,
        },
    }
