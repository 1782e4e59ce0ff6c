"""Plan quotas and the usage ledger.

Counts are never cached: every ``check_access`` recomputes from the source
tables (the append-only ``usage_events`` log for monthly features, the owned
entity tables for cumulative ones).
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Union

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

import models
import schemas
from database import utcnow
from errors import UserNotFoundError

logger = structlog.get_logger(__name__)

RESUMES = "resumes"
ANALYSIS_PER_MONTH = "analysis_per_month"
MATCHES_PER_MONTH = "matches_per_month"
JOB_DESCRIPTIONS = "job_descriptions"

FEATURES = (RESUMES, ANALYSIS_PER_MONTH, MATCHES_PER_MONTH, JOB_DESCRIPTIONS)

MONTHLY_FEATURE_KINDS = {
    ANALYSIS_PER_MONTH: models.FeatureKind.ANALYSIS,
    MATCHES_PER_MONTH: models.FeatureKind.MATCH,
}


@dataclass(frozen=True)
class Finite:
    value: int

    def allows(self, used: int) -> bool:
        return used < self.value

    def remaining(self, used: int) -> Optional[int]:
        return max(0, self.value - used)

    def as_int(self) -> Optional[int]:
        return self.value


@dataclass(frozen=True)
class Unbounded:
    def allows(self, used: int) -> bool:
        return True

    def remaining(self, used: int) -> Optional[int]:
        return None

    def as_int(self) -> Optional[int]:
        return None


Limit = Union[Finite, Unbounded]

FEATURE_LIMITS: dict[models.Plan, dict[str, Limit]] = {
    models.Plan.FREE: {
        RESUMES: Finite(3),
        ANALYSIS_PER_MONTH: Finite(3),
        MATCHES_PER_MONTH: Finite(5),
        JOB_DESCRIPTIONS: Finite(3),
    },
    models.Plan.PREMIUM: {
        RESUMES: Unbounded(),
        ANALYSIS_PER_MONTH: Unbounded(),
        MATCHES_PER_MONTH: Unbounded(),
        JOB_DESCRIPTIONS: Unbounded(),
    },
}


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def count_events_in_month(timestamps: Iterable[datetime], now: datetime) -> int:
    """Number of timestamps falling in the calendar month of ``now``, up to ``now``."""
    start = month_start(now)
    return sum(1 for ts in timestamps if start <= ts <= now)


def _count_monthly(db: Session, user_id: int, kind: models.FeatureKind, now: datetime) -> int:
    return (
        db.query(func.count(models.UsageEvent.id))
        .filter(
            models.UsageEvent.user_id == user_id,
            models.UsageEvent.feature_kind == kind,
            models.UsageEvent.created_at >= month_start(now),
            models.UsageEvent.created_at <= now,
        )
        .scalar()
    )


def _count_used(db: Session, user_id: int, feature: str, now: datetime) -> int:
    if feature == RESUMES:
        return db.query(func.count(models.Resume.id)).filter(models.Resume.user_id == user_id).scalar()
    if feature == JOB_DESCRIPTIONS:
        return (
            db.query(func.count(models.JobDescription.id))
            .filter(models.JobDescription.user_id == user_id)
            .scalar()
        )
    if feature in MONTHLY_FEATURE_KINDS:
        return _count_monthly(db, user_id, MONTHLY_FEATURE_KINDS[feature], now)
    raise ValueError(f"Unknown feature: {feature}")


def _get_plan(db: Session, user_id: int) -> models.Plan:
    user = db.get(models.User, user_id)
    if user is None:
        logger.error("Usage check for unknown user", user_id=user_id)
        raise UserNotFoundError(f"User {user_id} not found")
    return user.plan


def check_access(
    db: Session, user_id: int, feature: str, now: Optional[datetime] = None
) -> schemas.AccessDecision:
    """Gate decision for ``feature``: allowed iff used < limit."""
    now = now or utcnow()
    plan = _get_plan(db, user_id)
    limit = FEATURE_LIMITS[plan][feature]
    used = _count_used(db, user_id, feature, now)

    decision = schemas.AccessDecision(
        feature=feature,
        can_access=limit.allows(used),
        used=used,
        limit=limit.as_int(),
        remaining=limit.remaining(used),
    )
    logger.debug("Usage checked", user_id=user_id, **decision.model_dump())
    return decision


def record_usage(
    db: Session,
    user_id: int,
    feature_kind: models.FeatureKind,
    prompt: str,
    response: Optional[str],
    model: str,
    tokens_used: Optional[int] = None,
) -> models.UsageEvent:
    """Append one usage event. The caller commits, so it lands with the result row."""
    event = models.UsageEvent(
        user_id=user_id,
        feature_kind=feature_kind,
        prompt=prompt,
        response=response,
        model=model,
        tokens_used=tokens_used,
    )
    db.add(event)
    db.flush()
    return event


def get_usage_summary(db: Session, user_id: int, now: Optional[datetime] = None) -> schemas.UsageSummary:
    now = now or utcnow()
    plan = _get_plan(db, user_id)
    limits = {
        feature: schemas.FeatureUsage(
            used=_count_used(db, user_id, feature, now),
            limit=FEATURE_LIMITS[plan][feature].as_int(),
        )
        for feature in FEATURES
    }
    return schemas.UsageSummary(plan=plan, limits=limits)
