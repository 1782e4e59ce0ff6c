from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Session

import models
import usage
from errors import UserNotFoundError


def _add_event(db: Session, user: models.User, kind: models.FeatureKind, created_at: datetime):
    db.add(
        models.UsageEvent(
            user_id=user.id,
            feature_kind=kind,
            prompt="analyze resume: resume.pdf",
            response="{}",
            model="test-model",
            created_at=created_at,
        )
    )
    db.commit()


def test_month_start():
    assert usage.month_start(datetime(2026, 3, 15, 13, 45, 12, 999)) == datetime(2026, 3, 1)


def test_count_events_in_month_pure():
    now = datetime(2026, 3, 15, 12, 0)
    timestamps = [
        datetime(2026, 2, 28, 23, 59, 59),  # previous month
        datetime(2026, 3, 1, 0, 0, 0),  # first instant of the month
        datetime(2026, 3, 15, 12, 0),  # exactly now
        datetime(2026, 3, 20),  # later this month, not yet happened
    ]
    assert usage.count_events_in_month(timestamps, now) == 2


def test_fresh_free_user_has_full_allowance(db_session: Session, make_user):
    user = make_user()
    decision = usage.check_access(db_session, user.id, usage.ANALYSIS_PER_MONTH)
    assert decision.can_access is True
    assert decision.used == 0
    assert decision.limit == 3
    assert decision.remaining == 3


def test_monthly_quota_counts_only_current_month(db_session: Session, make_user):
    user = make_user()
    now = datetime(2026, 3, 15, 12, 0)
    _add_event(db_session, user, models.FeatureKind.ANALYSIS, datetime(2026, 2, 28, 23, 59))
    _add_event(db_session, user, models.FeatureKind.ANALYSIS, datetime(2026, 3, 1, 0, 0))
    _add_event(db_session, user, models.FeatureKind.ANALYSIS, datetime(2026, 3, 10))
    # Match events never count toward the analysis quota
    _add_event(db_session, user, models.FeatureKind.MATCH, datetime(2026, 3, 11))

    decision = usage.check_access(db_session, user.id, usage.ANALYSIS_PER_MONTH, now=now)
    assert decision.used == 2
    assert decision.remaining == 1
    assert decision.can_access is True

    matches = usage.check_access(db_session, user.id, usage.MATCHES_PER_MONTH, now=now)
    assert matches.used == 1
    assert matches.limit == 5


def test_quota_blocks_at_limit_and_resets_next_month(db_session: Session, make_user):
    user = make_user()
    now = datetime(2026, 3, 15)
    for day in (2, 3, 4):
        _add_event(db_session, user, models.FeatureKind.ANALYSIS, datetime(2026, 3, day))

    blocked = usage.check_access(db_session, user.id, usage.ANALYSIS_PER_MONTH, now=now)
    assert blocked.can_access is False
    assert blocked.used == 3
    assert blocked.remaining == 0

    next_month = usage.check_access(
        db_session, user.id, usage.ANALYSIS_PER_MONTH, now=datetime(2026, 4, 1, 0, 0, 1)
    )
    assert next_month.can_access is True
    assert next_month.used == 0


def test_used_never_decreases_within_month(db_session: Session, make_user):
    user = make_user()
    base = datetime(2026, 5, 2)
    previous = 0
    for i in range(4):
        _add_event(db_session, user, models.FeatureKind.MATCH, base + timedelta(hours=i))
        decision = usage.check_access(
            db_session, user.id, usage.MATCHES_PER_MONTH, now=base + timedelta(days=1)
        )
        assert decision.used >= previous
        previous = decision.used
    assert previous == 4


def test_premium_is_unbounded(db_session: Session, make_user):
    user = make_user(plan=models.Plan.PREMIUM)
    now = datetime(2026, 3, 15)
    for day in range(1, 11):
        _add_event(db_session, user, models.FeatureKind.ANALYSIS, datetime(2026, 3, day))

    decision = usage.check_access(db_session, user.id, usage.ANALYSIS_PER_MONTH, now=now)
    assert decision.can_access is True
    assert decision.used == 10
    assert decision.limit is None
    assert decision.remaining is None


def test_cumulative_features_count_owned_rows(db_session: Session, make_user, make_resume, make_job):
    user = make_user()
    for _ in range(3):
        make_resume(user)
    make_job(user)

    resumes = usage.check_access(db_session, user.id, usage.RESUMES)
    assert resumes.used == 3
    assert resumes.can_access is False

    jobs = usage.check_access(db_session, user.id, usage.JOB_DESCRIPTIONS)
    assert jobs.used == 1
    assert jobs.remaining == 2

    # Deleting a resume frees a slot; cumulative counts follow the table
    resume = db_session.query(models.Resume).filter(models.Resume.user_id == user.id).first()
    db_session.delete(resume)
    db_session.commit()
    assert usage.check_access(db_session, user.id, usage.RESUMES).can_access is True


def test_unknown_user_raises(db_session: Session):
    with pytest.raises(UserNotFoundError):
        usage.check_access(db_session, 987654, usage.ANALYSIS_PER_MONTH)


def test_unknown_feature_raises(db_session: Session, make_user):
    user = make_user()
    with pytest.raises(ValueError):
        usage.check_access(db_session, user.id, "exports_per_month")


def test_record_usage_is_part_of_callers_transaction(db_session: Session, make_user):
    user = make_user()
    usage.record_usage(
        db_session,
        user_id=user.id,
        feature_kind=models.FeatureKind.ANALYSIS,
        prompt="analyze resume: cv.pdf",
        response='{"score": 80}',
        model="test-model",
        tokens_used=321,
    )
    db_session.rollback()
    assert usage.check_access(db_session, user.id, usage.ANALYSIS_PER_MONTH).used == 0

    event = usage.record_usage(
        db_session,
        user_id=user.id,
        feature_kind=models.FeatureKind.ANALYSIS,
        prompt="analyze resume: cv.pdf",
        response='{"score": 80}',
        model="test-model",
        tokens_used=321,
    )
    db_session.commit()
    assert event.id is not None
    assert event.tokens_used == 321
    assert usage.check_access(db_session, user.id, usage.ANALYSIS_PER_MONTH).used == 1


def test_usage_summary(db_session: Session, make_user, make_resume):
    user = make_user()
    make_resume(user)
    now = datetime(2026, 3, 15)
    _add_event(db_session, user, models.FeatureKind.MATCH, datetime(2026, 3, 2))

    summary = usage.get_usage_summary(db_session, user.id, now=now)
    assert summary.plan == models.Plan.FREE
    assert summary.limits[usage.RESUMES].used == 1
    assert summary.limits[usage.RESUMES].limit == 3
    assert summary.limits[usage.MATCHES_PER_MONTH].used == 1
    assert summary.limits[usage.MATCHES_PER_MONTH].limit == 5
    assert summary.limits[usage.ANALYSIS_PER_MONTH].used == 0
