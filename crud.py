import uuid
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

import models
import schemas


# --- User CRUD ---
def get_user_by_id(db: Session, user_id: int):
    """Get a user by their primary key ID."""
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def get_user_by_cognito_sub(db: Session, cognito_sub: str):
    return db.query(models.User).filter(models.User.cognito_sub == cognito_sub).first()


def create_user(db: Session, user: schemas.UserCreate):
    db_user = models.User(
        email=user.email,
        name=user.name,
        cognito_sub=user.cognito_sub or f"local-{uuid.uuid4()}",
        plan=models.Plan.FREE,
    )
    db.add(db_user)
    db.flush()  # Assign ID without committing
    db.refresh(db_user)
    return db_user


def set_user_plan(db: Session, user_id: int, plan: models.Plan):
    user = get_user_by_id(db, user_id)
    if not user:
        return None
    user.plan = plan
    db.add(user)
    return user


# --- Resume CRUD ---
def create_resume(db: Session, resume: schemas.ResumeCreate, user_id: int):
    db_resume = models.Resume(
        user_id=user_id,
        file_url=resume.file_url,
        file_path=resume.file_path,
        file_name=resume.file_name,
        parsed_text=resume.parsed_text,
    )
    db.add(db_resume)
    db.flush()
    return db_resume


def get_resume(db: Session, resume_id: int, user_id: int):
    return (
        db.query(models.Resume)
        .filter(models.Resume.id == resume_id, models.Resume.user_id == user_id)
        .first()
    )


def get_resumes_for_user(db: Session, user_id: int, limit: int = 10, offset: int = 0):
    """Returns (page of resumes newest first, total count)."""
    query = db.query(models.Resume).filter(models.Resume.user_id == user_id)
    total = query.count()
    resumes = (
        query.order_by(models.Resume.created_at.desc(), models.Resume.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return resumes, total


def delete_resume(db: Session, resume_id: int, user_id: int):
    """Delete a resume with its analysis and match results in one transaction."""
    db_resume = get_resume(db, resume_id=resume_id, user_id=user_id)
    if not db_resume:
        return None
    # Relationship cascades remove the analysis and match results in the same flush
    db.delete(db_resume)
    db.commit()
    return db_resume


# --- Analysis CRUD ---
def get_analysis_for_resume(db: Session, resume_id: int, user_id: int):
    return (
        db.query(models.Analysis)
        .join(models.Resume)
        .filter(models.Analysis.resume_id == resume_id, models.Resume.user_id == user_id)
        .first()
    )


def get_analysis_by_resume_id(db: Session, resume_id: int):
    return db.query(models.Analysis).filter(models.Analysis.resume_id == resume_id).first()


def delete_analysis(db: Session, resume_id: int, user_id: int) -> bool:
    db_analysis = get_analysis_for_resume(db, resume_id=resume_id, user_id=user_id)
    if not db_analysis:
        return False
    db.delete(db_analysis)
    db.commit()
    return True


# --- Job description CRUD ---
def create_job_description(db: Session, job: schemas.JobDescriptionCreate, user_id: int):
    db_job = models.JobDescription(
        user_id=user_id,
        title=job.title,
        company_name=job.company_name,
        description=job.description,
        skills=job.skills,
    )
    db.add(db_job)
    db.flush()
    return db_job


def get_job_description(db: Session, job_id: int, user_id: int):
    return (
        db.query(models.JobDescription)
        .filter(models.JobDescription.id == job_id, models.JobDescription.user_id == user_id)
        .first()
    )


def get_job_descriptions_for_user(db: Session, user_id: int):
    """Retrieves all job descriptions for a specific user."""
    return (
        db.query(models.JobDescription)
        .filter(models.JobDescription.user_id == user_id)
        .order_by(models.JobDescription.created_at.desc(), models.JobDescription.id.desc())
        .all()
    )


def update_job_description(
    db: Session, job_id: int, user_id: int, update: schemas.JobDescriptionUpdate
):
    db_job = get_job_description(db, job_id=job_id, user_id=user_id)
    if not db_job:
        return None
    for field, value in update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(db_job, field, value)
    db.add(db_job)
    db.commit()
    db.refresh(db_job)
    return db_job


def delete_job_description(db: Session, job_id: int, user_id: int) -> bool:
    """Delete a job description and all of its match results."""
    db_job = get_job_description(db, job_id=job_id, user_id=user_id)
    if not db_job:
        return False
    db.delete(db_job)
    db.commit()
    return True


# --- Match CRUD ---
def get_match_for_pair(db: Session, resume_id: int, job_id: int):
    return (
        db.query(models.MatchResult)
        .filter(
            models.MatchResult.resume_id == resume_id,
            models.MatchResult.job_description_id == job_id,
        )
        .first()
    )


def get_match(db: Session, match_id: int, user_id: int):
    return (
        db.query(models.MatchResult)
        .join(models.Resume)
        .filter(models.MatchResult.id == match_id, models.Resume.user_id == user_id)
        .first()
    )


def get_matches_for_user(
    db: Session,
    user_id: int,
    resume_id: Optional[int] = None,
    job_id: Optional[int] = None,
    min_score: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
):
    """Returns (page of matches ordered by score desc, total count)."""
    query = (
        db.query(models.MatchResult)
        .join(models.Resume)
        .filter(models.Resume.user_id == user_id)
    )
    if resume_id is not None:
        query = query.filter(models.MatchResult.resume_id == resume_id)
    if job_id is not None:
        query = query.filter(models.MatchResult.job_description_id == job_id)
    if min_score is not None:
        query = query.filter(models.MatchResult.match_score >= min_score)
    total = query.count()
    matches = (
        query.order_by(models.MatchResult.match_score.desc(), models.MatchResult.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return matches, total


def delete_match(db: Session, match_id: int, user_id: int) -> bool:
    db_match = get_match(db, match_id=match_id, user_id=user_id)
    if not db_match:
        return False
    db.delete(db_match)
    db.commit()
    return True


# --- Dashboard ---
def get_dashboard_stats(db: Session, user_id: int) -> schemas.DashboardStats:
    total_resumes = db.query(models.Resume).filter(models.Resume.user_id == user_id).count()
    analyzed_resumes = (
        db.query(models.Analysis)
        .join(models.Resume)
        .filter(models.Resume.user_id == user_id)
        .count()
    )
    total_jobs = (
        db.query(models.JobDescription).filter(models.JobDescription.user_id == user_id).count()
    )
    total_matches = (
        db.query(models.MatchResult)
        .join(models.Resume)
        .filter(models.Resume.user_id == user_id)
        .count()
    )
    average = (
        db.query(func.avg(models.Analysis.score))
        .join(models.Resume)
        .filter(models.Resume.user_id == user_id)
        .scalar()
    )

    recent, _ = get_resumes_for_user(db, user_id, limit=5)
    top, _ = get_matches_for_user(db, user_id, limit=5)

    return schemas.DashboardStats(
        total_resumes=total_resumes,
        analyzed_resumes=analyzed_resumes,
        pending_analysis=total_resumes - analyzed_resumes,
        total_jobs=total_jobs,
        total_matches=total_matches,
        average_score=round(average) if average else 0,
        recent_resumes=[
            schemas.RecentResume(
                id=r.id,
                file_name=r.file_name,
                file_url=r.file_url,
                score=r.analysis.score if r.analysis else None,
                match_count=len(r.match_results),
                created_at=r.created_at,
            )
            for r in recent
        ],
        top_matches=[
            schemas.TopMatch(
                id=m.id,
                resume_file_name=m.resume.file_name,
                job_title=m.job_description.title,
                match_score=m.match_score,
                created_at=m.created_at,
            )
            for m in top
        ],
    )


# --- Subscription CRUD ---
def create_subscription(
    db: Session, user_id: int, plan: models.Plan, status: str, payment_id: Optional[str]
):
    db_sub = models.Subscription(user_id=user_id, plan=plan, status=status, payment_id=payment_id)
    db.add(db_sub)
    db.flush()
    return db_sub


def update_subscriptions(db: Session, user_id: int, payment_id: str, **values) -> int:
    return (
        db.query(models.Subscription)
        .filter(
            models.Subscription.user_id == user_id,
            models.Subscription.payment_id == payment_id,
        )
        .update(values, synchronize_session=False)
    )
