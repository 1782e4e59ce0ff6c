"""Request flows for the AI enrichment pipeline.

Each flow checks its preconditions in a fixed order, calls the LLM, validates
the response and then writes the result row together with its usage event in
a single commit. A failure at any step leaves nothing behind.
"""
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

import crud
import models
import schemas
import usage
from errors import (
    AlreadyAnalyzedError,
    AnalysisFailedError,
    BadRequestError,
    DuplicateMatchError,
    MatchFailedError,
    NoTextAvailableError,
    NotFoundError,
    QuotaExceededError,
    UnauthorizedError,
)
from extraction import extract_text
from llm_interaction import call_llm, model_config_for
from normalizer import normalize_analysis_response, normalize_match_response
from observability import record_pipeline_outcome
from prompts import (
    AnalysisContext,
    MatchContext,
    PriorAnalysis,
    build_analysis_prompt,
    build_match_prompt,
)
from storage import LocalFileStorage

# Set up logging
logger = structlog.get_logger(__name__)


def _require_user(user: Optional[models.User]) -> models.User:
    if user is None:
        raise UnauthorizedError()
    return user


def _require_access(db: Session, user_id: int, feature: str) -> None:
    decision = usage.check_access(db, user_id, feature)
    if not decision.can_access:
        logger.info("Quota exceeded", user_id=user_id, feature=feature, limit=decision.limit)
        record_pipeline_outcome(feature, "quota_exceeded", user_id)
        raise QuotaExceededError(feature, decision.limit, decision.remaining)


def _dump(schema, obj) -> dict:
    return schema.model_validate(obj).model_dump(mode="json")


# --- Uploads and job descriptions ---
async def upload_resume(
    db: Session,
    user: Optional[models.User],
    file_name: Optional[str],
    content_type: str,
    content: bytes,
    storage: LocalFileStorage,
) -> models.Resume:
    """Validate, extract and store an uploaded resume, then create its row."""
    user = _require_user(user)
    _require_access(db, user.id, usage.RESUMES)
    if not file_name or not file_name.strip():
        raise BadRequestError("File must have a valid name")

    parsed_text = await run_in_threadpool(extract_text, content, content_type)
    stored = await storage.upload(content, user.id, file_name)

    try:
        resume = crud.create_resume(
            db,
            schemas.ResumeCreate(
                file_url=stored.url,
                file_path=stored.path,
                file_name=file_name,
                parsed_text=parsed_text,
            ),
            user_id=user.id,
        )
        db.commit()
    except Exception:
        db.rollback()
        await storage.delete(stored.path)
        raise
    db.refresh(resume)
    logger.info("Resume uploaded", user_id=user.id, resume_id=resume.id, chars=len(parsed_text))
    return resume


async def delete_resume(
    db: Session, user: Optional[models.User], resume_id: int, storage: LocalFileStorage
) -> None:
    user = _require_user(user)
    resume = crud.delete_resume(db, resume_id=resume_id, user_id=user.id)
    if resume is None:
        raise NotFoundError("Resume not found")
    try:
        await storage.delete(resume.file_path)
    except (OSError, ValueError) as exc:
        # The rows are gone; a leftover file is only wasted space
        logger.warning("Failed to delete stored resume file", path=resume.file_path, exc=str(exc))
    logger.info("Resume deleted", user_id=user.id, resume_id=resume_id)


def create_job_description(
    db: Session, user: Optional[models.User], job: schemas.JobDescriptionCreate
) -> models.JobDescription:
    user = _require_user(user)
    _require_access(db, user.id, usage.JOB_DESCRIPTIONS)
    db_job = crud.create_job_description(db, job, user_id=user.id)
    db.commit()
    db.refresh(db_job)
    logger.info("Job description created", user_id=user.id, job_id=db_job.id)
    return db_job


# --- Analysis ---
async def analyze_resume(
    db: Session,
    user: Optional[models.User],
    resume_id: int,
    job_description: Optional[str] = None,
) -> models.Analysis:
    """Score a resume with the LLM and persist exactly one Analysis for it."""
    user = _require_user(user)
    _require_access(db, user.id, usage.ANALYSIS_PER_MONTH)

    resume = crud.get_resume(db, resume_id=resume_id, user_id=user.id)
    if not resume:
        raise NotFoundError("Resume not found")

    existing = crud.get_analysis_by_resume_id(db, resume.id)
    if existing:
        raise AlreadyAnalyzedError(_dump(schemas.Analysis, existing))

    if not resume.parsed_text or not resume.parsed_text.strip():
        raise NoTextAvailableError("Resume has no extracted text. Please re-upload it.")

    logger.info("Analyzing resume", user_id=user.id, resume_id=resume.id)
    prompt = build_analysis_prompt(
        AnalysisContext(
            resume_text=resume.parsed_text,
            job_description=job_description.strip() if job_description else None,
        )
    )
    try:
        completion = await call_llm(
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            model_config=model_config_for("resume_analysis"),
        )
        payload = normalize_analysis_response(completion.text)
    except Exception as exc:
        logger.error(
            "Resume analysis failed",
            user_id=user.id,
            resume_id=resume.id,
            cause=type(exc).__name__,
            exc=str(exc),
        )
        record_pipeline_outcome("analysis", "failed", user.id)
        raise AnalysisFailedError(exc) from exc

    analysis = models.Analysis(
        resume_id=resume.id,
        summary=payload.summary,
        skills=payload.skills,
        experience=payload.experience,
        education=payload.education,
        score=payload.score,
        ai_model=completion.model,
    )
    try:
        db.add(analysis)
        usage.record_usage(
            db,
            user_id=user.id,
            feature_kind=models.FeatureKind.ANALYSIS,
            prompt=f"analyze resume: {resume.file_name}",
            response=completion.text,
            model=completion.model,
            tokens_used=completion.tokens_used,
        )
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent analysis of the same resume
        db.rollback()
        winner = crud.get_analysis_by_resume_id(db, resume_id)
        raise AlreadyAnalyzedError(_dump(schemas.Analysis, winner) if winner else None)

    db.refresh(analysis)
    record_pipeline_outcome("analysis", "success", user.id)
    logger.info("Resume analyzed", user_id=user.id, resume_id=resume_id, score=analysis.score)
    return analysis


# --- Matching ---
async def match_resume_to_job(
    db: Session,
    user: Optional[models.User],
    resume_id: Optional[int],
    job_id: Optional[int],
) -> models.MatchResult:
    """Score a resume against a job. At most one MatchResult exists per pair."""
    user = _require_user(user)
    _require_access(db, user.id, usage.MATCHES_PER_MONTH)

    if resume_id is None or job_id is None:
        raise BadRequestError("Both resumeId and jobId are required")

    resume = crud.get_resume(db, resume_id=resume_id, user_id=user.id)
    job = crud.get_job_description(db, job_id=job_id, user_id=user.id)
    if not resume or not job:
        raise NotFoundError("Resume or job description not found")

    if not resume.parsed_text or not resume.parsed_text.strip():
        raise NoTextAvailableError("Resume has no extracted text. Please re-upload it.")

    existing = crud.get_match_for_pair(db, resume_id=resume.id, job_id=job.id)
    if existing:
        raise DuplicateMatchError(_dump(schemas.MatchResult, existing))

    prior = None
    if resume.analysis:
        prior = PriorAnalysis(
            score=resume.analysis.score,
            skills=resume.analysis.skills or [],
            summary=resume.analysis.summary,
        )

    logger.info("Matching resume", user_id=user.id, resume_id=resume.id, job_id=job.id)
    prompt = build_match_prompt(
        MatchContext(
            resume_text=resume.parsed_text,
            job_title=job.title,
            job_description=job.description,
            job_skills=job.skills or [],
            company_name=job.company_name,
            prior_analysis=prior,
        )
    )
    try:
        completion = await call_llm(
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            model_config=model_config_for("resume_match"),
        )
        payload = normalize_match_response(completion.text)
    except Exception as exc:
        logger.error(
            "Resume match failed",
            user_id=user.id,
            resume_id=resume.id,
            job_id=job.id,
            cause=type(exc).__name__,
            exc=str(exc),
        )
        record_pipeline_outcome("match", "failed", user.id)
        raise MatchFailedError(exc) from exc

    match = models.MatchResult(
        resume_id=resume.id,
        job_description_id=job.id,
        match_score=payload.match_score,
        missing_skills=payload.missing_skills,
        suggested_edits=payload.suggested_edits,
        ai_summary=payload.ai_summary,
    )
    try:
        db.add(match)
        usage.record_usage(
            db,
            user_id=user.id,
            feature_kind=models.FeatureKind.MATCH,
            prompt=f"match resume with job: {job.title}",
            response=completion.text,
            model=completion.model,
            tokens_used=completion.tokens_used,
        )
        db.commit()
    except IntegrityError:
        # The unique (resume_id, job_description_id) constraint settled a concurrent request
        db.rollback()
        winner = crud.get_match_for_pair(db, resume_id=resume_id, job_id=job_id)
        logger.info("Duplicate match rejected at commit", resume_id=resume_id, job_id=job_id)
        raise DuplicateMatchError(_dump(schemas.MatchResult, winner) if winner else None)

    db.refresh(match)
    record_pipeline_outcome("match", "success", user.id)
    logger.info(
        "Resume matched", user_id=user.id, resume_id=resume_id, job_id=job_id, score=match.match_score
    )
    return match
