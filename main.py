from pathlib import Path
from typing import List, Optional

import stripe
import structlog
from fastapi import (
    Body,
    Depends,
    FastAPI,
    File,
    Header,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session

import billing
import crud
import logic
import models
import schemas
import usage
from auth import get_current_user
from database import create_db_and_tables, get_db
from errors import AIFailedError, AppError, BadRequestError, NotFoundError
from observability import init_observability
from request_id_middleware import RequestIdMiddleware
from settings import Settings, get_settings
from storage import LocalFileStorage, get_storage


# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

# Create DB tables on startup
create_db_and_tables()

app = FastAPI(
    title="HireLens",
    description="Resume analysis and job matching API",
    version="0.1.0",
)

# --- CORS Middleware ---
origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1",
    "http://127.0.0.1:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestIdMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, AIFailedError):
        # The cause stays server-side; clients only get the generic message
        logger.error(
            "AI pipeline failure",
            error=exc.code,
            cause=type(exc.cause).__name__,
            detail=str(exc.cause),
        )
    elif exc.status_code >= 500:
        logger.error("Request failed", error=exc.code, detail=exc.message)
    else:
        logger.info("Request rejected", error=exc.code, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _pagination(total: int, limit: int, offset: int) -> schemas.Pagination:
    return schemas.Pagination(total=total, limit=limit, offset=offset, has_more=offset + limit < total)


# --- Users / subscription ---
@app.get("/users/me", response_model=schemas.User, tags=["Auth"])
def get_me(current_user: models.User = Depends(get_current_user)):
    """Returns the authenticated user's database record."""
    return current_user


@app.get("/subscription/usage", response_model=schemas.UsageSummary, tags=["Subscription"])
def get_usage_endpoint(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return usage.get_usage_summary(db, current_user.id)


@app.get("/dashboard/stats", response_model=schemas.DashboardStats, tags=["Dashboard"])
def get_dashboard_stats_endpoint(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return crud.get_dashboard_stats(db, current_user.id)


# --- Resumes ---
@app.post("/resumes", response_model=schemas.Resume, tags=["Resumes"])
async def upload_resume_endpoint(
    file: UploadFile = File(...),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    content = await file.read()
    return await logic.upload_resume(
        db,
        current_user,
        file_name=file.filename,
        content_type=file.content_type or "",
        content=content,
        storage=storage,
    )


@app.get("/resumes", response_model=schemas.Page[schemas.Resume], tags=["Resumes"])
def list_resumes_endpoint(
    limit: int = Query(10, gt=0, le=100),
    offset: int = Query(0, ge=0),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    resumes, total = crud.get_resumes_for_user(db, current_user.id, limit=limit, offset=offset)
    return {"items": resumes, "pagination": _pagination(total, limit, offset)}


def _get_owned_resume(db: Session, resume_id: int, user_id: int) -> models.Resume:
    resume = crud.get_resume(db, resume_id=resume_id, user_id=user_id)
    if not resume:
        raise NotFoundError("Resume not found")
    return resume


@app.get("/resumes/{resume_id}", response_model=schemas.Resume, tags=["Resumes"])
def get_resume_endpoint(
    resume_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _get_owned_resume(db, resume_id, current_user.id)


@app.get("/resumes/{resume_id}/file", tags=["Resumes"])
def download_resume_endpoint(
    resume_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    resume = _get_owned_resume(db, resume_id, current_user.id)
    path = Path(storage.root) / resume.file_path
    if not path.is_file():
        raise NotFoundError("Resume file not found")
    return FileResponse(path, filename=resume.file_name)


@app.delete("/resumes/{resume_id}", tags=["Resumes"])
async def delete_resume_endpoint(
    resume_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    await logic.delete_resume(db, current_user, resume_id, storage)
    return {"status": "deleted", "resume_id": resume_id}


# --- Analysis ---
@app.post("/resumes/{resume_id}/analysis", response_model=schemas.Analysis, tags=["LLM Features"])
async def analyze_resume_endpoint(
    resume_id: int,
    body: Optional[schemas.AnalyzeRequest] = Body(default=None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    job_description = body.job_description if body else None
    return await logic.analyze_resume(db, current_user, resume_id, job_description=job_description)


@app.get("/resumes/{resume_id}/analysis", response_model=schemas.Analysis, tags=["LLM Features"])
def get_analysis_endpoint(
    resume_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    analysis = crud.get_analysis_for_resume(db, resume_id=resume_id, user_id=current_user.id)
    if not analysis:
        raise NotFoundError("Analysis not found")
    return analysis


@app.delete("/resumes/{resume_id}/analysis", tags=["LLM Features"])
def delete_analysis_endpoint(
    resume_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _get_owned_resume(db, resume_id, current_user.id)
    if not crud.delete_analysis(db, resume_id=resume_id, user_id=current_user.id):
        raise NotFoundError("No analysis found for this resume")
    return {"status": "deleted", "resume_id": resume_id}


# --- Job descriptions ---
@app.post("/jobs", response_model=schemas.JobDescription, tags=["Jobs"])
def create_job_endpoint(
    job: schemas.JobDescriptionCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return logic.create_job_description(db, current_user, job)


@app.get("/jobs", response_model=List[schemas.JobDescription], tags=["Jobs"])
def list_jobs_endpoint(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return crud.get_job_descriptions_for_user(db, current_user.id)


@app.get("/jobs/{job_id}", response_model=schemas.JobDescriptionDetail, tags=["Jobs"])
def get_job_endpoint(
    job_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    job = crud.get_job_description(db, job_id=job_id, user_id=current_user.id)
    if not job:
        raise NotFoundError("Job description not found")
    return job


@app.put("/jobs/{job_id}", response_model=schemas.JobDescription, tags=["Jobs"])
def update_job_endpoint(
    job_id: int,
    update: schemas.JobDescriptionUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    job = crud.update_job_description(db, job_id=job_id, user_id=current_user.id, update=update)
    if not job:
        raise NotFoundError("Job description not found")
    return job


@app.delete("/jobs/{job_id}", tags=["Jobs"])
def delete_job_endpoint(
    job_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not crud.delete_job_description(db, job_id=job_id, user_id=current_user.id):
        raise NotFoundError("Job description not found")
    logger.info("Job description deleted", job_id=job_id, user_id=current_user.id)
    return {"status": "deleted", "job_id": job_id}


# --- Matches ---
@app.post("/matches", response_model=schemas.MatchResult, tags=["LLM Features"])
async def create_match_endpoint(
    body: schemas.MatchCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await logic.match_resume_to_job(db, current_user, body.resume_id, body.job_id)


@app.get("/matches", response_model=schemas.Page[schemas.MatchResult], tags=["Matches"])
def list_matches_endpoint(
    resume_id: Optional[int] = Query(None, alias="resumeId"),
    job_id: Optional[int] = Query(None, alias="jobId"),
    min_score: Optional[int] = Query(None, alias="minScore", ge=0, le=100),
    limit: int = Query(20, gt=0, le=100),
    offset: int = Query(0, ge=0),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    matches, total = crud.get_matches_for_user(
        db,
        current_user.id,
        resume_id=resume_id,
        job_id=job_id,
        min_score=min_score,
        limit=limit,
        offset=offset,
    )
    return {"items": matches, "pagination": _pagination(total, limit, offset)}


@app.get("/matches/{match_id}", response_model=schemas.MatchDetail, tags=["Matches"])
def get_match_endpoint(
    match_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    match = crud.get_match(db, match_id=match_id, user_id=current_user.id)
    if not match:
        raise NotFoundError("Match not found")
    return match


@app.delete("/matches/{match_id}", tags=["Matches"])
def delete_match_endpoint(
    match_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not crud.delete_match(db, match_id=match_id, user_id=current_user.id):
        raise NotFoundError("Match not found")
    return {"status": "deleted", "match_id": match_id}


# --- Stripe billing ---
@app.post("/billing/checkout-session", tags=["Billing"])
async def create_checkout_session(
    request: Request,
    current_user: models.User = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    url = await billing.create_checkout_session(
        current_user,
        settings,
        success_url=f"{settings.app_base_url}/billing/success",
        cancel_url=f"{settings.app_base_url}/billing/cancel",
    )
    return {"url": url}


@app.post("/billing/webhook", tags=["Billing"])
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if not stripe_signature:
        raise BadRequestError("Missing stripe-signature header")
    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Stripe webhook signature verification failed", exc=str(exc))
        raise BadRequestError("Invalid signature")

    logger.info("Stripe webhook event received", event_id=event.get("id"), event_type=event.get("type"))
    billing.handle_event(db, event)
    return JSONResponse(content={"received": True}, status_code=status.HTTP_200_OK)


# --- Main execution --- (for running with uvicorn)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
