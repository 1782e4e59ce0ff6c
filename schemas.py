from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import Plan


# --- Users ---
class UserCreate(BaseModel):
    email: str
    name: Optional[str] = None
    cognito_sub: Optional[str] = None


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    plan: Plan


# --- Resumes ---
class ResumeCreate(BaseModel):
    file_url: str
    file_path: str
    file_name: str
    parsed_text: Optional[str] = None


class Analysis(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    resume_id: int
    summary: str
    skills: List[str]
    experience: List[str]
    education: List[str]
    score: int
    ai_model: str
    created_at: datetime


class Resume(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    file_url: str
    file_name: str
    parsed_text: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    analysis: Optional[Analysis] = None


class AnalyzeRequest(BaseModel):
    job_description: Optional[str] = Field(default=None, alias="jobDescription")

    model_config = ConfigDict(populate_by_name=True)


# --- Job descriptions ---
class JobDescriptionCreate(BaseModel):
    title: str = Field(min_length=1)
    company_name: Optional[str] = None
    description: str = Field(min_length=10)
    skills: List[str] = Field(default_factory=list)

    @field_validator("skills")
    @classmethod
    def strip_skills(cls, value: List[str]) -> List[str]:
        return [s.strip() for s in value if s and s.strip()]


class JobDescriptionUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    company_name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=10)
    skills: Optional[List[str]] = Field(default=None, min_length=1)


class JobDescription(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    company_name: Optional[str] = None
    description: str
    skills: List[str]
    created_at: datetime


# --- Matches ---
class MatchCreate(BaseModel):
    resume_id: Optional[int] = Field(default=None, alias="resumeId")
    job_id: Optional[int] = Field(default=None, alias="jobId")

    model_config = ConfigDict(populate_by_name=True)


class MatchResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    resume_id: int
    job_description_id: int
    match_score: int
    missing_skills: List[str]
    suggested_edits: List[str]
    ai_summary: Optional[str] = None
    created_at: datetime


class MatchDetail(MatchResult):
    resume: Resume
    job_description: JobDescription


class JobDescriptionDetail(JobDescription):
    match_results: List[MatchResult] = Field(default_factory=list)


# --- Pagination ---
T = TypeVar("T")


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination


# --- Usage / subscription ---
class AccessDecision(BaseModel):
    """Gate decision for one feature. ``limit`` and ``remaining`` are None when unbounded."""

    feature: str
    can_access: bool
    used: int
    limit: Optional[int] = None
    remaining: Optional[int] = None


class FeatureUsage(BaseModel):
    used: int
    limit: Optional[int] = None


class UsageSummary(BaseModel):
    plan: Plan
    limits: dict[str, FeatureUsage]


# --- Dashboard ---
class RecentResume(BaseModel):
    id: int
    file_name: str
    file_url: str
    score: Optional[int] = None
    match_count: int
    created_at: datetime


class TopMatch(BaseModel):
    id: int
    resume_file_name: str
    job_title: str
    match_score: int
    created_at: datetime


class DashboardStats(BaseModel):
    total_resumes: int
    analyzed_resumes: int
    pending_analysis: int
    total_jobs: int
    total_matches: int
    average_score: int
    recent_resumes: List[RecentResume]
    top_matches: List[TopMatch]
