import enum

from sqlalchemy.orm import relationship
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Text,
    DateTime,
    JSON,
    Enum,
    UniqueConstraint,
)
from database import Base, utcnow


class Plan(str, enum.Enum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class FeatureKind(str, enum.Enum):
    """Kind of AI invocation a usage event records, set when the event is written."""

    ANALYSIS = "ANALYSIS"
    MATCH = "MATCH"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    cognito_sub = Column(String, unique=True, index=True, nullable=False)
    plan = Column(Enum(Plan), default=Plan.FREE, nullable=False)
    stripe_customer_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    resumes = relationship("Resume", back_populates="owner", cascade="all, delete-orphan")
    job_descriptions = relationship(
        "JobDescription", back_populates="owner", cascade="all, delete-orphan"
    )
    usage_events = relationship("UsageEvent", back_populates="user")
    subscriptions = relationship("Subscription", back_populates="user")


class Resume(Base):
    __tablename__ = "resumes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    file_url = Column(String, nullable=False)
    file_path = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    parsed_text = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="resumes")
    analysis = relationship(
        "Analysis", back_populates="resume", uselist=False, cascade="all, delete-orphan"
    )
    match_results = relationship(
        "MatchResult", back_populates="resume", cascade="all, delete-orphan"
    )


class Analysis(Base):
    __tablename__ = "analyses"
    __table_args__ = (UniqueConstraint("resume_id", name="uq_analyses_resume_id"),)

    id = Column(Integer, primary_key=True, index=True)
    resume_id = Column(Integer, ForeignKey("resumes.id", ondelete="CASCADE"), nullable=False)
    summary = Column(Text, nullable=False)
    skills = Column(JSON, nullable=False, default=list)
    experience = Column(JSON, nullable=False, default=list)
    education = Column(JSON, nullable=False, default=list)
    score = Column(Integer, nullable=False)
    ai_model = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    resume = relationship("Resume", back_populates="analysis")


class JobDescription(Base):
    __tablename__ = "job_descriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    description = Column(Text, nullable=False)
    skills = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="job_descriptions")
    match_results = relationship(
        "MatchResult",
        back_populates="job_description",
        cascade="all, delete-orphan",
        order_by="MatchResult.match_score.desc()",
    )


class MatchResult(Base):
    __tablename__ = "match_results"
    __table_args__ = (
        UniqueConstraint("resume_id", "job_description_id", name="uq_match_results_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)
    resume_id = Column(Integer, ForeignKey("resumes.id", ondelete="CASCADE"), index=True, nullable=False)
    job_description_id = Column(
        Integer, ForeignKey("job_descriptions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    match_score = Column(Integer, nullable=False)
    missing_skills = Column(JSON, nullable=False, default=list)
    suggested_edits = Column(JSON, nullable=False, default=list)
    ai_summary = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    resume = relationship("Resume", back_populates="match_results")
    job_description = relationship("JobDescription", back_populates="match_results")


class UsageEvent(Base):
    """Append-only log of AI invocations; monthly quotas are derived from it."""

    __tablename__ = "usage_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    feature_kind = Column(Enum(FeatureKind), nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    response = Column(Text, nullable=True)
    model = Column(String, nullable=False)
    tokens_used = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    user = relationship("User", back_populates="usage_events")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    plan = Column(Enum(Plan), nullable=False)
    status = Column(String, nullable=False)
    payment_id = Column(String, nullable=True, index=True)
    start_date = Column(DateTime, default=utcnow, nullable=False)
    end_date = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="subscriptions")
