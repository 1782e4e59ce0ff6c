"""Prompt builders for resume analysis and resume-to-job matching.

Builders are pure: the same context always yields the same prompt text.
"""
from typing import List, Optional

from pydantic import BaseModel

SYSTEM_PROMPT = (
    "You are an expert resume reviewer and technical recruiter. "
    "Respond with valid JSON only: a single JSON object, no markdown code fences, "
    "no commentary before or after it."
)

ANALYSIS_OUTPUT_SCHEMA = """{
  "summary": string,        // 2-4 sentence professional summary of the candidate
  "skills": string[],       // concrete skills found in the resume
  "experience": string[],   // one entry per role: "Title at Company (dates): key achievement"
  "education": string[],    // one entry per degree or certification
  "score": integer          // overall resume quality, 0 to 100 inclusive
}"""

MATCH_OUTPUT_SCHEMA = """{
  "matchScore": integer,      // compatibility with the job, 0 to 100 inclusive
  "missingSkills": string[],  // required skills absent from the resume, at most 10 entries
  "suggestedEdits": string[], // concrete, actionable edits to the resume, most important first
  "aiSummary": string         // 2-4 sentence explanation of the score
}"""

ANALYSIS_RUBRIC = """SCORING RUBRIC (weights sum to 100):
1. EXPERIENCE & IMPACT (35%): relevance and depth of roles, quantified achievements
2. SKILLS (25%): breadth and depth of demonstrated technical and professional skills
3. EDUCATION & CREDENTIALS (15%): degrees, certifications, ongoing learning
4. CLARITY & STRUCTURE (25%): readability, organization, concise and specific wording
Score each category 0-100, multiply by its weight and sum to get the final score."""

MATCH_RUBRIC = """SCORING RUBRIC (weights sum to 100):
1. SKILLS ALIGNMENT (40%): required skills the candidate has demonstrated through experience
2. EXPERIENCE RELEVANCE (30%): similarity of past roles, seniority and industry to the job
3. EDUCATION & CREDENTIALS (15%): degrees and certifications against the job requirements
4. OVERALL FIT (15%): trajectory, soft skills and anything else that affects the fit
Score each category 0-100, multiply by its weight and sum to get the final matchScore."""

OUTPUT_RULES = """OUTPUT RULES:
- Return exactly one JSON object with exactly the fields listed above and no others.
- Do not wrap the JSON in markdown code fences.
- Do not add explanations, notes or any text outside the JSON object.
- Use empty arrays rather than omitting a field."""


class PriorAnalysis(BaseModel):
    score: int
    skills: List[str]
    summary: str


class AnalysisContext(BaseModel):
    resume_text: str
    job_description: Optional[str] = None


class MatchContext(BaseModel):
    resume_text: str
    job_title: str
    job_description: str
    job_skills: List[str] = []
    company_name: Optional[str] = None
    prior_analysis: Optional[PriorAnalysis] = None


class PromptRequest(BaseModel):
    system: str
    user: str
    output_schema: str


def build_analysis_prompt(ctx: AnalysisContext) -> PromptRequest:
    sections = [
        "Analyze the resume below and score its overall quality.",
    ]
    if ctx.job_description:
        sections.append(
            "A target job description is provided. Judge relevance against it: "
            "experience and skills that matter for this job count more."
        )
    sections += [
        f"Return a JSON object with this exact shape:\n{ANALYSIS_OUTPUT_SCHEMA}",
        ANALYSIS_RUBRIC,
        OUTPUT_RULES,
        f"# Resume\n{ctx.resume_text}",
    ]
    if ctx.job_description:
        sections.append(f"# Target Job Description\n{ctx.job_description}")

    return PromptRequest(
        system=SYSTEM_PROMPT,
        user="\n\n".join(sections),
        output_schema=ANALYSIS_OUTPUT_SCHEMA,
    )


def _format_job(ctx: MatchContext) -> str:
    lines = [f"Title: {ctx.job_title}"]
    if ctx.company_name:
        lines.append(f"Company: {ctx.company_name}")
    if ctx.job_skills:
        lines.append(f"Required skills: {', '.join(ctx.job_skills)}")
    lines.append(f"Description:\n{ctx.job_description}")
    return "\n".join(lines)


def build_match_prompt(ctx: MatchContext) -> PromptRequest:
    sections = [
        "Compare the resume with the job description below and score how well "
        "the candidate matches the job.",
        f"Return a JSON object with this exact shape:\n{MATCH_OUTPUT_SCHEMA}",
        MATCH_RUBRIC,
        OUTPUT_RULES,
        f"# Job Description\n{_format_job(ctx)}",
        f"# Resume\n{ctx.resume_text}",
    ]
    if ctx.prior_analysis:
        prior = ctx.prior_analysis
        sections.append(
            "# Prior Resume Analysis\n"
            f"Resume score: {prior.score}/100\n"
            f"Skills: {', '.join(prior.skills)}\n"
            f"Summary: {prior.summary}"
        )

    return PromptRequest(
        system=SYSTEM_PROMPT,
        user="\n\n".join(sections),
        output_schema=MATCH_OUTPUT_SCHEMA,
    )
