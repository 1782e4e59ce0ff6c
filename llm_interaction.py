import asyncio
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import openai
import structlog
from openai import AsyncOpenAI

from errors import LLMTimeoutError, LLMTransportError
from observability import record_llm_call
from settings import get_settings


# Set up logging
logging.basicConfig(level=logging.INFO)
logger = structlog.get_logger(__name__)

# --- Application Info sent with every request ---
APP_NAME = "HireLens"
APP_URL = "https://github.com/hirelens/hirelens"


@dataclass(frozen=True)
class LLMCompletion:
    text: Optional[str]
    tokens_used: Optional[int]
    model: str


@lru_cache()
def get_client() -> AsyncOpenAI:
    """Build the OpenAI-compatible client lazily so importing never needs a key."""
    settings = get_settings()
    if not settings.llm_api_key:
        logger.error("LLM_API_KEY not found in environment variables or .env file.")
        raise LLMTransportError(
            "LLM_API_KEY not found. Ensure it's set in your environment or .env file."
        )
    return AsyncOpenAI(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
        default_headers={
            "HTTP-Referer": APP_URL,
            "X-Title": APP_NAME,
        },
    )


# --- Model Configuration ---
def model_config_for(task: str) -> dict:
    settings = get_settings()
    configs = {
        "resume_analysis": {
            "model": settings.analysis_model,
            "temperature": 0.2,
            "max_tokens": 2048,
        },
        "resume_match": {
            "model": settings.match_model,
            "temperature": 0.2,
            "max_tokens": 2048,
        },
    }
    return configs[task]


COMMON_OPTS = {"response_format": {"type": "json_object"}}


async def call_llm(
    system_prompt: str,
    user_prompt: str,
    model_config: dict,
    timeout: Optional[float] = None,
) -> LLMCompletion:
    """Call the LLM once and return its raw text.

    Raises LLMTimeoutError when the call exceeds the timeout and
    LLMTransportError for any other API/transport failure. No retries.
    """
    timeout = timeout if timeout is not None else get_settings().llm_timeout_seconds
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
    model = model_config["model"]
    started = time.monotonic()

    try:
        response = await asyncio.wait_for(
            get_client().chat.completions.create(
                messages=messages,
                **model_config,
                **COMMON_OPTS,
            ),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, openai.APITimeoutError) as exc:
        record_llm_call(model, "timeout", time.monotonic() - started)
        logger.warning("LLM call timed out", model=model, timeout=timeout)
        raise LLMTimeoutError(f"LLM call timed out after {timeout}s") from exc
    except openai.OpenAIError as exc:
        record_llm_call(model, "error", time.monotonic() - started)
        logger.error("LLM call failed", model=model, exc=str(exc))
        raise LLMTransportError(str(exc)) from exc

    elapsed = time.monotonic() - started
    record_llm_call(model, "success", elapsed)

    text = response.choices[0].message.content if response.choices else None
    tokens_used = response.usage.total_tokens if response.usage else None
    logger.info("LLM call completed", model=model, tokens_used=tokens_used, latency_s=round(elapsed, 2))
    return LLMCompletion(text=text, tokens_used=tokens_used, model=model)
