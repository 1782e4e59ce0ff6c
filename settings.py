from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod"),
        extra="ignore",
    )

    # OpenAI-compatible LLM endpoint (Groq by default)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.groq.com/openai/v1"
    analysis_model: str = "llama-3.3-70b-versatile"
    match_model: str = "llama-3.3-70b-versatile"
    llm_timeout_seconds: float = 30.0

    # Upload limits
    max_upload_size_bytes: int = 5 * 1024 * 1024
    min_document_text_length: int = 50
    upload_dir: str = "./uploads"

    # When False, auth is bypassed with a local user and billing is inert
    auth_billing_enabled: bool = False

    # Cognito Settings (Optional for local dev)
    cognito_user_pool_id: Optional[str] = None
    cognito_app_client_id: Optional[str] = None
    cognito_domain: Optional[str] = None
    aws_region: Optional[str] = None

    # Stripe billing settings
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_id_premium: Optional[str] = None

    # Application base URL (for constructing callback URLs etc.)
    app_base_url: str = "http://localhost:8000"  # Default for local dev


@lru_cache()
def get_settings() -> Settings:
    return Settings()
