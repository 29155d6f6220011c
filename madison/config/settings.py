from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Madison Studio Backend"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Madison Studio prompt assembly and generation API"
    APP_AUTHOR: str = "Madison Studio Engineering"

    # Supabase settings
    SUPABASE_URL: str = Field(default="", description="Supabase project URL (https://xxx.supabase.co)")
    SUPABASE_ANON_KEY: str = Field(default="", description="Supabase anonymous/public key")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(default="", description="Supabase service role key (for admin operations)")
    GENERATED_IMAGES_BUCKET: str = "generated-images"

    # Local auth
    LOCAL_AUTH_SECRET: str = "JWT_SECRET_KEY"
    LOCAL_AUTH_TOKEN_EXP_SECONDS: int = 3600

    # Comma separated list of emails that bypass subscription tiers
    SUPER_ADMIN_EMAILS: str = ""

    # Anthropic (primary text provider)
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: Optional[str] = None
    CLAUDE_TEXT_MODEL: str = "claude-sonnet-4-20250514"

    # Gemini (secondary text provider, default image provider)
    GEMINI_API_KEY: str = ""
    GEMINI_TEXT_MODEL: str = "gemini-2.0-flash"
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image-preview"

    # Freepik (entitled image provider, video provider)
    FREEPIK_API_KEY: str = ""
    FREEPIK_API_BASE: str = "https://api.freepik.com/v1/ai"
    FREEPIK_POLL_ATTEMPTS: int = 60
    FREEPIK_POLL_INTERVAL_SECONDS: float = 2.0
    FREEPIK_VIDEO_POLL_ATTEMPTS: int = 120
    FREEPIK_VIDEO_POLL_INTERVAL_SECONDS: float = 3.0

    # Generation tuning
    AI_REQUEST_TIMEOUT_SECONDS: float = 60.0
    AI_MAX_ATTEMPTS: int = 3
    AI_RETRY_BASE_DELAY_SECONDS: float = 1.0
    AI_RETRY_MAX_DELAY_SECONDS: float = 8.0
    TEXT_MAX_TOKENS: int = 4096
    TEXT_TEMPERATURE: float = 0.7
    REFERENCE_IMAGE_TIMEOUT_SECONDS: float = 15.0

    @computed_field
    @property
    def super_admin_emails(self) -> List[str]:
        """Normalized super-admin email list."""
        return [
            email.strip().lower()
            for email in self.SUPER_ADMIN_EMAILS.split(",")
            if email.strip()
        ]


settings = Settings()
