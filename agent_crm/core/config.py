"""Configuration management for the Agent CRM engine."""

from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ===========================================
    # Supabase Configuration
    # ===========================================
    SUPABASE_URL: str = Field(default="", description="Supabase project URL")
    SUPABASE_KEY: str = Field(default="", description="Supabase service role key")

    # ===========================================
    # Generative Inference Configuration
    # ===========================================
    GEMINI_API_KEY: str = Field(default="", description="Gemini API key")
    LLM_MODEL: str = Field(
        default="gemini/gemini-2.0-flash",
        description="Model identifier passed to the CrewAI LLM wrapper"
    )
    LLM_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Upper bound for a single generate() call"
    )

    # ===========================================
    # Outbound Email Configuration (Resend)
    # ===========================================
    RESEND_API_KEY: str = Field(default="", description="Resend API key")
    RESEND_API_URL: str = Field(
        default="https://api.resend.com",
        description="Resend API base URL"
    )
    EMAIL_FROM: str = Field(
        default="Sales Assistant <onboarding@resend.dev>",
        description="Sender used for outbound emails"
    )

    # ===========================================
    # Server Configuration
    # ===========================================
    DEBUG: bool = Field(default=True, description="Debug mode")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


# ===========================================
# Policy Constants
# ===========================================

# Deal creation
DEAL_CREATION_SCORE_THRESHOLD = 70
DEAL_CREATION_STATUSES = ("new", "contacted", "qualified")
DEFAULT_DEAL_VALUE = 5000

# Sentiment bands (0 = very negative, 1 = very positive)
SENTIMENT_HIGH = 0.7
SENTIMENT_LOW = 0.3
REPLY_REVIEW_SENTIMENT = 0.6

# Meeting escalation
CONFIDENCE_ALERT_THRESHOLD = 0.5

# Staleness bands for probability recompute (days since last activity)
ACTIVE_DAYS = 7
STALE_DAYS = 14
DORMANT_DAYS = 30

# Follow-up scheduling
FOLLOWUP_AFTER_DAYS = 7
FOLLOWUP_BATCH_LIMIT = 10

# Lead pipeline
UNRESPONSIVE_LOST_DAYS = 30
NEVER_CONTACTED_DAYS = 999

# Live meeting session
LIVE_SESSION_TEMPERATURE = 0.7
LIVE_SESSION_MAX_TOKENS = 500


# ===========================================
# Company Profile
# ===========================================

class CompanyProfile(BaseModel):
    """Who we sell as, and to whom. Passed explicitly to drafting services."""
    company: str = Field("Your Company", description="Selling company name")
    industry: str = Field("Technology", description="Selling company industry")
    target_industries: List[str] = Field(default_factory=list)
    target_roles: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)

    @classmethod
    def default(cls) -> "CompanyProfile":
        """Profile used when the deployment has not configured one."""
        return cls(
            company="Your Company",
            industry="Technology",
            target_industries=["SaaS", "Technology", "Startups"],
            target_roles=["Sales Manager", "Head of Sales", "VP Sales"],
            keywords=["CRM", "sales automation", "lead generation", "pipeline management"],
        )
