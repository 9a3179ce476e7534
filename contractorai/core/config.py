import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Dict, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Supabase Auth (JWT issued by Supabase GoTrue)
    SUPABASE_JWT_SECRET: Optional[str] = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"
    ALLOW_USER_ID_HEADER: bool = False  # X-User-Id fallback for dev/test only

    # Language model (Groq, OpenAI-compatible tool calling)
    GROQ_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama-3.3-70b-versatile"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 2048
    LLM_TIMEOUT_SECONDS: float = 60.0

    # RevenueCat
    REVENUECAT_API_URL: str = "https://api.revenuecat.com/v1"
    REVENUECAT_NATIVE_API_KEY: Optional[str] = None
    REVENUECAT_WEB_API_KEY: Optional[str] = None
    REVENUECAT_WEBHOOK_SECRET: Optional[str] = None
    REVENUECAT_TIMEOUT_SECONDS: float = 10.0
    PRO_ENTITLEMENT_ID: str = "ContractorAI Pro"

    # Web billing: "revenuecat" (RevenueCat Web Billing) or "stripe"
    WEB_BILLING_PROVIDER: str = "revenuecat"
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_PRICE_ENTITLEMENTS: str = ""  # comma-separated price_id:entitlement pairs

    # Email (Gmail API)
    GMAIL_API_URL: str = "https://gmail.googleapis.com/gmail/v1"
    EMAIL_TIMEOUT_SECONDS: float = 15.0

    # App
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def stripe_price_entitlements(self) -> Dict[str, str]:
        """Parse STRIPE_PRICE_ENTITLEMENTS into a price_id -> entitlement map."""
        mapping: Dict[str, str] = {}
        for pair in self.STRIPE_PRICE_ENTITLEMENTS.split(","):
            if ":" not in pair:
                continue
            price_id, entitlement = pair.split(":", 1)
            if price_id.strip() and entitlement.strip():
                mapping[price_id.strip()] = entitlement.strip()
        return mapping


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("contractorai")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SUPABASE_JWT_SECRET",
        "GROQ_API_KEY",
        "REVENUECAT_NATIVE_API_KEY",
    ]
    if (cfg.WEB_BILLING_PROVIDER or "").lower() == "stripe":
        required_keys.append("STRIPE_SECRET_KEY")
    else:
        required_keys.append("REVENUECAT_WEB_API_KEY")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
