"""Startup configuration.

``validate_config()`` checks that every required environment variable is set
before the server accepts traffic, so a missing key fails loudly at boot
instead of mid-call.  ``Settings.from_env()`` gathers the values the service
wiring needs into one immutable object.
"""

import os
import sys
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "OPENAI_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "DEALMACHINE_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "PUBLIC_BASE_URL",
]

OPTIONAL_VARS = [
    "OPENAI_MODEL",
    "DEALSYNC_PAGE_SIZE",
    "DEALSYNC_CALL_LIMIT",
    "DEALSYNC_TAG",
    "ACCEPTED_COUNTRY_PREFIX",
    "SESSION_TTL_SECONDS",
    "LOG_LEVEL",
]


def missing_required_vars() -> list[str]:
    return [var for var in REQUIRED_VARS if not os.getenv(var, "").strip()]


def validate_config() -> None:
    """Fail fast on an incomplete environment.

    A missing or blank required variable stops the process with exit code 1.
    Unset optional variables are reported once, in a single warning.
    """
    missing = missing_required_vars()
    if missing:
        print(
            "FATAL: cannot start without " + ", ".join(missing)
            + ". Set them in .env (local) or in the host's secret store.",
            file=sys.stderr,
        )
        sys.exit(1)

    defaulted = [var for var in OPTIONAL_VARS if not os.getenv(var)]
    if defaulted:
        logger.warning("Using defaults for unset env vars: %s", ", ".join(defaulted))


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    dealmachine_api_key: str
    supabase_url: str
    supabase_key: str
    public_base_url: str

    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    dealmachine_base_url: str = "https://api.dealmachine.com/public/v1"
    twilio_api_base: str = "https://api.twilio.com"
    supabase_table: str = "leads"

    page_size: int = 100
    default_call_limit: int = 3
    follow_up_tag: str = "Follow Up Needed"
    country_prefix: str = "+1"
    session_ttl_seconds: int = 3600

    log_level: str = "INFO"
    port: int = 5050

    @property
    def webhook_url(self) -> str:
        """Where Twilio posts each conversational turn."""
        return f"{self.public_base_url.rstrip('/')}/webhook"

    @property
    def status_callback_url(self) -> str:
        """Where Twilio reports call lifecycle changes (used to end sessions)."""
        return f"{self.public_base_url.rstrip('/')}/call-status"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
            dealmachine_api_key=os.getenv("DEALMACHINE_API_KEY", ""),
            supabase_url=os.getenv("SUPABASE_URL", ""),
            supabase_key=os.getenv("SUPABASE_KEY", ""),
            public_base_url=os.getenv("PUBLIC_BASE_URL", ""),
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o",
            openai_base_url=os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1",
            dealmachine_base_url=os.getenv("DEALMACHINE_BASE_URL") or "https://api.dealmachine.com/public/v1",
            twilio_api_base=os.getenv("TWILIO_API_BASE") or "https://api.twilio.com",
            supabase_table=os.getenv("SUPABASE_TABLE") or "leads",
            page_size=_int_env("DEALSYNC_PAGE_SIZE", 100),
            default_call_limit=_int_env("DEALSYNC_CALL_LIMIT", 3),
            follow_up_tag=os.getenv("DEALSYNC_TAG") or "Follow Up Needed",
            country_prefix=os.getenv("ACCEPTED_COUNTRY_PREFIX") or "+1",
            session_ttl_seconds=_int_env("SESSION_TTL_SECONDS", 3600),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
            port=_int_env("PORT", 5050),
        )
