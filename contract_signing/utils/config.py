"""Configuration management using pydantic-settings"""

from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_TEMPLATE_ALIASES: Dict[str, List[str]] = {
    "contract": [
        "registro de marca",
        "contrato padrão",
        "contrato padrao",
        "prestação de serviços",
        "prestacao de servicos",
    ],
    "procuracao": ["procuração", "procuracao"],
    "distrato_multa": ["distrato com multa", "distrato multa"],
    "distrato_sem_multa": ["distrato sem multa"],
}

DEFAULT_OTS_CALENDARS: List[str] = [
    "https://a.pool.opentimestamps.org",
    "https://b.pool.opentimestamps.org",
    "https://alice.btc.calendar.opentimestamps.org",
    "https://bob.btc.calendar.opentimestamps.org",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database mode: 'supabase' or 'sqlite'
    db_mode: str = Field(default="sqlite", description="Database backend: 'supabase' or 'sqlite'")
    database_path: str = Field(default="./data/contracts.db", description="Path to SQLite database")
    log_level: str = Field(default="INFO", description="Logging level")

    # Supabase settings
    supabase_url: Optional[str] = Field(default=None, description="Supabase project URL")
    supabase_key: Optional[str] = Field(default=None, description="Supabase anon key")
    supabase_service_key: Optional[str] = Field(default=None, description="Supabase service role key")

    # Public links
    site_url: str = Field(default="https://webmarcas.net", description="Base URL for /sign and /verify links")
    brand_name: str = Field(default="WebMarcas", description="Sender name used in notifications")

    # Signature lifecycle
    signature_link_ttl_days: int = Field(default=7, description="Signature link validity in days")
    allow_direct_completion: bool = Field(
        default=True,
        description="Allow completion from link_generated/sent without a recorded view",
    )
    template_aliases: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_TEMPLATE_ALIASES.items()},
        description="Priority-ordered template name aliases per document type",
    )

    # Timestamp anchor (OpenTimestamps calendars)
    ots_calendar_servers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_OTS_CALENDARS),
        description="Calendar servers tried in order",
    )
    anchor_timeout_seconds: float = Field(default=10.0, description="Per-server anchor timeout")

    # SMS (Zenvia)
    sms_enabled: bool = Field(default=False, description="Enable SMS channel")
    zenvia_api_key: Optional[str] = Field(default=None, description="Zenvia API token")
    sms_sender_name: str = Field(default="WebMarcas", description="SMS sender id")

    # WhatsApp (BotConversa webhook)
    whatsapp_enabled: bool = Field(default=False, description="Enable WhatsApp channel")
    botconversa_webhook_url: Optional[str] = Field(default=None, description="BotConversa webhook URL")
    botconversa_auth_token: Optional[str] = Field(default=None, description="BotConversa bearer token")

    # Email (SMTP)
    email_enabled: bool = Field(default=False, description="Enable email channel")
    smtp_host: Optional[str] = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port (465 = implicit TLS)")
    smtp_user: Optional[str] = Field(default=None, description="SMTP username")
    smtp_password: Optional[str] = Field(default=None, description="SMTP password")
    smtp_from_email: Optional[str] = Field(default=None, description="From address")
    smtp_from_name: Optional[str] = Field(default=None, description="From display name")

    # Dispatcher
    channel_timeout_seconds: float = Field(default=15.0, description="HTTP timeout per channel call")
    dispatch_max_attempts: int = Field(default=5, description="Max attempts per logical notification")
    dispatch_retry_window_minutes: int = Field(
        default=60, description="Window in which a re-dispatch counts as a retry of the same row"
    )
    gateway_retry_count: int = Field(default=3, description="In-call tries for SMS and WhatsApp gateways")
    gateway_retry_backoff_seconds: float = Field(
        default=1.0, description="Linear backoff between gateway tries (seconds x try)"
    )

    # Reminder worker
    reminder_days_before: int = Field(default=2, description="Remind signers this many days before expiry")
    worker_reminder_time: str = Field(default="09:00", description="Daily reminder run time (HH:MM)")
    worker_retry_count: int = Field(default=3, description="Reminder job attempts")
    worker_retry_backoff: int = Field(default=30, description="Base backoff in seconds")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def get_settings() -> Settings:
    """Get application settings"""
    return Settings()
