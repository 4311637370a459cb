from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # Access tokens are issued by Supabase Auth; we only verify them
    supabase_jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Slot grid. Used when a professional has enabled a day but its hours are unreadable
    default_slot_labels: str = "9:00 AM,10:00 AM,11:00 AM,1:00 PM,2:00 PM,3:00 PM"

    # Cancellation policy
    cancellation_grace_hours: float = 0.0
    default_cancellation_24h_percentage: float = 50.0
    default_cancellation_48h_percentage: float = 25.0

    # How often confirmed bookings whose appointment has ended are marked completed
    booking_completion_interval_minutes: int = 60

    # Platform fee charged on every booking, in dollars
    service_fee_dollars: float = 1.0

    # Env
    env: str = "development"

    # Stripe. Leave the secret key empty to disable payment calls.
    stripe_secret_key: str = ""

    # Brevo transactional email. Leave brevo_api_key empty to disable sending.
    brevo_api_key: str = ""
    brevo_api_url: str = "https://api.brevo.com/v3/smtp/email"
    from_email: str = ""
    from_name: str = "The Suite"
    site_name: str = "The Suite"
    site_url: str = "http://localhost:3000"

    # Anonymous activity tracking
    session_cookie_name: str = "suite_session_id"
    session_cookie_max_age_days: int = 30

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def default_slot_labels_list(self) -> list[str]:
        return [s.strip() for s in self.default_slot_labels.split(",") if s.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.brevo_api_key and self.from_email)

    @property
    def payments_enabled(self) -> bool:
        return bool(self.stripe_secret_key)


settings = Settings()
