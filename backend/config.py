from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


def _load_version() -> str:
    version_path = Path(__file__).resolve().parent / "VERSION"
    try:
        return version_path.read_text().strip()
    except FileNotFoundError:
        return "0.1.0"


class Settings(BaseSettings):
    """Application configuration using Pydantic settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./data/community.db"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]

    # Application
    APP_NAME: str = "Alumni Community"
    APP_VERSION: str = _load_version()
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Sessions ───────────────────────────────────────────────────────
    SESSION_SECRET: str = "change-me-in-production"
    SESSION_ALGORITHM: str = "HS256"
    SESSION_TTL_SECONDS: int = 7 * 24 * 60 * 60  # one week, absolute
    SESSION_COOKIE_NAME: str = "sid"
    SESSION_COOKIE_SECURE: bool = True
    LOGIN_STATE_COOKIE_NAME: str = "login_state"
    LOGIN_STATE_TTL_SECONDS: int = 600

    # Externally visible host names, comma separated. One OIDC client
    # registration (and callback URL) per domain.
    APP_DOMAINS: str = "localhost"
    CALLBACK_SCHEME: str = "https"

    # ── OIDC provider (required) ───────────────────────────────────────
    OIDC_ISSUER_URL: str = "https://replit.com/oidc"
    OIDC_CLIENT_ID: str = "alumni-community"
    OIDC_CLIENT_SECRET: Optional[str] = None
    OIDC_DISCOVERY_TTL_SECONDS: int = 3600
    IDP_TIMEOUT_SECONDS: float = 10.0

    # ── OAuth2 profile provider (optional, Microsoft Graph shaped) ─────
    # Both credentials must be present for the provider to be enabled.
    OAUTH2_CLIENT_ID: Optional[str] = None
    OAUTH2_CLIENT_SECRET: Optional[str] = None
    OAUTH2_AUTHORIZE_URL: str = (
        "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
    )
    OAUTH2_TOKEN_URL: str = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
    OAUTH2_PROFILE_URL: str = "https://graph.microsoft.com/v1.0/me"
    OAUTH2_SCOPE: str = "user.read"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def domains(self) -> list[str]:
        """Parsed ``APP_DOMAINS`` list, blanks removed."""
        return [d.strip() for d in self.APP_DOMAINS.split(",") if d.strip()]

    @property
    def oauth2_configured(self) -> bool:
        return bool(self.OAUTH2_CLIENT_ID and self.OAUTH2_CLIENT_SECRET)


settings = Settings()
