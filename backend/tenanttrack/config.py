# backend/tenanttrack/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    app_name: str = "TenantTrack"
    database_url: str = "sqlite:///./tenanttrack.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth ----
    auth_mode: str = "dev"  # dev|jwt
    dev_auto_provision: bool = True

    # Dev header names
    dev_header_user_email: str = "X-User-Email"
    dev_header_user_role: str = "X-User-Role"

    jwt_secret: str = "dev-change-me"
    jwt_algorithm: str = "HS256"
    jwt_exp_minutes: int = 60 * 24  # 1 day

    # List endpoints return [] to anonymous callers unless set.
    allow_anonymous_listing: bool = False

    # ---- Lease rules ----
    min_lease_days: int = 180

    # ---- Payments ----
    stripe_secret_key: str | None = None
    payment_currency: str = "usd"

    # ---- Notifications ----
    notify_sender: str = "no-reply@tenanttrack.local"

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")
            if self.jwt_secret == "dev-change-me":
                raise ValueError("SECURITY: jwt_secret must be set in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
