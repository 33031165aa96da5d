from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ---- App ----
    app_env: str = "local"  # local|dev|prod
    database_url: str = "sqlite:///./dealdesk.db"

    # ---- CORS (used by main.py) ----
    cors_allow_origins: list[str] | str = ["*"]

    # ---- Auth / tenancy ----
    auth_mode: str = "dev"  # dev|jwt

    # Dev header names
    dev_header_user_id: str = "X-User-Id"
    dev_header_role: str = "X-Role"
    dev_header_tenant_id: str = "X-Tenant-Id"
    dev_header_investor_id: str = "X-Investor-Id"

    # ---- JWT ----
    jwt_secret: str = "dev-change-me"
    jwt_exp_minutes: int = 60 * 24 * 7  # 7 days
    jwt_cookie_name: str = "dealdesk_jwt"

    # ---- Evidence / confidence ----
    comp_fresh_days: int = 180
    comp_stale_days: int = 365
    min_comp_count: int = 2

    downside_rent_factor: float = 0.9
    upside_rent_factor: float = 1.1

    # ---- Audit ----
    audit_metadata_max_chars: int = 256
    audit_background: bool = True

    def model_post_init(self, __context) -> None:
        env = (self.app_env or "local").strip().lower()
        is_prod = env in ("prod", "production")

        if is_prod:
            if (self.auth_mode or "").strip().lower() == "dev":
                raise ValueError("SECURITY: auth_mode=dev is not allowed in prod")

            origins = self.cors_allow_origins
            if origins == "*" or origins == ["*"] or (isinstance(origins, str) and "*" in origins):
                raise ValueError("SECURITY: cors_allow_origins wildcard is not allowed in prod")


settings = Settings()
