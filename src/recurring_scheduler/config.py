from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

RULE_STORE_BACKENDS = ("supabase", "memory")


class Settings(BaseSettings):
    scheduler_env: str = "development"
    log_level: str = "INFO"

    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_schema: str = "public"
    supabase_timeout_seconds: int = 30

    rule_store_backend: str = "supabase"
    recurring_rules_table: str = "recurring_rules"
    transactions_table: str = "transactions"
    scheduler_leases_table: str = "scheduler_leases"

    recurring_page_size: int = 1000
    recurring_max_workers: int = 1
    recurring_lease_seconds: int = 900

    cron_secret: str = ""
    cron_secret_name: str = "CRON_SECRET"
    cron_secret_cache_seconds: int = 300
    gcp_project_id: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("rule_store_backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: object) -> str:
        backend = str(value or "supabase").strip().lower()
        if backend not in RULE_STORE_BACKENDS:
            raise ValueError(
                f"rule_store_backend must be one of {', '.join(RULE_STORE_BACKENDS)}"
            )
        return backend

    @field_validator("recurring_max_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("recurring_max_workers must be at least 1")
        return value

    @field_validator("recurring_page_size")
    @classmethod
    def _positive_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("recurring_page_size must be at least 1")
        return value


settings = Settings()
