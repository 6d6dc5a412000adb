import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings(BaseModel):
    database_url: str = Field(
        default=os.getenv("DATABASE_URL", "sqlite+pysqlite:///./tablekit.db")
    )

    # Signed action callbacks
    signing_key: Optional[str] = Field(
        default=os.getenv("TABLES_SIGNING_KEY") or os.getenv("JWT_SECRET")
    )
    signing_algorithm: str = Field(default=os.getenv("TABLES_SIGNING_ALGORITHM", "HS256"))
    callback_issuer: str = Field(default=os.getenv("TABLES_CALLBACK_ISSUER", "tablekit"))
    callback_ttl_minutes: int = Field(
        default=int(os.getenv("TABLES_CALLBACK_TTL_MINUTES", "15"))
    )
    action_path: str = Field(default=os.getenv("TABLES_ACTION_PATH", "/tables/action"))

    # Pagination
    default_per_page: int = Field(default=int(os.getenv("TABLES_DEFAULT_PER_PAGE", "25")))
    max_per_page: int = Field(default=int(os.getenv("TABLES_MAX_PER_PAGE", "100")))

    # Cookie security
    secure_cookies: bool = Field(default=_env_bool("SECURE_COOKIES", "true"))
    csrf_enabled: bool = Field(default=_env_bool("TABLES_CSRF_ENABLED", "true"))

    log_level: str = Field(default=os.getenv("LOG_LEVEL", "INFO"))

    def require_signing_key(self) -> str:
        """Return the callback signing key, failing loudly when it is unset."""
        key = os.getenv("TABLES_SIGNING_KEY") or os.getenv("JWT_SECRET") or self.signing_key
        if not key:
            from tablekit.services.tables.exceptions import TableConfigurationError

            raise TableConfigurationError(
                "TABLES_SIGNING_KEY (or JWT_SECRET) must be configured to sign action callbacks"
            )
        return key

    class Config:
        frozen = True


settings = Settings()
