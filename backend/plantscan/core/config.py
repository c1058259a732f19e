"""
Application configuration

All settings are managed with Pydantic Settings.
Values are read from the environment and from the project's .env file,
with type validation and defaults.

Key points:
- BaseSettings reads environment variables automatically
- computed_field derives values (database URI, CORS list) from other fields
- model_validator rejects default secrets outside local development
"""
import secrets
import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """
    Parse the CORS origins value

    Accepts either a comma separated string
    ("http://localhost:3000,http://localhost:3001") or a list.

    Raises:
        ValueError: when the value is neither
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    Application settings

    Sources, highest priority first:
    1. environment variables
    2. the .env file
    3. defaults below
    """
    model_config = SettingsConfigDict(
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = secrets.token_urlsafe(32)  # JWT signing key
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "Plant Scan"
    SENTRY_DSN: HttpUrl | None = None

    # A full URL wins over the individual Postgres fields (used for SQLite in tests).
    DATABASE_URL: str | None = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(
            PostgresDsn.build(
                scheme="postgresql+psycopg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # Public site URL, used for payment return links
    SITE_URL: str = "http://localhost:3000"

    # YooKassa
    YOOKASSA_SHOP_ID: str | None = None
    YOOKASSA_SECRET_KEY: str | None = None
    YOOKASSA_API_URL: str = "https://api.yookassa.ru/v3"
    YOOKASSA_TIMEOUT_SECONDS: float = 20.0

    # Bearer secret shared with the external cron that triggers renew/expire
    CRON_SECRET: str | None = None

    # Subscription plan
    SUBSCRIPTION_PRICE: int = 9900  # minor units (kopecks)
    SUBSCRIPTION_CURRENCY: str = "RUB"
    SUBSCRIPTION_DESCRIPTION: str = "СканБотан — подписка 1 месяц"
    CARD_VERIFICATION_AMOUNT: int = 100  # minimal YooKassa charge, 1 RUB
    FREE_SCAN_LIMIT: int = 10
    GRACE_PERIOD_DAYS: int = 3

    # Together AI vision model
    PLANT_AI_MOCK: bool = True  # local development without network calls
    TOGETHER_API_KEY: str | None = None
    TOGETHER_BASE_URL: str = "https://api.together.xyz/v1"
    PLANT_AI_MODEL: str = "mistralai/Ministral-3-14B-Instruct-2512"
    PLANT_AI_FALLBACK_MODEL: str = "Qwen/Qwen3-VL-32B-Instruct"
    PLANT_AI_TIMEOUT_SECONDS: float = 60.0

    # PDF reports
    PDF_FONT_URL: str = (
        "https://github.com/googlefonts/noto-fonts/raw/main/hinted/ttf/NotoSans/NotoSans-Regular.ttf"
    )

    # Seed data, "CODE:PERCENT[:MAX_USES]" entries separated by commas
    INITIAL_PROMO_CODES: str = ""

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("YOOKASSA_SECRET_KEY", self.YOOKASSA_SECRET_KEY)
        self._check_default_secret("CRON_SECRET", self.CRON_SECRET)

        return self


settings = Settings()  # type: ignore
