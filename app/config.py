"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_LOCALES: tuple[str, ...] = ("th", "en", "id")
DEFAULT_QUALITY_LADDER: tuple[int, ...] = (1080, 720, 480)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="DramaBrowse", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    catalog_api_url: HttpUrl = Field(
        default="https://api.megawe.net/api/dramabox", alias="CATALOG_API_URL"
    )
    http_timeout_seconds: float = Field(
        default=15.0, alias="HTTP_TIMEOUT", gt=0, le=120
    )

    default_locale: str = Field(default="th", alias="DEFAULT_LOCALE")
    supported_locales: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_LOCALES, alias="SUPPORTED_LOCALES"
    )

    cache_ttl_seconds: int = Field(default=300, alias="CACHE_TTL", ge=1)
    shelf_page_count: int = Field(default=3, alias="SHELF_PAGES", ge=1, le=20)
    home_page_size: int = Field(default=50, alias="HOME_PAGE_SIZE", ge=1, le=200)

    quality_ladder: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_QUALITY_LADDER, alias="QUALITY_LADDER"
    )
    preferred_quality: int | None = Field(default=None, alias="PREFERRED_QUALITY")

    progress_history_limit: int = Field(
        default=50, alias="PROGRESS_LIMIT", ge=1, le=1_000
    )
    completion_threshold: float = Field(
        default=0.95, alias="COMPLETION_THRESHOLD", gt=0, le=1
    )

    storage_backend: Literal["memory", "database"] = Field(
        default="memory", alias="STORAGE_BACKEND"
    )
    storage_capacity_bytes: int = Field(
        default=5 * 1024 * 1024, alias="STORAGE_CAPACITY", ge=1_024
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./dramabrowse.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("supported_locales", mode="before")
    @classmethod
    def _parse_locales(cls, value: object) -> tuple[str, ...]:
        """Normalise locale selections from environment values."""

        if value is None:
            return DEFAULT_LOCALES
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("SUPPORTED_LOCALES must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            locale = entry.lower()
            if locale and locale not in cleaned:
                cleaned.append(locale)
        if not cleaned:
            return DEFAULT_LOCALES
        return tuple(cleaned)

    @field_validator("default_locale", mode="before")
    @classmethod
    def _lower_locale(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("quality_ladder", mode="before")
    @classmethod
    def _parse_quality_ladder(cls, value: object) -> tuple[int, ...]:
        if value is None or value == "":
            return DEFAULT_QUALITY_LADDER
        if isinstance(value, str):
            raw_values: list[object] = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = list(value)
        else:
            raise TypeError("QUALITY_LADDER must be a string or iterable of integers")

        ladder: list[int] = []
        for entry in raw_values:
            if entry == "":
                continue
            try:
                tier = int(str(entry).strip().rstrip("pP"))
            except ValueError as exc:
                raise ValueError("Quality ladder entries must be integers") from exc
            if tier not in ladder:
                ladder.append(tier)
        if not ladder:
            return DEFAULT_QUALITY_LADDER
        return tuple(ladder)

    @model_validator(mode="after")
    def _check_default_locale(self) -> "Settings":
        """The default locale must be one of the supported locales."""

        if self.default_locale not in self.supported_locales:
            raise ValueError("DEFAULT_LOCALE must be one of SUPPORTED_LOCALES")
        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
