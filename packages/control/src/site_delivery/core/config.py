from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]
ProviderName = Literal["codecommit", "github"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SITE_DELIVERY_",
        env_file=".env",
        extra="ignore",
    )

    pipeline_name: str = Field(default="static-site-pipeline")
    account_id: str = Field(default="unknown")
    region: str = Field(default="us-east-1")

    # source
    source_provider: ProviderName = Field(default="codecommit")
    repository_name: str = Field(default="site")
    branch: str = Field(default="main")
    github_owner: str | None = Field(default=None)
    github_repo: str | None = Field(default=None)
    github_token: SecretStr | None = Field(default=None)
    github_api_url: str = Field(default="https://api.github.com")

    # build projects; the validation project must never be the release project
    test_project: str = Field(default="site-test")
    release_project: str = Field(default="site-build")
    validation_project: str = Field(default="site-pull-request")
    build_poll_seconds: float = Field(default=10.0, gt=0)
    build_timeout_seconds: float = Field(default=3600.0, gt=0)

    # artifacts / deploy
    artifact_bucket: str | None = Field(default=None)
    site_bucket: str | None = Field(default=None)
    distribution_id: str | None = Field(default=None)

    # notifications
    subscribers: list[str] = Field(default_factory=list)
    rules_file: Path | None = Field(default=None)

    data_root: Path = Field(default=Path("data"))
    run_root: Path = Field(default=Path("_runs"))
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    @field_validator("validation_project")
    @classmethod
    def _validation_project_is_distinct(cls, v: str, info) -> str:
        release = info.data.get("release_project")
        if release is not None and v == release:
            raise ValueError(
                "validation_project must differ from release_project "
                f"(both are {v!r})"
            )
        return v


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
