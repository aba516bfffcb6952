"""Configuration management: process settings and build-group configuration files."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (Pydantic-powered)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Local cache
    cache_dir: Path = Field(default=Path("./cache"))

    # Database (build index)
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "triage"
    db_password: str = "triage"
    db_name: str = "triage"
    db_pool_min_size: int = 2

    # Object Storage (GCS XML API / S3 compatible)
    s3_endpoint: str = "https://storage.googleapis.com"
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None
    s3_region: str = "us-east-1"

    # Application
    log_level: str = "INFO"
    num_workers: int = 10
    age_limit: str = "14d"

    @property
    def database_url(self) -> str:
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def value_cache_dir(self) -> Path:
        return self.cache_dir / "builds"


# Global settings instance
settings = Settings()


class TestGroup(BaseModel):
    """A named source of builds sharing one object-store prefix."""

    __test__ = False

    model_config = ConfigDict(extra="ignore")

    name: str
    gcs_prefix: str


class TestGridConfig(BaseModel):
    """Subset of a TestGrid configuration file used for discovery."""

    __test__ = False

    model_config = ConfigDict(extra="ignore")

    test_groups: List[TestGroup] = Field(default_factory=list)


def load_config(path: Path | str) -> TestGridConfig:
    """Load a YAML (or JSON) build-group configuration file."""
    with open(path, "r", encoding="utf-8") as f:
        payload = yaml.safe_load(f)
    return TestGridConfig.model_validate(payload or {})


def load_test_groups(paths: Iterable[Path | str]) -> List[TestGroup]:
    groups: List[TestGroup] = []
    for path in paths:
        groups.extend(load_config(path).test_groups)
    return groups


_duration_re = re.compile(r"(\d+(?:\.\d+)?)([smhdw])")
_duration_units = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def parse_age(value: str) -> timedelta:
    """Parse a duration such as ``14d``, ``336h`` or ``1d12h``; ``0`` disables the limit."""
    text = value.strip().lower()
    if text in {"", "0"}:
        return timedelta(0)

    total = timedelta(0)
    position = 0
    for match in _duration_re.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _duration_units[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def cutoff_timestamp(age: timedelta, now: Optional[datetime] = None) -> Optional[int]:
    """Unix timestamp of ``now - age``, or None when the age limit is disabled."""
    if not age:
        return None
    now = now or datetime.now(timezone.utc)
    return int((now - age).timestamp())
