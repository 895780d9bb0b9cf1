from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError

_SPREADSHEET_PATH = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")
_COLUMN_LETTER = re.compile(r"^[A-Z]{1,3}$")


def extract_spreadsheet_id(uri: str) -> str:
    """Return the spreadsheet id from a full Google Sheets URL or a bare id."""

    text = (uri or "").strip()
    parts = urlsplit(text)
    if parts.scheme and parts.netloc:
        match = _SPREADSHEET_PATH.search(parts.path)
        if match:
            return match.group(1)
    return text


class ColumnsConfig(BaseModel):
    """Column letters of the weekly tab layout."""

    date: str = Field("A", description="Column with the application date")
    sequence_no: str = Field("B", description="Column with the row sequence number")
    company: str = Field("D", description="Column with the company name")
    position: str = Field("E", description="Column with the position title")
    job_url: str = Field("F", description="Column with the job posting URL")
    applied_url: str = Field("G", description="Column with the URL that was applied to")
    approved: str = Field("H", description="Checkbox column cleared for duplicates")
    feedback: str = Field("I", description="Column that receives duplicate feedback")
    last: str = Field("J", description="Last column read from each tab")

    @field_validator("*")
    @classmethod
    def _validate_letter(cls, value: str) -> str:
        letter = value.strip().upper()
        if not _COLUMN_LETTER.match(letter):
            raise ValueError(f"'{value}' is not a column letter")
        return letter

    def index(self, name: str) -> int:
        """0-based index of the column stored under ``name``."""

        letter = getattr(self, name)
        result = 0
        for char in letter:
            result = result * 26 + (ord(char) - ord("A") + 1)
        return result - 1


class SheetsConfig(BaseModel):
    spreadsheet: str = Field(
        ..., description="Spreadsheet ID or full Google Sheets URL holding the weekly tabs"
    )
    credentials_file: Optional[Path] = Field(
        None, description="Path to the Google service account JSON credentials"
    )
    credentials_json_env: Optional[str] = Field(
        None,
        description="Environment variable holding the service account JSON document",
    )

    @field_validator("credentials_file")
    @classmethod
    def _expand_credentials_path(cls, value: Optional[Path]) -> Optional[Path]:
        if value is None:
            return None
        return value.expanduser().resolve()

    @model_validator(mode="after")
    def _ensure_credentials(self) -> "SheetsConfig":
        if not self.credentials_file and not self.credentials_json_env:
            raise ValueError(
                "Sheets config must define 'credentials_file' or 'credentials_json_env'"
            )
        if not extract_spreadsheet_id(self.spreadsheet):
            raise ValueError("Sheets config 'spreadsheet' must not be empty")
        return self

    @property
    def spreadsheet_id(self) -> str:
        return extract_spreadsheet_id(self.spreadsheet)

    def credentials_json(self) -> Optional[str]:
        if not self.credentials_json_env:
            return None
        return os.environ.get(self.credentials_json_env)


class AppConfig(BaseModel):
    sheets: SheetsConfig
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    profile_name: str = Field(
        "default",
        description="Name of the active profile; part of the read cache key",
    )
    recent_tab_count: Optional[int] = Field(
        4,
        ge=1,
        description="Number of most recent tabs checked for new links (null = all tabs)",
    )
    cache_ttl_seconds: float = Field(
        300.0,
        gt=0,
        description="Seconds fetched entries stay reusable",
    )
    max_workers: int = Field(
        8,
        ge=1,
        le=32,
        description="Number of tabs read in parallel",
    )


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from a YAML file and return a validated object."""

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if data is None:
        msg = f"Configuration file is empty: {config_path}"
        raise ConfigError(msg)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
