from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import streamlit as st

from ..constants import (
    CHUNK_DELAY_SEC,
    CHUNK_SIZE,
    CHUNK_TIMEOUT_SEC,
    SHEET_WORKSHEET_NAME,
    SUBMIT_MAX_ATTEMPTS,
    SUBMIT_TIMEOUT_SEC,
)

TRANSPORT_MODES = ("json", "form")


def _secrets_dict() -> Dict[str, Any]:
    if hasattr(st, "secrets"):
        try:
            return st.secrets.to_dict()
        except Exception:
            # No secrets.toml; environment variables still apply.
            return {}
    return {}


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _as_bool(value: Any) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def get_cfg(secrets: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Return normalized survey configuration with environment fallbacks.

    Reads ``[survey]``, ``[sheets]`` and ``[gcp_service_account]`` from
    ``st.secrets``; any missing key falls back to its environment variable.
    """
    secrets = dict(secrets) if secrets is not None else _secrets_dict()
    survey = secrets.get("survey", {}) or {}
    sheets = secrets.get("sheets", {}) or {}
    gsa = secrets.get("gcp_service_account", {}) or {}

    return {
        "endpoint_url": _first(
            survey.get("endpoint_url"),
            survey.get("apps_script_url"),
            os.getenv("SURVEY_ENDPOINT_URL"),
        ),
        "transport_mode": _first(survey.get("transport_mode"), os.getenv("SURVEY_TRANSPORT_MODE"), "json"),
        "question_source": _first(survey.get("question_source"), os.getenv("SURVEY_QUESTION_SOURCE"), "data"),
        "chunk_size": _first(survey.get("chunk_size"), os.getenv("SURVEY_CHUNK_SIZE"), CHUNK_SIZE),
        "chunk_threshold": _first(survey.get("chunk_threshold"), os.getenv("SURVEY_CHUNK_THRESHOLD")),
        "chunk_delay": _first(survey.get("chunk_delay"), os.getenv("SURVEY_CHUNK_DELAY"), CHUNK_DELAY_SEC),
        "timeout": _first(survey.get("timeout"), os.getenv("SURVEY_TIMEOUT"), SUBMIT_TIMEOUT_SEC),
        "chunk_timeout": _first(survey.get("chunk_timeout"), os.getenv("SURVEY_CHUNK_TIMEOUT"), CHUNK_TIMEOUT_SEC),
        "max_attempts": _first(survey.get("max_attempts"), os.getenv("SURVEY_MAX_ATTEMPTS"), SUBMIT_MAX_ATTEMPTS),
        "local_store_dir": _first(survey.get("local_store_dir"), os.getenv("SURVEY_LOCAL_STORE_DIR"), "data/fallback"),
        "export_dir": _first(survey.get("export_dir"), os.getenv("SURVEY_EXPORT_DIR"), "data/exports"),
        "export_format": _first(survey.get("export_format"), os.getenv("SURVEY_EXPORT_FORMAT"), "xlsx"),
        "spreadsheet_id": _first(
            sheets.get("spreadsheet_id"),
            sheets.get("sheet_id"),
            os.getenv("GOOGLE_SHEET_ID"),
        ),
        "spreadsheet_url": _first(sheets.get("spreadsheet_url"), sheets.get("url"), os.getenv("GOOGLE_SHEET_URL")),
        "worksheet_name": _first(sheets.get("worksheet_name"), sheets.get("worksheet"), SHEET_WORKSHEET_NAME),
        "service_account": dict(gsa),
        "dry_run": _as_bool(_first(survey.get("dry_run"), os.getenv("DRY_RUN"))),
    }


@dataclass(frozen=True)
class SurveySettings:
    question_source: str = "data"
    endpoint_url: Optional[str] = None
    transport_mode: str = "json"
    chunk_size: int = CHUNK_SIZE
    chunk_threshold: int = CHUNK_SIZE
    chunk_delay: float = CHUNK_DELAY_SEC
    timeout: float = SUBMIT_TIMEOUT_SEC
    chunk_timeout: float = CHUNK_TIMEOUT_SEC
    max_attempts: int = SUBMIT_MAX_ATTEMPTS
    local_store_dir: str = "data/fallback"
    export_dir: str = "data/exports"
    export_format: str = "xlsx"
    spreadsheet_id: Optional[str] = None
    spreadsheet_url: Optional[str] = None
    worksheet_name: str = SHEET_WORKSHEET_NAME
    dry_run: bool = False

    @property
    def sheets_configured(self) -> bool:
        return bool(self.spreadsheet_id or self.spreadsheet_url)


def load_settings(secrets: Optional[Mapping[str, Any]] = None) -> SurveySettings:
    cfg = get_cfg(secrets)
    mode = str(cfg["transport_mode"]).lower()
    if mode not in TRANSPORT_MODES:
        raise ValueError(f"transport_mode must be one of {TRANSPORT_MODES}, got {mode!r}")
    chunk_size = int(cfg["chunk_size"])
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1.")
    threshold = cfg["chunk_threshold"]
    return SurveySettings(
        question_source=str(cfg["question_source"]),
        endpoint_url=cfg["endpoint_url"],
        transport_mode=mode,
        chunk_size=chunk_size,
        chunk_threshold=int(threshold) if threshold is not None else chunk_size,
        chunk_delay=float(cfg["chunk_delay"]),
        timeout=float(cfg["timeout"]),
        chunk_timeout=float(cfg["chunk_timeout"]),
        max_attempts=max(1, int(cfg["max_attempts"])),
        local_store_dir=str(cfg["local_store_dir"]),
        export_dir=str(cfg["export_dir"]),
        export_format=str(cfg["export_format"]).lower(),
        spreadsheet_id=cfg["spreadsheet_id"],
        spreadsheet_url=cfg["spreadsheet_url"],
        worksheet_name=str(cfg["worksheet_name"]),
        dry_run=bool(cfg["dry_run"]),
    )


def now_utc_iso() -> str:
    """Return the current UTC time in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()
