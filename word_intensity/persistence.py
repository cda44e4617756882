# Storage helpers: sheet rows and the local append-only fallback store.
from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from .constants import LOCAL_STORE_NAMESPACE, SHEET_COLS
from .errors import FallbackError
from .utils.persistence import now_utc_iso

if TYPE_CHECKING:
    from .submission import SubmissionBatch

logger = logging.getLogger(__name__)


def normalize_for_storage(value: Any) -> Any:
    """Coerce survey values into primitives for spreadsheet cells; text keeps its characters."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return ""
        cleaned = trimmed.replace("\n", " ").replace("\r", " ").replace("\t", " ")
        return " ".join(cleaned.split())
    return str(value)


def build_sheet_rows(payload: Dict[str, Any]) -> List[List[Any]]:
    """Flatten a submission document into one row per response, aligned with SHEET_COLS."""
    participant = payload.get("participant", {}) or {}
    stamp = payload.get("timestamp") or now_utc_iso()
    rows: List[List[Any]] = []
    for item in payload.get("responses", []) or []:
        record = {
            "Timestamp": stamp,
            "Survey": payload.get("selectedSurvey"),
            "Name": participant.get("name"),
            "Age": participant.get("age"),
            "Gender": participant.get("gender"),
            "Country": participant.get("country"),
            "First Language": participant.get("firstLanguage"),
            "Question #": item.get("questionNumber"),
            "Meaning": item.get("meaning"),
            "Most Intense": item.get("mostIntense"),
            "Least Intense": item.get("leastIntense"),
            "Is Example": bool(item.get("isExample")),
        }
        rows.append([normalize_for_storage(record[column]) for column in SHEET_COLS])
    return rows


class LocalFallbackStore:
    """Append-only list of submission records kept under a fixed namespace.

    Each record is one JSON line in ``<directory>/<namespace>.jsonl``; existing
    lines are never rewritten.
    """

    def __init__(self, directory: str | Path, namespace: str = LOCAL_STORE_NAMESPACE) -> None:
        self.directory = Path(directory)
        self.namespace = namespace

    @property
    def path(self) -> Path:
        return self.directory / f"{self.namespace}.jsonl"

    def append(self, batch: "SubmissionBatch") -> str:
        record_id = str(uuid.uuid4())
        record = {
            "id": record_id,
            "timestamp": now_utc_iso(),
            "selectedSurvey": batch.survey_id,
            "participant": {**batch.participant.to_payload(), "timestamp": batch.participant.timestamp},
            "responses": [item.to_payload() for item in batch.responses],
        }
        line = json.dumps(record, ensure_ascii=False)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as exc:
            raise FallbackError(f"Local save failed: {exc}") from exc
        logger.info("Saved submission %s to local store %s", record_id, self.path)
        return record_id

    def records(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
