from __future__ import annotations

import io
import logging
import re
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

import pandas as pd

from .constants import EXPORT_FILE_PREFIX
from .errors import FallbackError

if TYPE_CHECKING:
    from .responses import Participant
    from .submission import BatchResponse

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("xlsx", "csv")
RESPONSE_HEADER = ["Question #", "Meaning", "Most Intense", "Least Intense", "Is Attention Check"]


def export_filename(participant: "Participant", fmt: str = "xlsx", today: Optional[date] = None) -> str:
    safe_name = re.sub(r"[^a-zA-Z0-9]", "_", participant.name or "participant")
    day = (today or date.today()).isoformat()
    return f"{EXPORT_FILE_PREFIX}_{safe_name}_{day}.{fmt}"


def _sheet_rows(
    participant: "Participant", survey_id: Optional[str], responses: Sequence["BatchResponse"]
) -> List[List[Any]]:
    rows: List[List[Any]] = [
        ["Participant Information"],
        ["Name", participant.name],
        ["Age", participant.age],
        ["Gender", participant.gender],
        ["Country", participant.country],
        ["First Language", participant.first_language],
        ["Completion Date", participant.timestamp],
        ["Survey", survey_id or ""],
        [],
        ["Survey Responses"],
        list(RESPONSE_HEADER),
    ]
    for item in responses:
        rows.append(
            [item.question_number, item.meaning, item.most_intense, item.least_intense, item.is_example]
        )
    return rows


def _frame(rows: List[List[Any]]) -> pd.DataFrame:
    width = max(len(row) for row in rows)
    return pd.DataFrame([row + [""] * (width - len(row)) for row in rows])


def export_bytes(
    participant: "Participant",
    survey_id: Optional[str],
    responses: Sequence["BatchResponse"],
    fmt: str = "xlsx",
) -> bytes:
    """Render the participant block and response table as xlsx or csv bytes."""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}")
    df = _frame(_sheet_rows(participant, survey_id, responses))
    if fmt == "csv":
        return df.to_csv(index=False, header=False).encode("utf-8")
    out = io.BytesIO()
    with pd.ExcelWriter(out, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Survey Results", index=False, header=False)
    return out.getvalue()


def export_responses(
    participant: "Participant",
    survey_id: Optional[str],
    responses: Sequence["BatchResponse"],
    directory: str | Path,
    fmt: str = "xlsx",
    today: Optional[date] = None,
) -> Path:
    """Write the export file into ``directory`` and return its path."""
    target = Path(directory) / export_filename(participant, fmt, today)
    try:
        payload = export_bytes(participant, survey_id, responses, fmt)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
    except (OSError, ValueError) as exc:
        raise FallbackError(f"Export failed: {exc}") from exc
    logger.info("Exported %d responses to %s", len(responses), target.parent)
    return target


def responses_csv(responses: Sequence["BatchResponse"]) -> str:
    """Plain results table used by the admin download."""
    df = pd.DataFrame(
        [
            {
                "Question": item.question_number,
                "Meaning": item.meaning,
                "Most Intense": item.most_intense or "",
                "Least Intense": item.least_intense or "",
            }
            for item in responses
        ],
        columns=["Question", "Meaning", "Most Intense", "Least Intense"],
    )
    return df.to_csv(index=False)
