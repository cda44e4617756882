from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import requests

from .attention import is_attention_check
from .constants import (
    CHUNK_DELAY_SEC,
    CHUNK_SIZE,
    CHUNK_TIMEOUT_SEC,
    SHEET_COLS,
    SHEET_WORKSHEET_NAME,
    SUBMIT_MAX_ATTEMPTS,
    SUBMIT_TIMEOUT_SEC,
)
from .errors import (
    ChunkSubmissionError,
    FallbackError,
    RemoteSubmissionError,
    SubmissionError,
    SubmissionTimeoutError,
)
from .export import export_responses
from .persistence import LocalFallbackStore, build_sheet_rows
from .question_bank import Question
from .responses import Participant, ResponseStore
from .utils.persistence import SurveySettings, now_utc_iso

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------------------
# Batch model
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchResponse:
    question_number: int
    meaning: str
    most_intense: Optional[str]
    least_intense: Optional[str]
    words: Tuple[str, ...]
    is_example: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "questionNumber": self.question_number,
            "meaning": self.meaning,
            "mostIntense": self.most_intense,
            "leastIntense": self.least_intense,
            "words": list(self.words),
            "isExample": self.is_example,
        }


@dataclass(frozen=True)
class SubmissionBatch:
    participant: Participant
    survey_id: Optional[str]
    responses: Tuple[BatchResponse, ...]

    def with_responses(self, responses: Sequence[BatchResponse]) -> "SubmissionBatch":
        return replace(self, responses=tuple(responses))

    def to_payload(
        self,
        chunk_number: Optional[int] = None,
        total_chunks: Optional[int] = None,
        timestamp: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": timestamp or now_utc_iso(),
            "selectedSurvey": self.survey_id,
        }
        if chunk_number is not None:
            payload["chunkInfo"] = {
                "chunkNumber": chunk_number,
                "totalChunks": total_chunks,
                "isChunked": True,
            }
        payload["participant"] = self.participant.to_payload()
        payload["responses"] = [item.to_payload() for item in self.responses]
        return payload


def build_batch(
    participant: Participant,
    survey_id: Optional[str],
    questions: Sequence[Question],
    store: ResponseStore,
    include_incomplete: bool = False,
) -> SubmissionBatch:
    """Snapshot the store as an ordered, read-only batch.

    Only complete responses are included unless ``include_incomplete`` is set
    (used by the results view, never for submission).
    """
    items: List[BatchResponse] = []
    for idx, question in enumerate(questions):
        resp = store.response(idx)
        if resp is None:
            continue
        if not resp.complete and not include_incomplete:
            continue
        items.append(
            BatchResponse(
                question_number=idx + 1,
                meaning=question.meaning,
                most_intense=resp.most_intense,
                least_intense=resp.least_intense,
                words=tuple(question.words),
                is_example=is_attention_check(question.words),
            )
        )
    return SubmissionBatch(participant=participant, survey_id=survey_id, responses=tuple(items))


def chunk_responses(responses: Sequence[BatchResponse], size: int) -> List[Tuple[BatchResponse, ...]]:
    if size < 1:
        raise ValueError("Chunk size must be at least 1.")
    return [tuple(responses[start : start + size]) for start in range(0, len(responses), size)]


# --------------------------------------------------------------------------------------
# Transports
# --------------------------------------------------------------------------------------


class Transport(Protocol):
    def send(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        """Deliver one document; return rows accepted, or None when unknown."""
        ...


def _read_reply(resp: requests.Response) -> Optional[int]:
    try:
        body = resp.json()
    except ValueError:
        logger.warning("Endpoint reply is not readable JSON; treating submission as indeterminate")
        return None
    if not isinstance(body, dict) or "success" not in body:
        logger.warning("Endpoint reply has no success flag; treating submission as indeterminate")
        return None
    if body.get("success"):
        rows = body.get("rowsAdded")
        if rows is None:
            return None
        try:
            return int(rows)
        except (TypeError, ValueError):
            logger.warning("Endpoint reply has unreadable rowsAdded %r; treating submission as indeterminate", rows)
            return None
    raise RemoteSubmissionError(
        f"Server returned error: {body.get('error') or body.get('message') or 'unknown error'}"
    )


class AppsScriptTransport:
    """POST to the spreadsheet web app, either as a JSON body or as a ``data`` form field.

    The form variant mirrors a cross-origin form submission: the reply may be
    an HTML redirect page rather than JSON, in which case the outcome is
    indeterminate, not a failure.
    """

    def __init__(self, url: str, mode: str = "json", session: Optional[requests.Session] = None) -> None:
        if mode not in ("json", "form"):
            raise ValueError(f"Unknown transport mode {mode!r}")
        self.url = url
        self.mode = mode
        self._session = session

    def send(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        poster = self._session or requests
        try:
            if self.mode == "json":
                resp = poster.post(self.url, json=payload, timeout=timeout)
            else:
                resp = poster.post(self.url, data={"data": json.dumps(payload)}, timeout=timeout)
        except requests.Timeout as exc:
            raise SubmissionTimeoutError(f"Submission timeout after {timeout:.0f} seconds") from exc
        except requests.RequestException as exc:
            raise RemoteSubmissionError(f"Form submission failed: {exc}", retryable=True) from exc

        if resp.status_code >= 400:
            raise RemoteSubmissionError(
                f"Endpoint answered HTTP {resp.status_code}", retryable=resp.status_code >= 500
            )
        return _read_reply(resp)

    def ping(self, timeout: float = 10.0) -> Optional[int]:
        """Send a one-row test document to check the deployment."""
        test = {
            "timestamp": now_utc_iso(),
            "selectedSurvey": "test",
            "participant": {
                "name": "Test User",
                "age": "25",
                "gender": "Test",
                "country": "Test Country",
                "firstLanguage": "English",
            },
            "responses": [
                {
                    "questionNumber": 1,
                    "meaning": "test meaning",
                    "mostIntense": "very",
                    "leastIntense": "slightly",
                    "words": ["slightly", "somewhat", "very", "extremely"],
                    "isExample": False,
                }
            ],
        }
        return self.send(test, timeout)


class SheetsTransport:
    """Append rows directly to a Google Sheet with a service account."""

    def __init__(self, worksheet: str = SHEET_WORKSHEET_NAME, sheet=None) -> None:
        self.worksheet = worksheet
        self._sheet = sheet

    def send(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        import gspread
        from google.auth.exceptions import GoogleAuthError, TransportError

        from .utils.google_sheet import append_rows_to_sheet, get_google_sheet

        rows = build_sheet_rows(payload)
        try:
            sheet = self._sheet if self._sheet is not None else get_google_sheet()
            sheet.client.set_timeout(timeout)
            return append_rows_to_sheet(rows, self.worksheet, SHEET_COLS, sheet=sheet)
        except requests.Timeout as exc:
            raise SubmissionTimeoutError(f"Sheet append timeout after {timeout:.0f} seconds") from exc
        except requests.RequestException as exc:
            raise RemoteSubmissionError(f"Google Sheets unreachable: {exc}", retryable=True) from exc
        except gspread.exceptions.APIError as exc:
            raise RemoteSubmissionError(f"Google Sheets API error: {exc}", retryable=True) from exc
        except TransportError as exc:
            raise RemoteSubmissionError(f"Google auth server unreachable: {exc}", retryable=True) from exc
        except GoogleAuthError as exc:
            raise RemoteSubmissionError(f"Google credentials rejected: {exc}") from exc
        except (gspread.exceptions.GSpreadException, RuntimeError, ValueError) as exc:
            raise RemoteSubmissionError(f"Google Sheets unavailable: {exc}") from exc


class DryRunTransport:
    """Accept everything without network access; keeps the documents it saw."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    def send(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        self.sent.append(payload)
        logger.info("DRY_RUN: skipped remote save of %d responses", len(payload.get("responses", [])))
        return len(payload.get("responses", []))


class UnconfiguredTransport:
    """Stands in when no endpoint is configured so the fallback chain still runs."""

    def send(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        raise RemoteSubmissionError("No submission endpoint configured.")


def build_transport(settings: SurveySettings) -> Transport:
    if settings.dry_run:
        return DryRunTransport()
    if settings.endpoint_url:
        return AppsScriptTransport(settings.endpoint_url, mode=settings.transport_mode)
    if settings.sheets_configured:
        return SheetsTransport(worksheet=settings.worksheet_name)
    logger.warning("No submission endpoint configured; responses will go to the local fallback")
    return UnconfiguredTransport()


# --------------------------------------------------------------------------------------
# Pipeline
# --------------------------------------------------------------------------------------


class SubmissionStatus(str, Enum):
    REMOTE_SUCCESS = "remote_success"
    FALLBACK_SAVED = "fallback_saved"
    FALLBACK_FAILED = "fallback_failed"


@dataclass
class RemoteResult:
    rows_accepted: int
    indeterminate: bool
    total_chunks: int


@dataclass
class SubmissionOutcome:
    status: SubmissionStatus
    rows_accepted: Optional[int] = None
    indeterminate: bool = False
    total_chunks: int = 1
    error: Optional[str] = None
    failed_chunk: Optional[int] = None
    partial: bool = False
    local_record_id: Optional[str] = None
    export_path: Optional[Path] = None
    fallback_errors: List[str] = field(default_factory=list)

    @property
    def remote_ok(self) -> bool:
        return self.status is SubmissionStatus.REMOTE_SUCCESS

    @property
    def fallback_saved(self) -> bool:
        return self.status is SubmissionStatus.FALLBACK_SAVED


class SubmissionPipeline:
    """Send a batch to the remote endpoint, falling back to local storage and export.

    Batches larger than ``chunk_threshold`` go out as sequential chunks of
    ``chunk_size``; chunk N+1 starts only after chunk N has resolved.
    """

    def __init__(
        self,
        transport: Transport,
        local_store: Optional[LocalFallbackStore] = None,
        export_dir: Optional[str | Path] = None,
        export_format: str = "xlsx",
        chunk_size: int = CHUNK_SIZE,
        chunk_threshold: Optional[int] = None,
        chunk_delay: float = CHUNK_DELAY_SEC,
        timeout: float = SUBMIT_TIMEOUT_SEC,
        chunk_timeout: float = CHUNK_TIMEOUT_SEC,
        max_attempts: int = SUBMIT_MAX_ATTEMPTS,
        retry_backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1.")
        self.transport = transport
        self.local_store = local_store
        self.export_dir = export_dir
        self.export_format = export_format
        self.chunk_size = chunk_size
        self.chunk_threshold = chunk_size if chunk_threshold is None else chunk_threshold
        self.chunk_delay = chunk_delay
        self.timeout = timeout
        self.chunk_timeout = chunk_timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: SurveySettings, transport: Optional[Transport] = None
    ) -> "SubmissionPipeline":
        return cls(
            transport=transport or build_transport(settings),
            local_store=LocalFallbackStore(settings.local_store_dir),
            export_dir=settings.export_dir,
            export_format=settings.export_format,
            chunk_size=settings.chunk_size,
            chunk_threshold=settings.chunk_threshold,
            chunk_delay=settings.chunk_delay,
            timeout=settings.timeout,
            chunk_timeout=settings.chunk_timeout,
            max_attempts=settings.max_attempts,
        )

    def _attempt(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.transport.send(payload, timeout)
            except SubmissionError as exc:
                if not exc.retryable or attempt == self.max_attempts:
                    raise
                sleep_for = self.retry_backoff * (2 ** (attempt - 1)) + random.uniform(0, 0.5)
                logger.warning(
                    "Submission attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    exc,
                    sleep_for,
                )
                self.sleep(sleep_for)
        raise RemoteSubmissionError("Submission attempts exhausted.")

    def send(self, batch: SubmissionBatch) -> RemoteResult:
        """Remote delivery only; raises a SubmissionError subclass on failure."""
        if len(batch.responses) <= self.chunk_threshold:
            rows = self._attempt(batch.to_payload(), self.timeout)
            return RemoteResult(
                rows_accepted=rows if rows is not None else len(batch.responses),
                indeterminate=rows is None,
                total_chunks=1,
            )

        chunks = chunk_responses(batch.responses, self.chunk_size)
        total = len(chunks)
        logger.info("Submitting %d responses in %d chunks of %d", len(batch.responses), total, self.chunk_size)
        accepted = 0
        indeterminate = False
        for number, chunk in enumerate(chunks, start=1):
            payload = batch.with_responses(chunk).to_payload(chunk_number=number, total_chunks=total)
            try:
                rows = self._attempt(payload, self.chunk_timeout)
            except SubmissionError as exc:
                logger.error("Chunk %d/%d failed: %s", number, total, exc)
                raise ChunkSubmissionError(number, total, cause=exc) from exc
            if rows is None:
                indeterminate = True
                rows = len(chunk)
            accepted += rows
            logger.info("Chunk %d/%d submitted", number, total)
            if number < total and self.chunk_delay > 0:
                self.sleep(self.chunk_delay)
        return RemoteResult(rows_accepted=accepted, indeterminate=indeterminate, total_chunks=total)

    def submit(self, batch: SubmissionBatch) -> SubmissionOutcome:
        """Deliver ``batch``; on remote failure save locally and export a file.

        Never raises for delivery problems: the outcome says which layer held.
        """
        try:
            remote = self.send(batch)
        except SubmissionError as exc:
            logger.error("Remote submission failed: %s", exc)
            outcome = SubmissionOutcome(status=SubmissionStatus.FALLBACK_FAILED, error=str(exc))
            if isinstance(exc, ChunkSubmissionError):
                outcome.failed_chunk = exc.chunk_number
                outcome.total_chunks = exc.total_chunks
                outcome.partial = exc.partial
            return self._fall_back(batch, outcome)

        return SubmissionOutcome(
            status=SubmissionStatus.REMOTE_SUCCESS,
            rows_accepted=remote.rows_accepted,
            indeterminate=remote.indeterminate,
            total_chunks=remote.total_chunks,
        )

    def _fall_back(self, batch: SubmissionBatch, outcome: SubmissionOutcome) -> SubmissionOutcome:
        if self.local_store is None:
            outcome.fallback_errors.append("Local store not configured.")
        else:
            try:
                outcome.local_record_id = self.local_store.append(batch)
            except FallbackError as exc:
                logger.error("Local fallback failed: %s", exc)
                outcome.fallback_errors.append(str(exc))

        if self.export_dir is None:
            outcome.fallback_errors.append("Export directory not configured.")
        else:
            try:
                outcome.export_path = export_responses(
                    batch.participant,
                    batch.survey_id,
                    batch.responses,
                    self.export_dir,
                    fmt=self.export_format,
                )
            except FallbackError as exc:
                logger.error("Export fallback failed: %s", exc)
                outcome.fallback_errors.append(str(exc))

        if outcome.local_record_id is not None or outcome.export_path is not None:
            outcome.status = SubmissionStatus.FALLBACK_SAVED
        else:
            logger.critical("Remote, local and export saves all failed")
        return outcome
