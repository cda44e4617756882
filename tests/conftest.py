from typing import Any, Dict, List, Optional, Tuple

import pytest

from word_intensity.errors import LoadError, RemoteSubmissionError
from word_intensity.question_bank import Question
from word_intensity.responses import Participant, ResponseStore


ENV_KEYS = [
    "SURVEY_ENDPOINT_URL",
    "SURVEY_TRANSPORT_MODE",
    "SURVEY_QUESTION_SOURCE",
    "SURVEY_CHUNK_SIZE",
    "SURVEY_CHUNK_THRESHOLD",
    "SURVEY_CHUNK_DELAY",
    "SURVEY_TIMEOUT",
    "SURVEY_CHUNK_TIMEOUT",
    "SURVEY_MAX_ATTEMPTS",
    "SURVEY_LOCAL_STORE_DIR",
    "SURVEY_EXPORT_DIR",
    "SURVEY_EXPORT_FORMAT",
    "GOOGLE_SHEET_ID",
    "GOOGLE_SHEET_URL",
    "GOOGLE_APPLICATION_CREDENTIALS_JSON",
    "DRY_RUN",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of configuration tests."""
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def make_questions(count: int) -> Tuple[Question, ...]:
    return tuple(
        Question(meaning=f"meaning {i + 1}", words=(f"a{i}", f"b{i}", f"c{i}", f"d{i}"))
        for i in range(count)
    )


def answer_all(store: ResponseStore) -> None:
    for idx, question in enumerate(store.questions):
        store.select_word(idx, question.words[0])
        store.select_word(idx, question.words[3])


@pytest.fixture
def questions() -> Tuple[Question, ...]:
    return make_questions(10)


@pytest.fixture
def participant() -> Participant:
    return Participant(
        name="Ada Lovelace",
        age="36",
        gender="Female",
        country="United Kingdom",
        first_language="English",
        timestamp="2024-05-01T10:00:00+00:00",
    )


class FakeBank:
    """QuestionBank stand-in returning a fixed set or failing on demand."""

    def __init__(self, questions, fail: bool = False) -> None:
        self._questions = tuple(questions)
        self.fail = fail
        self.loaded: List[str] = []

    def load(self, survey_id: str):
        self.loaded.append(survey_id)
        if self.fail:
            raise LoadError(f"Survey {survey_id} CSV file not found or inaccessible")
        return self._questions


class ScriptedTransport:
    """Records every document; raises ``error`` for the listed chunk numbers or calls."""

    def __init__(
        self,
        fail_chunks: Tuple[int, ...] = (),
        fail_calls: Tuple[int, ...] = (),
        error: Optional[Exception] = None,
        reply: Optional[int] = -1,
    ) -> None:
        self.fail_chunks = set(fail_chunks)
        self.fail_calls = set(fail_calls)
        self.error = error
        self.reply = reply
        self.sent: List[Dict[str, Any]] = []
        self.timeouts: List[float] = []

    def send(self, payload: Dict[str, Any], timeout: float) -> Optional[int]:
        self.sent.append(payload)
        self.timeouts.append(timeout)
        chunk_number = (payload.get("chunkInfo") or {}).get("chunkNumber")
        if len(self.sent) in self.fail_calls or chunk_number in self.fail_chunks:
            raise self.error or RemoteSubmissionError("Server returned error: boom")
        if self.reply == -1:
            return len(payload["responses"])
        return self.reply


@pytest.fixture
def no_sleep():
    calls: List[float] = []
    return calls, calls.append
