from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import requests

from .constants import FALLBACK_QUESTIONS
from .errors import LoadError

logger = logging.getLogger(__name__)

WORDS_PER_QUESTION = 4


@dataclass(frozen=True)
class Question:
    meaning: str
    words: Tuple[str, ...]


def _validate_question(row_number: int, meaning: str, words: Sequence[str]) -> Question:
    if not meaning:
        raise LoadError(f"Question {row_number} has no meaning.")
    if len(words) != WORDS_PER_QUESTION or any(not w for w in words):
        raise LoadError(
            f"Question {row_number} has invalid format. "
            f"Each question must have a meaning and exactly {WORDS_PER_QUESTION} words."
        )
    if len(set(words)) != WORDS_PER_QUESTION:
        raise LoadError(f"Question {row_number} repeats a word: {list(words)}")
    return Question(meaning=meaning, words=tuple(words))


def parse_questions(text: str) -> List[Question]:
    """Parse ``meaning,word1,word2,word3,word4`` rows; the first row is a header.

    A single malformed row rejects the whole text.
    """
    if not text or not text.strip():
        raise LoadError("Question source is empty.")

    try:
        rows = [row for row in csv.reader(io.StringIO(text.strip())) if any(cell.strip() for cell in row)]
    except csv.Error as exc:
        raise LoadError(f"Question source is not valid CSV: {exc}") from exc
    if len(rows) < 2:
        raise LoadError("No questions found or invalid format.")

    questions: List[Question] = []
    for number, row in enumerate(rows[1:], start=1):
        cells = [cell.strip() for cell in row]
        if len(cells) != 1 + WORDS_PER_QUESTION:
            raise LoadError(
                f"Question {number} has {len(cells)} fields; expected {1 + WORDS_PER_QUESTION}."
            )
        questions.append(_validate_question(number, cells[0], cells[1:]))
    return questions


def fallback_questions() -> Tuple[Question, ...]:
    """Built-in sample questions, used only when the caller asks for them."""
    return tuple(Question(meaning, tuple(words)) for meaning, words in FALLBACK_QUESTIONS)


class QuestionBank:
    """Ordered question set for one survey, loaded from a URL or a directory.

    ``source`` is either an ``http(s)`` URL queried as ``?surveyId=<id>`` or a
    directory containing ``survey<id>.csv`` files.
    """

    def __init__(
        self,
        source: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.source = source
        self.timeout = timeout
        self._session = session
        self._questions: Tuple[Question, ...] = ()
        self.survey_id: Optional[str] = None

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def count(self) -> int:
        return len(self._questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __getitem__(self, index: int) -> Question:
        return self._questions[index]

    def _is_remote(self) -> bool:
        return self.source.startswith(("http://", "https://"))

    def _fetch_remote(self, survey_id: str) -> str:
        getter = self._session or requests
        try:
            resp = getter.get(self.source, params={"surveyId": survey_id}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise LoadError(f"Failed to load survey {survey_id}: {exc}") from exc
        return resp.text

    def _read_local(self, survey_id: str) -> str:
        path = Path(self.source) / f"survey{survey_id}.csv"
        if not path.exists():
            raise LoadError(f"Survey {survey_id} file not found: {path}")
        try:
            return path.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            raise LoadError(f"Failed to read {path}: {exc}") from exc

    def load(self, survey_id: str) -> Tuple[Question, ...]:
        """Load and validate the questions for ``survey_id``.

        Replaces the previous set only when the new one is valid in full.
        """
        text = self._fetch_remote(survey_id) if self._is_remote() else self._read_local(survey_id)
        questions = tuple(parse_questions(text))
        self._questions = questions
        self.survey_id = survey_id
        logger.info("Loaded %d questions for survey %s", len(questions), survey_id)
        return questions
