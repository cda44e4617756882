from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .question_bank import Question


@dataclass(frozen=True)
class Participant:
    name: str
    age: str
    gender: str
    country: str
    first_language: str
    timestamp: str

    def to_payload(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "country": self.country,
            "firstLanguage": self.first_language,
        }


@dataclass
class Response:
    meaning: str
    most_intense: Optional[str] = None
    least_intense: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.most_intense) and bool(self.least_intense)

    def role_of(self, word: str) -> Optional[str]:
        if word == self.most_intense:
            return "most"
        if word == self.least_intense:
            return "least"
        return None


class ResponseStore:
    """Per-question most/least intense selections plus the participant record.

    At any time a question has at most one most-intense word and at most one
    least-intense word, and never the same word in both slots.
    """

    def __init__(self, questions: Iterable[Question] = ()) -> None:
        self._questions: Tuple[Question, ...] = tuple(questions)
        self._responses: Dict[int, Response] = {}
        self._participant: Optional[Participant] = None

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def participant(self) -> Optional[Participant]:
        return self._participant

    def bind(self, questions: Sequence[Question]) -> None:
        """Switch to a new question set; answers for the old set are dropped."""
        self._questions = tuple(questions)
        self._responses = {}

    def set_participant(self, participant: Participant) -> None:
        if self._participant is not None:
            raise ValueError("Participant is already recorded for this session.")
        self._participant = participant

    def _question(self, question_index: int) -> Question:
        if not 0 <= question_index < len(self._questions):
            raise IndexError(f"No question at index {question_index}")
        return self._questions[question_index]

    def response(self, question_index: int) -> Optional[Response]:
        return self._responses.get(question_index)

    def responses(self) -> Dict[int, Response]:
        return dict(self._responses)

    def select_word(self, question_index: int, word: str) -> Response:
        """Toggle ``word`` for a question.

        A word holding a role loses it. Otherwise it fills the most-intense
        slot if that is empty, then the least-intense slot. With both slots
        taken the call changes nothing until one is cleared.
        """
        question = self._question(question_index)
        if word not in question.words:
            raise ValueError(f"{word!r} is not one of the words of question {question_index + 1}")

        current = self._responses.get(question_index)
        if current is None:
            current = Response(meaning=question.meaning)
            self._responses[question_index] = current

        role = current.role_of(word)
        if role == "most":
            current.most_intense = None
        elif role == "least":
            current.least_intense = None
        elif current.most_intense is None:
            current.most_intense = word
        elif current.least_intense is None:
            current.least_intense = word
        return current

    def is_complete(self, question_index: int) -> bool:
        current = self._responses.get(question_index)
        return current is not None and current.complete

    def completion_count(self) -> int:
        return sum(1 for resp in self._responses.values() if resp.complete)

    def first_incomplete(self) -> Optional[int]:
        for idx in range(len(self._questions)):
            if not self.is_complete(idx):
                return idx
        return None

    def all_complete(self) -> bool:
        return bool(self._questions) and self.first_incomplete() is None

    def clear(self) -> None:
        self._responses = {}
        self._participant = None
