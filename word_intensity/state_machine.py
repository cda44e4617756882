from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .constants import MISSING_SELECTION_MESSAGE, SURVEY_IDS
from .errors import InvalidTransitionError, LoadError, ValidationError
from .question_bank import Question, QuestionBank, fallback_questions
from .responses import Participant, Response, ResponseStore
from .submission import (
    SubmissionBatch,
    SubmissionOutcome,
    SubmissionPipeline,
    build_batch,
)
from .utils.persistence import now_utc_iso
from .utils.validation import validate_demographics

logger = logging.getLogger(__name__)


class SurveyState(str, Enum):
    INSTRUCTIONS = "instructions"
    DEMOGRAPHICS = "demographics"
    SURVEY_SELECTION = "survey_selection"
    QUESTIONING = "questioning"
    COMPLETION = "completion"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    RETRY_PROMPT = "retry_prompt"


@dataclass
class SurveySession:
    state: SurveyState = SurveyState.INSTRUCTIONS
    cursor: int = 0
    survey_id: Optional[str] = None
    questions: Tuple[Question, ...] = ()
    store: ResponseStore = field(default_factory=ResponseStore)
    using_fallback_questions: bool = False
    last_error: Optional[str] = None
    outcome: Optional[SubmissionOutcome] = None
    submit_attempts: int = 0

    @property
    def participant(self) -> Optional[Participant]:
        return self.store.participant


class SurveyStateMachine:
    """Linear survey flow for one participant at a time.

    Instructions -> Demographics -> SurveySelection -> Questioning ->
    Completion -> Submitting -> Success | RetryPrompt. ``reset`` returns to
    Demographics from anywhere.
    """

    def __init__(self, bank: QuestionBank, session: Optional[SurveySession] = None) -> None:
        self.bank = bank
        self.session = session or SurveySession()

    # -- helpers -------------------------------------------------------------------

    @property
    def state(self) -> SurveyState:
        return self.session.state

    @property
    def store(self) -> ResponseStore:
        return self.session.store

    @property
    def question_count(self) -> int:
        return len(self.session.questions)

    @property
    def is_last_question(self) -> bool:
        return self.session.cursor == self.question_count - 1

    def _require(self, *states: SurveyState) -> None:
        if self.session.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(
                f"Not allowed in state {self.session.state.value}; expected one of: {allowed}"
            )

    def _move(self, state: SurveyState) -> None:
        logger.debug("Survey state %s -> %s", self.session.state.value, state.value)
        self.session.state = state

    def _reject(self, message: str) -> None:
        self.session.last_error = message
        raise ValidationError(message)

    def current_question(self) -> Question:
        self._require(SurveyState.QUESTIONING)
        return self.session.questions[self.session.cursor]

    def current_response(self) -> Optional[Response]:
        return self.store.response(self.session.cursor)

    def progress(self) -> float:
        if not self.session.questions:
            return 0.0
        return self.store.completion_count() / len(self.session.questions)

    # -- transitions ---------------------------------------------------------------

    def begin(self) -> None:
        self._require(SurveyState.INSTRUCTIONS)
        self._move(SurveyState.DEMOGRAPHICS)

    def submit_demographics(
        self, name: str, age: str, gender: str, country: str, first_language: str
    ) -> Participant:
        self._require(SurveyState.DEMOGRAPHICS)
        fields = {
            "name": name,
            "age": age,
            "gender": gender,
            "country": country,
            "first_language": first_language,
        }
        problems = validate_demographics(fields)
        if problems:
            self._reject(" ".join(problems))
        participant = Participant(
            **{key: str(value).strip() for key, value in fields.items()},
            timestamp=now_utc_iso(),
        )
        self.store.set_participant(participant)
        self.session.last_error = None
        self._move(SurveyState.SURVEY_SELECTION)
        return participant

    def choose_survey(self, survey_id: str) -> None:
        self._require(SurveyState.SURVEY_SELECTION)
        survey_id = str(survey_id)
        if survey_id not in SURVEY_IDS:
            self._reject(f"Unknown survey {survey_id!r}.")
        self.session.survey_id = survey_id

    def start_questions(self, use_fallback: bool = False) -> Tuple[Question, ...]:
        """Load the chosen survey and enter the question flow.

        A failed load leaves the machine in SurveySelection and re-raises.
        ``use_fallback`` swaps in the built-in sample questions instead.
        """
        self._require(SurveyState.SURVEY_SELECTION)
        if not self.session.survey_id:
            self._reject("Please select a survey first.")

        if use_fallback:
            questions = fallback_questions()
            logger.warning("Survey %s: using built-in sample questions", self.session.survey_id)
        else:
            try:
                questions = self.bank.load(self.session.survey_id)
            except LoadError as exc:
                logger.error("Could not load survey %s: %s", self.session.survey_id, exc)
                self.session.last_error = str(exc)
                raise

        self.session.questions = tuple(questions)
        self.session.using_fallback_questions = use_fallback
        self.session.cursor = 0
        self.session.last_error = None
        self.store.bind(self.session.questions)
        self._move(SurveyState.QUESTIONING)
        return self.session.questions

    def select_word(self, word: str) -> Response:
        self._require(SurveyState.QUESTIONING)
        return self.store.select_word(self.session.cursor, word)

    def next(self) -> SurveyState:
        """Advance past a complete question; on the last one, every question must be complete."""
        self._require(SurveyState.QUESTIONING)
        if not self.store.is_complete(self.session.cursor):
            self._reject(MISSING_SELECTION_MESSAGE)

        if not self.is_last_question:
            self.session.cursor += 1
            self.session.last_error = None
            return self.session.state

        missing = self.store.first_incomplete()
        if missing is not None:
            self._reject(
                f"Please complete all questions before finishing the survey "
                f"(question {missing + 1} is incomplete)."
            )
        self.session.last_error = None
        self._move(SurveyState.COMPLETION)
        return self.session.state

    def previous(self) -> bool:
        self._require(SurveyState.QUESTIONING)
        if self.session.cursor == 0:
            return False
        self.session.cursor -= 1
        self.session.last_error = None
        return True

    def back_to_questions(self) -> None:
        self._require(SurveyState.COMPLETION, SurveyState.RETRY_PROMPT)
        self._move(SurveyState.QUESTIONING)

    def build_batch(self, include_incomplete: bool = False) -> SubmissionBatch:
        participant = self.session.participant
        if participant is None:
            raise InvalidTransitionError("No participant recorded for this session.")
        return build_batch(
            participant,
            self.session.survey_id,
            self.session.questions,
            self.store,
            include_incomplete=include_incomplete,
        )

    def submit(self, pipeline: SubmissionPipeline) -> SubmissionOutcome:
        self._require(SurveyState.COMPLETION, SurveyState.RETRY_PROMPT)
        missing = self.store.first_incomplete()
        if missing is not None or not self.session.questions:
            self.session.cursor = missing or 0
            self._move(SurveyState.QUESTIONING)
            self._reject(
                "Please complete all survey questions before submitting. You must select both "
                "a MOST INTENSE and LEAST INTENSE word for each question."
            )

        batch = self.build_batch()
        self._move(SurveyState.SUBMITTING)
        self.session.submit_attempts += 1
        try:
            outcome = pipeline.submit(batch)
        except Exception as exc:
            self.session.last_error = str(exc)
            self._move(SurveyState.RETRY_PROMPT)
            raise
        self.session.outcome = outcome
        if outcome.remote_ok:
            self.session.last_error = None
            self._move(SurveyState.SUCCESS)
        else:
            self.session.last_error = outcome.error
            self._move(SurveyState.RETRY_PROMPT)
        return outcome

    def accept_fallback(self) -> None:
        self._require(SurveyState.RETRY_PROMPT)
        outcome = self.session.outcome
        if outcome is None or not outcome.fallback_saved:
            raise InvalidTransitionError("No fallback copy was saved; submission must be retried.")
        self._move(SurveyState.SUCCESS)

    def reset(self) -> None:
        """Drop all answers and the participant and return to the demographics form."""
        self.store.clear()
        self.store.bind(())
        self.session.questions = ()
        self.session.survey_id = None
        self.session.cursor = 0
        self.session.using_fallback_questions = False
        self.session.last_error = None
        self.session.outcome = None
        self.session.submit_attempts = 0
        self._move(SurveyState.DEMOGRAPHICS)

    start_new_participant = reset
