from __future__ import annotations

from typing import Optional


class SurveyError(Exception):
    """Base class for every error raised by the survey core."""


class LoadError(SurveyError):
    """The question source is unreachable, empty or malformed."""


class ValidationError(SurveyError):
    """Participant input is incomplete; the current page must be shown again."""


class InvalidTransitionError(SurveyError):
    """An operation was called in a state that does not allow it."""


class SubmissionError(SurveyError):
    """Base class for failures while sending responses to the remote endpoint."""

    retryable: bool = False


class SubmissionTimeoutError(SubmissionError, TimeoutError):
    """A single submission attempt exceeded its timeout."""

    retryable = True


class RemoteSubmissionError(SubmissionError):
    """The endpoint answered with an explicit error or could not be reached."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ChunkSubmissionError(RemoteSubmissionError):
    """A chunk failed; chunks before it may already be stored remotely."""

    def __init__(
        self,
        chunk_number: int,
        total_chunks: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.chunk_number = chunk_number
        self.total_chunks = total_chunks
        self.partial = chunk_number > 1
        message = f"Submission failed at chunk {chunk_number} of {total_chunks}."
        if self.partial:
            message += " Earlier chunks may already have been saved."
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)


class FallbackError(SurveyError):
    """Saving to the local store or writing the export file failed."""
