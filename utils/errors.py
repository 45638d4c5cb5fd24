from typing import Optional


class ExamScoreError(Exception):
    """Base class for exam score template engine failures."""


class ValidationError(ExamScoreError):
    """Malformed score input or payload. Never sent to the store."""

    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(message)
        self.details = list(details or [message])


class NoTemplateError(ExamScoreError):
    """Placeholder cells were saved but no template is confirmed for the period."""


class StoreError(ExamScoreError):
    """The template store rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[list] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = list(details or [])


class NotFoundError(StoreError):
    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(message, status_code=404, details=details)


class PartialSaveWarning(UserWarning):
    """Some placeholder cells could not be resolved to score rows and were skipped."""
