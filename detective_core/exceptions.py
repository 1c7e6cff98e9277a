"""
Shared error types.

Kept in one module so the API layer and tests can import the same exception
classes as the core components.
"""


class DetectiveCoreError(Exception):
    """Base class for all core errors."""


class FeedbackValidationError(DetectiveCoreError):
    """Raised when a submitted case outcome is missing or has invalid fields."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class GenerationError(DetectiveCoreError):
    """Raised by a generate function when the backing LLM call fails."""


class OutcomeNotFoundError(DetectiveCoreError):
    """Raised when no outcome has been recorded for a case id."""

    def __init__(self, case_id: str):
        super().__init__(f"No outcome recorded for case {case_id}")
        self.case_id = case_id
