"""Exception taxonomy for the wizard.

Every wizard error carries the :class:`Notice` that the UI should show.
``BackendError`` is the exception for a single backend call; step code catches
it and degrades to a fallback value instead of letting it escape.
"""

from __future__ import annotations

from .schemas import Notice


class WizardError(Exception):
    """Base class for errors surfaced to the user."""

    status_code = 400

    def __init__(self, title: str, description: str) -> None:
        super().__init__(f"{title}: {description}")
        self.notice = Notice(title=title, description=description, variant="destructive")


class WizardValidationError(WizardError):
    """User-caused problem; the operation never started."""

    status_code = 422


class GenerationError(WizardError):
    """A whole step could not produce usable output."""

    status_code = 502
    retryable = True


class IncompleteMatrixError(GenerationError):
    """Fewer than four quadrant results came back from a scenario run."""


class SessionNotFoundError(WizardError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found", f"No wizard data found for session '{session_id}'.")
        self.session_id = session_id


class BackendError(Exception):
    """A single generation call failed (transport, HTTP status, missing key)."""
