"""Exception hierarchy shared by every DealScout pillar."""

from typing import Optional


class DealScoutError(Exception):
    """Base class for all DealScout errors.

    Parameters
    ----------
    message : str
        Developer-facing description of the failure.
    user_message : str, optional
        Short, actionable text suitable for showing to an end user.
    """

    default_user_message = "Something went wrong, please retry."

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message


class DownloadError(DealScoutError):
    """The model artifact could not be fetched. Recoverable: retry."""

    default_user_message = "AI model download failed, please retry."


class InitError(DealScoutError):
    """The model could not be loaded into memory. Recoverable: retry."""

    default_user_message = "AI failed to load, please retry."


class AlreadyInProgressError(DealScoutError):
    """A conflicting operation is already running on the same session.

    This signals caller misuse and must never be retried automatically.
    """

    default_user_message = "AI is busy, please wait for the current request."


class InferError(DealScoutError):
    """Generation failed inside the inference backend."""

    default_user_message = "AI could not produce an answer, please retry."

    def __init__(
        self,
        message: str = "",
        user_message: Optional[str] = None,
        fatal: bool = False,
    ):
        super().__init__(message, user_message)
        self.fatal = fatal


class EmbedError(DealScoutError):
    """Embedding computation failed inside the inference backend."""


class SessionDestroyedError(DealScoutError):
    """The session was destroyed and can no longer serve calls."""

    default_user_message = "AI session was closed, please restart."


class ToolExecutionError(DealScoutError):
    """Raised by tool executors; the orchestrator folds it into the conversation."""


class UnknownPersonaError(DealScoutError, KeyError):
    """No persona with the requested id is registered."""

    default_user_message = "Unknown investment persona."

    def __str__(self) -> str:
        return self.message
