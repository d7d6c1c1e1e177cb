"""Error taxonomy for the chat turn pipeline.

Fatal errors carry the HTTP status and the public message rendered as
``{"error": message}``. Recoverable failures are never raised out of their
stage; they are recorded on the turn state and logged instead.
"""

from __future__ import annotations

from fastapi import status


class AssistantError(Exception):
    """Base class for errors surfaced to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.message
        self.detail = detail
        super().__init__(detail or self.message)


class ConfigurationError(AssistantError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Missing required environment variables"

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(detail=f"missing settings: {', '.join(missing)}")


class InvalidInput(AssistantError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid input"


class MissingQuery(InvalidInput):
    message = "Query or file is required"


class InvalidFileType(InvalidInput):
    message = "Invalid file type. Only JPEG, PNG, and PDF files are allowed."


class FileTooLarge(InvalidInput):
    message = "File is too large"


class InvalidHistory(InvalidInput):
    message = "Invalid conversation history"


class ExtractionFailure(AssistantError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Failed to analyze file"


class IntentDetectionFailure(AssistantError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Failed to detect intent"


# Recoverable failures. Stages catch these (or the underlying error) and
# degrade; they only appear in logs and TurnState.errors.


class ContextEnhancementFailure(Exception):
    pass


class RewriteFailure(Exception):
    pass


class AssemblyFailure(Exception):
    pass
