# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   TutorError
#   ├── ConfigurationError    — missing settings, fatal at startup
#   ├── UpstreamServiceError  — embedding / generation / store failure
#   │   └── UpstreamTimeoutError — request exceeded its time budget
#   └── ContentTooShortError  — ingestion skip, never reaches a client
#
# Refusals and "not enough verified information" answers are successful
# outcomes, not errors.
# =============================================================================


class TutorError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(TutorError):
    """Required configuration is missing or invalid."""


class UpstreamServiceError(TutorError):
    """
    An external collaborator failed or returned something unusable.

    `service` names the collaborator ("embedding", "generation", "store")
    so logs say where the failure happened. The message is for logs only;
    clients receive a generic error.
    """

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class UpstreamTimeoutError(UpstreamServiceError):
    """The request did not finish within its time budget."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            "pipeline", f"request exceeded {timeout_seconds:g}s timeout",
        )
        self.timeout_seconds = timeout_seconds


class ContentTooShortError(TutorError):
    """Extracted page text is too short to be worth indexing."""

    def __init__(self, url: str, length: int, minimum: int) -> None:
        super().__init__(
            f"text too short for {url}: {length} chars (minimum {minimum})"
        )
        self.url = url
        self.length = length
        self.minimum = minimum
