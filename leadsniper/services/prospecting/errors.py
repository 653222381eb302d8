"""Shared error classes for the prospecting services and their clients."""

from __future__ import annotations


class ProspectingError(RuntimeError):
    """Base exception raised by prospecting services."""

    def __init__(self, message: str, code: str = "500_PROSPECTING_ERROR") -> None:
        super().__init__(message)
        self.code = code


class ProspectingValidationError(ProspectingError):
    """Raised when caller input fails validation."""

    def __init__(self, message: str, code: str = "400_INVALID_REQUEST") -> None:
        super().__init__(message, code=code)


class LeadNotFoundError(ProspectingError):
    """Raised when a lead does not exist for the requesting owner."""

    def __init__(self, message: str = "Lead not found.") -> None:
        super().__init__(message, code="404_LEAD_NOT_FOUND")


class ResearchRunNotFoundError(ProspectingError):
    """Raised when a research run does not exist for the requesting owner."""

    def __init__(self, message: str = "Research run not found.") -> None:
        super().__init__(message, code="404_RESEARCH_RUN_NOT_FOUND")


class PersistenceError(ProspectingError):
    """Raised when the repository fails to save or retrieve records."""

    def __init__(self, message: str, code: str = "500_PERSISTENCE") -> None:
        super().__init__(message, code=code)


class UpstreamServiceError(ProspectingError):
    """Base for failures of an external webhook or gateway."""


class DiscoveryError(UpstreamServiceError):
    """Raised when the discovery webhook fails or returns an unusable payload."""

    def __init__(self, message: str, code: str = "502_DISCOVERY_UPSTREAM") -> None:
        super().__init__(message, code=code)


class VerificationError(UpstreamServiceError):
    """Raised when the marketing verification webhook fails."""

    def __init__(self, message: str, code: str = "502_VERIFICATION_UPSTREAM") -> None:
        super().__init__(message, code=code)


class AnalysisError(UpstreamServiceError):
    """Raised when the AI lead analysis webhook fails."""

    def __init__(self, message: str, code: str = "502_ANALYSIS_UPSTREAM") -> None:
        super().__init__(message, code=code)


class WhatsAppError(UpstreamServiceError):
    """Raised when the WhatsApp gateway rejects or fails a send."""

    def __init__(self, message: str, code: str = "502_WHATSAPP_UPSTREAM") -> None:
        super().__init__(message, code=code)


class ServiceNotConfiguredError(ProspectingError):
    """Raised when an operation needs an external endpoint that is not configured."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="503_NOT_CONFIGURED")
