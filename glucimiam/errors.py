"""Error taxonomy for the meal analysis pipeline."""

from typing import Optional


class AnalysisError(Exception):
    """Base class for every failure surfaced by the analyzer."""


class ConfigurationError(AnalysisError):
    """Unknown provider id, missing credentials, bad settings."""


class NetworkTimeout(AnalysisError):
    """A provider call lost its race against the deadline."""

    def __init__(self, stage: str, timeout_s: float):
        super().__init__(f"{stage} timed out after {timeout_s:g}s")
        self.stage = stage
        self.timeout_s = timeout_s


class ProviderError(AnalysisError):
    """Provider call failed for a reason not covered by a subclass."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderAuthFailure(ProviderError):
    pass


class ProviderQuotaFailure(ProviderError):
    pass


class ProviderMalformedRequest(ProviderError):
    pass


class ProviderEmptyResponse(ProviderError):
    pass


class MalformedPayload(AnalysisError):
    """Model output could not be turned into records, even after repair."""

    DIAGNOSTIC_CHARS = 200

    def __init__(self, message: str, raw_text: str = ""):
        self.diagnostic = (raw_text or "")[: self.DIAGNOSTIC_CHARS]
        super().__init__(f"{message}: {self.diagnostic!r}" if self.diagnostic else message)


class ModelDeclinedAnalysis(AnalysisError):
    """The model answered with an explicit failure payload."""

    def __init__(self, reason: str, needs_retake: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.needs_retake = needs_retake


class ReferenceLookupFailure(AnalysisError):
    """Public nutrition lookup failed. Never escapes the reference client."""
