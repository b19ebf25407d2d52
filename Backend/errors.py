"""
Error kinds shared by the provider clients, the queue worker and the API
"""


class ConfigError(Exception):
    """Raised when a required API key or setting is missing."""
    kind = "configuration-missing"


class ProviderError(Exception):
    """Base class for failures talking to an external AI provider."""
    kind = "provider-error"
    status_code = 500


class ProviderFetchError(ProviderError):
    """Provider unreachable or returned a non-2xx response."""
    kind = "fetch-error"

    def __init__(self, message, provider_status=None):
        super().__init__(message)
        self.provider_status = provider_status


class RateLimitedError(ProviderError):
    kind = "rate-limited"
    status_code = 429


class NoResultError(ProviderError):
    """Provider answered but the expected content was empty."""
    kind = "no-result"


class TranscriptParseError(ProviderError):
    kind = "transcript-parse"
    status_code = 502
