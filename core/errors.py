from enum import Enum


class ErrorClass(str, Enum):
    """Machine-readable classification of a provider failure."""
    TRANSIENT = "transient"
    QUOTA_EXCEEDED = "quota_exceeded"
    AUTH_FAILURE = "auth_failure"
    MALFORMED_OUTPUT = "malformed_output"


class PraxisError(Exception):
    """Base exception class for the Praxis orchestration layer."""
    pass

class ConfigError(PraxisError):
    """Raised when there is an error in a configuration file or setting."""
    pass

class UnknownFeatureError(ConfigError):
    """Raised when a request names a feature type with no registered chain."""
    pass

class ProviderError(PraxisError):
    """Raised by a provider adapter when an upstream call fails."""
    error_class: ErrorClass = ErrorClass.TRANSIENT

    def __init__(self, message: str, provider: str = "unknown"):
        super().__init__(message)
        self.provider = provider

class TransientProviderError(ProviderError):
    """Timeout, transport failure or 5xx-class response."""
    error_class = ErrorClass.TRANSIENT

class QuotaExceededError(ProviderError):
    """Rate limit or resource exhaustion signalled by the provider."""
    error_class = ErrorClass.QUOTA_EXCEEDED

class AuthFailureError(ProviderError):
    """Invalid or missing credential. Not retryable by switching providers."""
    error_class = ErrorClass.AUTH_FAILURE

class MalformedOutputError(ProviderError):
    """Provider replied but no usable structured payload could be recovered."""
    error_class = ErrorClass.MALFORMED_OUTPUT
