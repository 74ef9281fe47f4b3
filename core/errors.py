class TelosMatrixError(Exception):
    """Base exception class for the Telos idea matrix analysis layer."""
    pass


# --- Configuration ---

class ConfigError(TelosMatrixError):
    """Raised when provider or manager configuration is invalid. Never retried."""
    pass


class TemplateCompileError(ConfigError):
    """Raised when a request-body template cannot be parsed."""
    pass


class TemplateRenderError(ConfigError):
    """Raised when a request-body template fails while rendering."""
    pass


class PreferenceError(TelosMatrixError):
    """Raised when the preference file cannot be read, written or queried."""
    pass


# --- Providers ---

class ProviderError(TelosMatrixError):
    """Base class for failures of a single analysis attempt."""
    pass


class MissingContextError(ProviderError):
    """Raised when a provider needs the domain context and none was supplied."""
    pass


class ProviderTransportError(ProviderError):
    """Raised when the backend could not be reached (refused, reset, DNS...)."""
    pass


class ProviderTimeoutError(ProviderTransportError):
    """Raised when the backend did not answer within its timeout."""
    pass


class ProviderHTTPError(ProviderError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"API error (HTTP {status_code}): {body}")


class ResponseParseError(ProviderError):
    """Raised when a backend response cannot be turned into a result."""
    pass


class ScoreValidationError(ProviderError):
    """Raised when a category score falls outside its declared bound."""
    pass


class ProviderNotFoundError(ProviderError):
    """Raised when a provider name is not registered."""
    pass


class ProviderUnavailableError(ProviderError):
    """Raised when a provider is registered but not currently available."""
    pass


# --- Fallback / manager ---

class NoProvidersAvailableError(ProviderError):
    """Raised when no provider could even be attempted."""
    pass


class AllProvidersFailedError(ProviderError):
    """Raised when every attempted provider failed."""

    def __init__(self, last_error: BaseException):
        self.last_error = last_error
        super().__init__(f"all providers failed, last error: {last_error}")


class FallbackDisabledError(ProviderError):
    """Raised when the primary provider failed and fallback is switched off."""
    pass


class DeadlineExceededError(ProviderError):
    """Raised when the overall fallback deadline elapsed before a success."""
    pass
