"""Errors raised by LLM backend providers."""


class ProviderError(Exception):
    """Base class for backend provider failures."""


class RequestFailedError(ProviderError):
    """The request could not be delivered or the connection dropped."""

    def __init__(self, detail: str):
        super().__init__(f"API request failed: {detail}")
        self.detail = detail


class ProviderAPIError(ProviderError):
    """The backend answered with an error status."""

    def __init__(self, code: str, message: str):
        super().__init__(f"API returned error: {code} - {message}")
        self.code = code
        self.message = message


class InvalidResponseError(ProviderError):
    """The backend answered with something we could not interpret."""

    def __init__(self, detail: str):
        super().__init__(f"Invalid response format: {detail}")
        self.detail = detail


class NotConfiguredError(ProviderError):
    """The provider is unknown or lacks required settings."""

    def __init__(self, detail: str):
        super().__init__(f"Provider not configured: {detail}")
        self.detail = detail


class StreamInterruptedError(ProviderError):
    """A streamed completion ended before its terminator."""

    def __init__(self, detail: str = ""):
        super().__init__(f"Stream interrupted: {detail}" if detail else "Stream interrupted")


class AuthenticationFailedError(ProviderError):
    def __init__(self, detail: str = ""):
        super().__init__(f"Authentication failed: {detail}" if detail else "Authentication failed")


class RateLimitExceededError(ProviderError):
    def __init__(self, detail: str = ""):
        super().__init__(f"Rate limit exceeded: {detail}" if detail else "Rate limit exceeded")
