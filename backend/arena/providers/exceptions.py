class ProviderError(Exception):
    """Base exception for decision provider errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """No API key for the provider."""

    pass


class ProviderAuthError(ProviderError):
    """Authentication failed."""

    pass


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded."""

    pass


class ProviderUnavailableError(ProviderError):
    """Server-side error (5xx) or connection failure."""

    pass


class ProviderTimeoutError(ProviderError):
    """The provider did not answer in time."""

    pass


class ProviderResponseError(ProviderError):
    """Non-success status or a response envelope missing its content."""

    pass


class DecisionParseError(ProviderError):
    """No decodable JSON object in the provider's text."""

    pass


class DecisionValidationError(ProviderError):
    """Parsed decision failed the structural checks."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
