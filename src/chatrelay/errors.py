"""Exceptions raised by adapters, the registry and the engine."""

from typing import Optional


class ChatError(Exception):
    """Base class for every error raised by chatrelay."""


class ConfigurationError(ChatError):
    """A model or API key is missing; no request was attempted."""


class UnknownProviderError(ChatError):
    """The registry has no adapter for the requested provider id."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Unknown provider: {provider_id}")


class CatalogFetchError(ChatError):
    """The model catalog request returned a non-success status."""

    def __init__(self, provider_name: str, status_text: str, status_code: Optional[int] = None):
        self.provider_name = provider_name
        self.status_text = status_text
        self.status_code = status_code
        super().__init__(f"Failed to fetch {provider_name} models: {status_text}")


class HTTPError(ChatError):
    """The chat request returned a non-success status."""

    def __init__(self, provider_name: str, status_code: int, body: str):
        self.provider_name = provider_name
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider_name} API error ({status_code}): {body}")


class SystemPromptUnsupportedError(HTTPError):
    """The vendor rejected the request because of the system instruction.

    Recoverable: the engine resolves it with
    :meth:`chatrelay.engine.Engine.continue_without_system_prompt`.
    """


class NoResponseBodyError(ChatError):
    """The vendor answered without a readable body."""


class StreamError(ChatError):
    """The stream broke after it started (transport failure or vendor error event)."""


class RequestInFlightError(ChatError):
    """A request is already streaming for this conversation."""


class MessageNotFoundError(ChatError):
    """No message with the given id exists in the conversation."""
