"""Provider catalogue and the adapter lookup."""

from typing import Dict, Mapping, Optional, Type

from .errors import UnknownProviderError
from .llm import LLM, XAI, Anthropic, Gemini, Groq, OpenAI, OpenRouter
from .models import ProviderInfo

PROVIDERS: Dict[str, ProviderInfo] = {
    "gemini": ProviderInfo(
        id="gemini",
        name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com",
        models_endpoint="/v1beta/models",
    ),
    "anthropic": ProviderInfo(
        id="anthropic",
        name="Anthropic Claude",
        base_url="https://api.anthropic.com",
        supports_model_fetching=False,
    ),
    "openai": ProviderInfo(
        id="openai",
        name="OpenAI",
        base_url="https://api.openai.com",
        models_endpoint="/v1/models",
    ),
    "xai": ProviderInfo(
        id="xai",
        name="xAI Grok",
        base_url="https://api.x.ai",
        models_endpoint="/v1/models",
    ),
    "groq": ProviderInfo(
        id="groq",
        name="Groq",
        base_url="https://api.groq.com",
        models_endpoint="/openai/v1/models",
    ),
    "openrouter": ProviderInfo(
        id="openrouter",
        name="OpenRouter",
        base_url="https://openrouter.ai",
        models_endpoint="/api/v1/models",
    ),
}

ADAPTER_CLASSES: Dict[str, Type[LLM]] = {
    "gemini": Gemini,
    "anthropic": Anthropic,
    "openai": OpenAI,
    "xai": XAI,
    "groq": Groq,
    "openrouter": OpenRouter,
}


class Registry:
    """Maps provider ids to adapter instances.

    The default registry holds one instance of every built-in adapter. Passing
    ``adapters`` replaces that set entirely, which is how tests and offline
    setups plug in :class:`~chatrelay.llm.Echo` or adapters bound to a mock
    HTTP client.
    """

    def __init__(self, adapters: Optional[Mapping[str, LLM]] = None):
        if adapters is None:
            adapters = {pid: cls() for pid, cls in ADAPTER_CLASSES.items()}
        self._adapters: Dict[str, LLM] = dict(adapters)

    def get_adapter(self, provider_id: str) -> LLM:
        try:
            return self._adapters[provider_id]
        except KeyError:
            raise UnknownProviderError(provider_id) from None

    def provider_ids(self):
        return list(self._adapters)

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._adapters


_default_registry: Optional[Registry] = None


def get_adapter(provider_id: str) -> LLM:
    """Looks up a built-in adapter by provider id.

    Raises
    ------
    UnknownProviderError
        If ``provider_id`` is not a registered provider.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = Registry()
    return _default_registry.get_adapter(provider_id)
