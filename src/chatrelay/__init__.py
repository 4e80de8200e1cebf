"""
The main entrypoint for the chatrelay package.

This module contains the ChatRelay class, which wires together the pillars of
the package: provider adapters (``llm``, looked up through ``registry``),
persistence (``store``), API keys (``keys``) and the send/retry ``engine``.
Every pillar can be swapped for a custom implementation.
"""

import logging
from typing import Callable, List, Optional

from . import keys, llm, registry, store
from .engine import Engine
from .errors import ConfigurationError
from .models import Conversation, Model, ProviderInfo

logger = logging.getLogger(__name__)


class ChatRelay:
    """
    A vendor-agnostic chat client.

    The constructor uses concrete default implementations, so
    ``ChatRelay()`` talks to every built-in vendor with keys taken from the
    environment and conversations kept in memory.
    """

    def __init__(
        self,
        store: Optional["store.Store"] = None,
        keys: Optional["keys.Keys"] = None,
        registry: Optional["registry.Registry"] = None,
        on_update: Optional[Callable[[Conversation], None]] = None,
        **engine_kwargs,
    ) -> None:
        """
        Initialize ChatRelay with configurable pillars.

        Parameters
        ----------
        store : store.Store, optional
            Persistence for conversations, groups and preferences.
            Defaults to store.InMemory().
        keys : keys.Keys, optional
            Source of API keys. Defaults to keys.Environment(), which reads
            ``OPENAI_API_KEY``, ``ANTHROPIC_API_KEY`` and friends.
        registry : registry.Registry, optional
            Adapter lookup. Defaults to all built-in vendors.
        on_update : callable, optional
            Called with the conversation on every in-memory change,
            including each streamed token.
        **engine_kwargs
            Passed to :class:`~chatrelay.engine.Engine` (``temperature``,
            ``max_tokens``, ``default_system_prompt``).

        Examples
        --------
        >>> relay = ChatRelay(
        ...     store=store.File("./conversations"),
        ...     keys=keys.InMemory({"anthropic": "sk-ant-..."}),
        ... )
        >>> convo = await relay.engine.send(
        ...     None, "Hello", provider_id="anthropic", model_id="claude-3-5-haiku-20241022"
        ... )
        """
        store_module = globals()["store"]
        keys_module = globals()["keys"]
        registry_module = globals()["registry"]

        self.store = store if store is not None else store_module.InMemory()
        self.keys = keys if keys is not None else keys_module.Environment()
        self.registry = registry if registry is not None else registry_module.Registry()
        self.engine = Engine(
            self.store, self.keys, registry=self.registry, on_update=on_update, **engine_kwargs
        )

    def available_providers(self) -> List[ProviderInfo]:
        """Providers that are registered and have an API key configured."""
        return [
            info
            for pid, info in registry.PROVIDERS.items()
            if pid in self.registry and self.keys.has_api_key(pid)
        ]

    async def fetch_models(self, provider_id: str) -> List[Model]:
        """Fetches a provider's model catalog with the stored API key."""
        api_key = self.keys.get_api_key(provider_id)
        if not api_key:
            raise ConfigurationError(f"Please configure an API key for {provider_id}")
        adapter = self.registry.get_adapter(provider_id)
        models = await adapter.fetch_models(api_key)
        logger.info("Fetched %d %s models", len(models), provider_id)
        return models

    def new_conversation(
        self, provider_id: Optional[str] = None, model_id: Optional[str] = None
    ) -> Conversation:
        """Starts an empty conversation on the given or preferred model.

        The conversation is saved on its first send, not here.
        """
        preferences = self.store.get_preferences()
        provider_id = provider_id or preferences.default_provider
        model_id = model_id or preferences.default_model
        if not model_id:
            raise ConfigurationError("Please select a model")
        return Conversation.new(provider_id, model_id)

    def select_model(self, provider_id: str, model_id: str) -> None:
        """Remembers the selection as the default for new conversations."""
        self.store.set_preferences(default_provider=provider_id, default_model=model_id)
