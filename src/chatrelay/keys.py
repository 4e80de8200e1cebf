"""Concrete implementations for API key managers."""

import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

# Environment variable holding each provider's key.
ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "xai": "XAI_API_KEY",
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


class Keys(ABC):
    """Interface for looking up the user's API key for each provider."""

    @abstractmethod
    def get_api_keys(self) -> Dict[str, str]:
        """Returns every configured key, by provider id. Blank keys are omitted."""
        pass

    @abstractmethod
    def set_api_key(self, provider_id: str, key: str) -> None:
        pass

    @abstractmethod
    def remove_api_key(self, provider_id: str) -> None:
        pass

    def get_api_key(self, provider_id: str) -> Optional[str]:
        return self.get_api_keys().get(provider_id)

    def has_api_key(self, provider_id: str) -> bool:
        return bool(self.get_api_key(provider_id))


class InMemory(Keys):
    """Holds keys in a dictionary."""

    def __init__(self, keys: Optional[Mapping[str, str]] = None):
        self._keys: Dict[str, str] = dict(keys or {})

    def get_api_keys(self) -> Dict[str, str]:
        return {pid: key for pid, key in self._keys.items() if key}

    def set_api_key(self, provider_id: str, key: str) -> None:
        self._keys[provider_id] = key.strip()

    def remove_api_key(self, provider_id: str) -> None:
        self._keys.pop(provider_id, None)


class Environment(InMemory):
    """Reads keys from ``OPENAI_API_KEY``-style environment variables.

    Keys set at runtime take precedence over the environment and are not
    written back to it.
    """

    def __init__(self, env_vars: Optional[Mapping[str, str]] = None):
        super().__init__()
        self.env_vars = dict(env_vars or ENV_VARS)
        self._removed = set()

    def get_api_keys(self) -> Dict[str, str]:
        keys = {}
        for provider_id, var in self.env_vars.items():
            value = os.environ.get(var, "").strip()
            if value and provider_id not in self._removed:
                keys[provider_id] = value
        keys.update(super().get_api_keys())
        return keys

    def set_api_key(self, provider_id: str, key: str) -> None:
        self._removed.discard(provider_id)
        super().set_api_key(provider_id, key)

    def remove_api_key(self, provider_id: str) -> None:
        self._removed.add(provider_id)
        super().remove_api_key(provider_id)
