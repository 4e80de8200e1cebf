"""The send/retry orchestrator.

The engine turns a user message into a persisted, priced assistant reply:

``IDLE -> SENDING -> STREAMING -> FINALIZING -> IDLE``

SENDING appends the user message and an empty assistant placeholder and saves
the conversation. STREAMING appends every token to the placeholder in order.
FINALIZING records timing, token count and cost, then saves again. A stop
request during STREAMING still finalizes with the partial reply; an error
clears the in-flight state without finalizing cost and propagates to the
caller with the partial reply left in place.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import (
    ChatError,
    ConfigurationError,
    MessageNotFoundError,
    RequestInFlightError,
)
from .keys import Keys
from .llm import LLM
from .models import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    Attachment,
    ChatConfig,
    ChatMessage,
    Conversation,
    generate_conversation_title,
)
from .registry import Registry
from .store import Store
from .streaming import CancelToken, StreamCallbacks
from .tokens import estimate_messages_tokens, estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly and helpful AI assistant. Always try your best to assist "
    "the user. If you don't know the answer, just say so. Don't make things up. "
    "Don't make promises you can't keep. Don't make up dates or times."
)
SYSTEM_MESSAGE_ID = "system"


class EngineState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZING = "finalizing"


@dataclass
class _InFlight:
    state: EngineState
    cancel_token: CancelToken


@dataclass
class _Target:
    provider_id: str
    model_id: str
    api_key: str
    adapter: LLM


class Engine:
    """Drives one request at a time per conversation.

    Parameters
    ----------
    store : Store
        Where conversations are saved and preferences are read.
    keys : Keys
        Source of the API key for each provider.
    registry : Registry, optional
        Adapter lookup. Defaults to every built-in vendor.
    default_system_prompt : str
        Sent when the user's preferences hold no system prompt.
    temperature, max_tokens
        Generation settings placed in every request's ``ChatConfig``.
    on_update : callable, optional
        Called with the conversation whenever it changes in memory, including
        once per streamed token.
    """

    def __init__(
        self,
        store: Store,
        keys: Keys,
        registry: Optional[Registry] = None,
        default_system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = 4096,
        on_update: Optional[Callable[[Conversation], None]] = None,
    ):
        self.store = store
        self.keys = keys
        self.registry = registry if registry is not None else Registry()
        self.default_system_prompt = default_system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.on_update = on_update
        self.session_cost = 0.0
        self._in_flight: Dict[str, _InFlight] = {}

    # --- State ---

    def state(self, convo_id: str) -> EngineState:
        in_flight = self._in_flight.get(convo_id)
        return in_flight.state if in_flight else EngineState.IDLE

    def is_streaming(self, convo_id: str) -> bool:
        return convo_id in self._in_flight

    def stop(self, convo_id: str) -> bool:
        """Fires the cancel token of the conversation's in-flight request.

        The pending ``send``/``retry`` call then finalizes with the partial
        reply. Returns False when nothing was in flight.
        """
        in_flight = self._in_flight.get(convo_id)
        if in_flight is None:
            return False
        logger.info("Stopping request for conversation %s", convo_id)
        in_flight.cancel_token.cancel()
        return True

    def reset_session_cost(self, value: float = 0.0) -> None:
        self.session_cost = value

    # --- Operations ---

    async def send(
        self,
        conversation: Optional[Conversation],
        content: str,
        attachments: Optional[List[Attachment]] = None,
        provider_id: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> Conversation:
        """Sends a user message and streams the assistant's reply.

        Parameters
        ----------
        conversation : Conversation, optional
            The conversation to continue. A new one is created when None.
        content : str
            The user's message.
        attachments : List[Attachment], optional
            Files and images sent with the message.
        provider_id, model_id : str, optional
            The selection to use. Defaults to the conversation's, then to the
            stored preferences.

        Returns
        -------
        Conversation
            The same conversation object, finalized and saved.

        Raises
        ------
        ConfigurationError
            No model is selected or no API key is stored for the provider.
        RequestInFlightError
            The conversation is already streaming a reply.
        SystemPromptUnsupportedError
            The vendor refused the system instruction. Resolve it with
            :meth:`continue_without_system_prompt`.
        ChatError
            Any other vendor or transport failure.
        """
        target = self._resolve_target(conversation, provider_id, model_id)
        if conversation is None:
            conversation = Conversation.new(target.provider_id, target.model_id)
        self._begin(conversation.id)

        try:
            user_message = ChatMessage(
                role=USER_ROLE,
                content=content,
                token_count=estimate_tokens(content, attachments),
                attachments=attachments or None,
            )
            placeholder = ChatMessage(role=ASSISTANT_ROLE, content="")
            if not conversation.messages:
                conversation.title = generate_conversation_title(content)
            conversation.messages.extend([user_message, placeholder])
            conversation.provider_id = target.provider_id
            conversation.model_id = target.model_id
            conversation.touch()
            self._save(conversation)

            outbound = self.build_outbound_messages(
                conversation.messages[:-1], conversation.disable_system_prompt
            )
        except Exception:
            self._in_flight.pop(conversation.id, None)
            raise

        logger.info("Sending message in conversation %s", conversation.id)
        return await self._stream_reply(conversation, placeholder, outbound, target)

    async def continue_without_system_prompt(self, conversation: Conversation) -> Conversation:
        """Re-issues the pending request with the system prompt left out.

        Fills the existing assistant placeholder (its id is kept) and, once the
        reply completes, sets ``disable_system_prompt`` on the conversation.
        """
        if not conversation.messages or conversation.messages[-1].role != ASSISTANT_ROLE:
            raise ChatError("No pending assistant message to continue")
        target = self._resolve_target(conversation, None, None)
        self._begin(conversation.id)

        placeholder = conversation.messages[-1]
        placeholder.content = ""
        outbound = self.build_outbound_messages(
            conversation.messages[:-1], disable_system_prompt=True
        )

        def disable_system_prompt(convo: Conversation) -> None:
            convo.disable_system_prompt = True

        logger.info("Continuing conversation %s without system prompt", conversation.id)
        return await self._stream_reply(
            conversation, placeholder, outbound, target, on_success=disable_system_prompt
        )

    async def retry(
        self,
        conversation: Conversation,
        message_id: str,
        provider_id: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> Conversation:
        """Regenerates the reply to a user message.

        Everything after the user message ``message_id`` is discarded and a
        fresh placeholder is appended. Passing the id of an assistant message
        regenerates that message: the history is cut just before it.

        Raises
        ------
        MessageNotFoundError
            No message with ``message_id`` exists in the conversation.
        """
        index = conversation.find_message(message_id)
        if index == -1:
            raise MessageNotFoundError(f"No message {message_id} in conversation {conversation.id}")
        target = self._resolve_target(conversation, provider_id, model_id)
        self._begin(conversation.id)

        try:
            keep = index if conversation.messages[index].role == ASSISTANT_ROLE else index + 1
            history = conversation.messages[:keep]
            placeholder = ChatMessage(role=ASSISTANT_ROLE, content="")
            conversation.messages = history + [placeholder]
            conversation.provider_id = target.provider_id
            conversation.model_id = target.model_id
            conversation.touch()
            self._save(conversation)

            outbound = self.build_outbound_messages(history, conversation.disable_system_prompt)
        except Exception:
            self._in_flight.pop(conversation.id, None)
            raise
        logger.info("Retrying message %s in conversation %s", message_id, conversation.id)
        return await self._stream_reply(conversation, placeholder, outbound, target)

    # --- Helpers ---

    def system_prompt(self) -> str:
        """The user's configured system prompt, or the built-in fallback."""
        configured = self.store.get_preferences().system_prompt
        if configured and configured.strip():
            return configured
        return self.default_system_prompt

    def build_outbound_messages(
        self, history: List[ChatMessage], disable_system_prompt: bool
    ) -> List[ChatMessage]:
        """History as sent to the vendor, prefixed by the system message when enabled."""
        outbound = [m for m in history if m.role != SYSTEM_ROLE]
        if disable_system_prompt:
            return outbound
        system = ChatMessage(id=SYSTEM_MESSAGE_ID, role=SYSTEM_ROLE, content=self.system_prompt())
        return [system] + outbound

    def _resolve_target(
        self,
        conversation: Optional[Conversation],
        provider_id: Optional[str],
        model_id: Optional[str],
    ) -> _Target:
        preferences = self.store.get_preferences()
        if conversation is not None:
            provider_id = provider_id or conversation.provider_id
            model_id = model_id or conversation.model_id
        provider_id = provider_id or preferences.default_provider
        model_id = model_id or preferences.default_model

        if not model_id:
            raise ConfigurationError("Please select a model")
        api_key = self.keys.get_api_key(provider_id)
        if not api_key:
            raise ConfigurationError(f"Please configure an API key for {provider_id}")
        adapter = self.registry.get_adapter(provider_id)
        return _Target(provider_id, model_id, api_key, adapter)

    def _begin(self, convo_id: str) -> CancelToken:
        if convo_id in self._in_flight:
            raise RequestInFlightError(f"Conversation {convo_id} is already streaming a reply")
        token = CancelToken()
        self._in_flight[convo_id] = _InFlight(EngineState.SENDING, token)
        return token

    def _config(self, model_id: str, system_prompt: Optional[str]) -> ChatConfig:
        return ChatConfig(
            model=model_id,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            system_prompt=system_prompt,
        )

    async def _stream_reply(
        self,
        conversation: Conversation,
        placeholder: ChatMessage,
        outbound: List[ChatMessage],
        target: _Target,
        on_success: Optional[Callable[[Conversation], None]] = None,
    ) -> Conversation:
        in_flight = self._in_flight[conversation.id]
        system = next((m.content for m in outbound if m.role == SYSTEM_ROLE), None)
        config = self._config(target.model_id, system)
        outcome: Dict[str, object] = {}

        def on_token(token: str) -> None:
            placeholder.content += token
            self._notify(conversation)

        def on_complete(text: str) -> None:
            outcome["text"] = text

        def on_error(error: Exception) -> None:
            outcome["error"] = error

        start = time.monotonic()
        try:
            in_flight.state = EngineState.STREAMING
            await target.adapter.stream_chat(
                outbound,
                config,
                target.api_key,
                StreamCallbacks(on_token=on_token, on_complete=on_complete, on_error=on_error),
                in_flight.cancel_token,
            )
            if "error" in outcome:
                error = outcome["error"]
                logger.warning("Request failed for conversation %s: %s", conversation.id, error)
                raise error

            in_flight.state = EngineState.FINALIZING
            cost = self._finalize(
                conversation,
                placeholder,
                outcome.get("text", placeholder.content),
                outbound,
                target,
                time.monotonic() - start,
            )
            if on_success is not None:
                on_success(conversation)
            self._save(conversation)
            self.session_cost += cost
            logger.info(
                "Finalized reply in conversation %s (%s tokens, $%.6f)",
                conversation.id,
                placeholder.token_count,
                cost,
            )
        finally:
            self._in_flight.pop(conversation.id, None)
        self._notify(conversation)
        return conversation

    def _finalize(
        self,
        conversation: Conversation,
        placeholder: ChatMessage,
        text: str,
        outbound: List[ChatMessage],
        target: _Target,
        duration: float,
    ) -> float:
        output_tokens = estimate_tokens(text)
        input_tokens = estimate_messages_tokens(outbound)
        cost = target.adapter.estimate_cost(input_tokens, output_tokens, target.model_id)

        placeholder.content = text
        placeholder.token_count = output_tokens
        placeholder.timing = duration
        placeholder.model = target.model_id
        conversation.total_cost += cost
        conversation.touch()
        return cost

    def _save(self, conversation: Conversation) -> None:
        self.store.save_conversation(conversation)
        self._notify(conversation)

    def _notify(self, conversation: Conversation) -> None:
        if self.on_update is not None:
            self.on_update(conversation)
