"""Concrete implementations for LLM providers.

Every vendor is wrapped in an adapter implementing the :class:`LLM` contract:
fetch the model catalog, stream a chat completion into
:class:`~chatrelay.streaming.StreamCallbacks`, and estimate the cost of a
request. Requests go straight to each vendor's HTTP API with ``httpx`` so the
streaming body can be decoded line by line as it arrives.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from .errors import (
    CatalogFetchError,
    ChatError,
    HTTPError,
    NoResponseBodyError,
    StreamError,
    SystemPromptUnsupportedError,
)
from .models import (
    IMAGE_ATTACHMENT,
    SYSTEM_ROLE,
    USER_ROLE,
    ChatConfig,
    ChatMessage,
    Model,
    Pricing,
)
from .streaming import CancelToken, StreamCallbacks, dig, is_done_line, parse_sse_line
from .tokens import calculate_cost

logger = logging.getLogger(__name__)

PricingTable = Tuple[Tuple[str, Pricing], ...]

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)

# Lower-cased fragments of vendor error bodies that mean "this model does not
# accept a system instruction".
SYSTEM_PROMPT_REJECTION_MARKERS = (
    "developer instruction is not enabled",
    "system role is not supported",
    "system role not supported",
    "system messages are not supported",
    "does not support system",
)


@dataclass
class ChatRequest:
    """A fully built vendor request, ready to be POSTed."""

    url: str
    json: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


class LLM(ABC):
    """Abstract Base Class for all LLM providers."""

    provider_id: str = ""
    name: str = ""
    base_url: str = ""
    pricing_table: PricingTable = ()
    default_pricing: Pricing = Pricing(input=0.0, output=0.0)
    default_max_tokens: int = 4096
    system_prompt_markers: Sequence[str] = SYSTEM_PROMPT_REJECTION_MARKERS

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
    ):
        self.client = client
        self.timeout = timeout or DEFAULT_TIMEOUT

    @abstractmethod
    async def fetch_models(self, api_key: str) -> List[Model]:
        """Fetches the chat-capable models this vendor offers.

        Parameters
        ----------
        api_key : str
            The user's key for this vendor.

        Returns
        -------
        List[Model]
            Catalog entries, already filtered to models that can chat.

        Raises
        ------
        CatalogFetchError
            If the catalog endpoint answers with a non-success status.
        """
        pass

    @abstractmethod
    def build_request(
        self, messages: List[ChatMessage], config: ChatConfig, api_key: str
    ) -> ChatRequest:
        """Translates canonical messages into this vendor's streaming request."""
        pass

    @abstractmethod
    def extract_text(self, event: Dict[str, Any]) -> Optional[str]:
        """Returns the text fragment carried by one decoded stream event, if any."""
        pass

    def check_event(self, event: Dict[str, Any]) -> None:
        """Raises when a stream event reports a vendor-side failure."""

    async def stream_chat(
        self,
        messages: List[ChatMessage],
        config: ChatConfig,
        api_key: str,
        callbacks: StreamCallbacks,
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        """Streams a chat completion into ``callbacks``.

        Tokens reach ``callbacks.on_token`` in vendor order as each line of the
        body is read. The call ends with exactly one ``on_complete`` or
        ``on_error``. A fired ``cancel_token`` ends the stream at once, even
        while a read is pending, and counts as a successful completion with
        whatever text arrived so far. An exception raised by a callback is
        reported through ``on_error`` like any other failure.

        Parameters
        ----------
        messages : List[ChatMessage]
            Conversation history to send, system message included when wanted.
        config : ChatConfig
            Model and generation settings for this request.
        api_key : str
            The user's key for this vendor.
        callbacks : StreamCallbacks
            Sink for tokens and the terminal event.
        cancel_token : CancelToken, optional
            One-shot stop signal for this request.
        """
        cancel_token = cancel_token or CancelToken()
        if cancel_token.cancelled:
            callbacks.on_complete("")
            return

        received: List[str] = []

        def emit(text: str) -> None:
            received.append(text)
            callbacks.on_token(text)

        reader = asyncio.ensure_future(
            self._read_stream(messages, config, api_key, emit, cancel_token)
        )
        stopper = asyncio.ensure_future(cancel_token.wait())
        stopped = False
        try:
            await asyncio.wait({reader, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not reader.done():
                stopped = True
                # Cancelling the reader closes the response on its way out.
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)

        full_response = "".join(received)
        if stopped:
            logger.info("%s stream cancelled by caller", self.name)
            callbacks.on_complete(full_response)
            return

        error = reader.exception()
        if error is None:
            callbacks.on_complete(full_response)
        elif isinstance(error, ChatError):
            callbacks.on_error(error)
        elif isinstance(error, httpx.HTTPError):
            if cancel_token.cancelled:
                callbacks.on_complete(full_response)
                return
            logger.warning("%s stream failed: %s", self.name, error)
            callbacks.on_error(StreamError(f"{self.name} stream failed: {error}"))
        elif isinstance(error, Exception):
            logger.warning("%s stream aborted by %s: %s", self.name, type(error).__name__, error)
            callbacks.on_error(error)
        else:
            raise error

    async def _read_stream(
        self,
        messages: List[ChatMessage],
        config: ChatConfig,
        api_key: str,
        emit: Callable[[str], None],
        cancel_token: CancelToken,
    ) -> None:
        request = self.build_request(messages, config, api_key)
        logger.info(
            "Streaming %s chat with model %s (%d messages)",
            self.name,
            config.model,
            len(messages),
        )
        async with self._session() as client:
            async with client.stream(
                "POST",
                request.url,
                json=request.json,
                headers=request.headers,
                params=request.params,
            ) as response:
                if response.is_error:
                    body = await response.aread()
                    raise self.classify_error(
                        response.status_code, body.decode("utf-8", errors="replace")
                    )
                async for line in self._iter_lines(response):
                    if cancel_token.cancelled:
                        break
                    if is_done_line(line):
                        break
                    event = parse_sse_line(line)
                    if event is None:
                        continue
                    self.check_event(event)
                    text = self.extract_text(event)
                    if text:
                        emit(text)

    def classify_error(self, status_code: int, body: str) -> HTTPError:
        """Maps a non-success chat response onto the error taxonomy."""
        lowered = body.lower()
        if any(marker in lowered for marker in self.system_prompt_markers):
            logger.warning("%s rejected the system prompt: %s", self.name, body[:200])
            return SystemPromptUnsupportedError(self.name, status_code, body)
        logger.warning("%s API error %s: %s", self.name, status_code, body[:200])
        return HTTPError(self.name, status_code, body)

    def get_model_pricing(self, model_id: str) -> Pricing:
        """First pricing-table key contained in ``model_id`` wins."""
        lowered = model_id.lower()
        for key, pricing in self.pricing_table:
            if self.pricing_key(key) in lowered:
                return pricing
        return self.default_pricing

    def pricing_key(self, key: str) -> str:
        return key.lower()

    def estimate_cost(self, input_tokens: int, output_tokens: int, model_id: str) -> float:
        pricing = self.get_model_pricing(model_id)
        return calculate_cost(input_tokens, output_tokens, pricing.input, pricing.output)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    def _iter_lines(self, response: httpx.Response) -> AsyncIterator[str]:
        """Line iterator over the response body.

        A response opened by ``httpx.AsyncClient.stream`` always carries a
        stream; the check guards injected clients and transports that hand
        back a response without one.
        """
        if getattr(response, "stream", None) is None:
            raise NoResponseBodyError(f"{self.name} returned no response body")
        return response.aiter_lines()

    async def _fetch_catalog(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            async with self._session() as client:
                response = await client.get(url, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise CatalogFetchError(self.name, str(e)) from e
        if response.is_error:
            raise CatalogFetchError(self.name, response.reason_phrase, response.status_code)
        return response.json()


# --- OpenAI-compatible vendors ---


class OpenAICompatible(LLM):
    """Shared wire format for vendors speaking the OpenAI chat completions API."""

    models_path = "/v1/models"
    chat_path = "/v1/chat/completions"
    description = ""

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def format_message(self, message: ChatMessage) -> Dict[str, Any]:
        if not message.attachments:
            return {"role": message.role, "content": message.content}
        content: List[Dict[str, Any]] = []
        if message.content:
            content.append({"type": "text", "text": message.content})
        for attachment in message.attachments:
            if attachment.type == IMAGE_ATTACHMENT:
                content.append({"type": "image_url", "image_url": {"url": attachment.data}})
        return {"role": message.role, "content": content}

    def build_request(
        self, messages: List[ChatMessage], config: ChatConfig, api_key: str
    ) -> ChatRequest:
        temperature = config.temperature
        return ChatRequest(
            url=self.base_url + self.chat_path,
            headers=self.auth_headers(api_key),
            json={
                "model": config.model,
                "messages": [self.format_message(m) for m in messages],
                "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
                "max_tokens": config.max_tokens or self.default_max_tokens,
                "stream": True,
            },
        )

    def extract_text(self, event: Dict[str, Any]) -> Optional[str]:
        return dig(event, "choices", 0, "delta", "content")

    async def fetch_models(self, api_key: str) -> List[Model]:
        data = await self._fetch_catalog(
            self.base_url + self.models_path, headers=self.auth_headers(api_key)
        )
        entries = data.get("data") or []
        return [self.to_model(entry) for entry in entries if self.is_chat_model(entry)]

    def is_chat_model(self, entry: Dict[str, Any]) -> bool:
        return True

    def to_model(self, entry: Dict[str, Any]) -> Model:
        model_id = entry["id"]
        supports_images = "vision" in model_id.lower()
        return Model(
            id=model_id,
            name=model_id,
            provider_id=self.provider_id,
            context_length=entry.get("context_window"),
            pricing=self.get_model_pricing(model_id),
            supports_images=supports_images,
            supports_documents=supports_images,
            supports_code=True,
            supports_function_calling=True,
            description=self.description or None,
        )


OPENAI_PRICING: PricingTable = (
    ("gpt-4o", Pricing(input=2.50, output=10.00)),
    ("gpt-4o-mini", Pricing(input=0.15, output=0.60)),
    ("gpt-4-turbo", Pricing(input=10.00, output=30.00)),
    ("gpt-4", Pricing(input=30.00, output=60.00)),
    ("gpt-3.5-turbo", Pricing(input=0.50, output=1.50)),
    ("o1", Pricing(input=15.00, output=60.00)),
    ("o1-mini", Pricing(input=3.00, output=12.00)),
    ("o3-mini", Pricing(input=1.10, output=4.40)),
)


def openai_context_length(model_id: str) -> int:
    if any(k in model_id for k in ("128k", "gpt-4-turbo", "gpt-4o", "o1")):
        return 128000
    if "32k" in model_id:
        return 32768
    if "16k" in model_id:
        return 16384
    if "gpt-4" in model_id:
        return 8192
    if "gpt-3.5" in model_id:
        return 16385
    return 128000


class OpenAI(OpenAICompatible):
    provider_id = "openai"
    name = "OpenAI"
    base_url = "https://api.openai.com"
    pricing_table = OPENAI_PRICING
    default_pricing = Pricing(input=2.50, output=10.00)

    async def fetch_models(self, api_key: str) -> List[Model]:
        models = await super().fetch_models(api_key)
        return sorted(models, key=lambda m: m.id)

    def is_chat_model(self, entry: Dict[str, Any]) -> bool:
        model_id = entry.get("id", "")
        return any(k in model_id for k in ("gpt", "o1", "o3"))

    def to_model(self, entry: Dict[str, Any]) -> Model:
        model_id = entry["id"]
        is_latest = any(k in model_id for k in ("gpt-4o", "o1", "o3"))
        supports_images = is_latest or "gpt-4-turbo" in model_id
        return Model(
            id=model_id,
            name=model_id,
            provider_id=self.provider_id,
            context_length=openai_context_length(model_id),
            pricing=self.get_model_pricing(model_id),
            supports_images=supports_images,
            supports_documents=supports_images,
            supports_code=True,
            supports_function_calling="instruct" not in model_id,
            description=(
                "Our most capable and versatile models"
                if is_latest
                else "Reliable models for general tasks"
            ),
        )


class XAI(OpenAICompatible):
    provider_id = "xai"
    name = "xAI"
    base_url = "https://api.x.ai"
    pricing_table = (
        ("grok-2", Pricing(input=2.00, output=10.00)),
        ("grok-2-mini", Pricing(input=0.20, output=1.00)),
        ("grok-beta", Pricing(input=5.00, output=15.00)),
    )
    default_pricing = Pricing(input=2.00, output=10.00)
    description = "xAI flagship model with advanced reasoning"
    context_length = 131072

    def to_model(self, entry: Dict[str, Any]) -> Model:
        model = super().to_model(entry)
        model.context_length = self.context_length
        return model


class Groq(OpenAICompatible):
    provider_id = "groq"
    name = "Groq"
    base_url = "https://api.groq.com"
    models_path = "/openai/v1/models"
    chat_path = "/openai/v1/chat/completions"
    pricing_table = (
        ("llama-3.3-70b", Pricing(input=0.59, output=0.79)),
        ("llama-3.1-70b", Pricing(input=0.59, output=0.79)),
        ("llama-3.1-8b", Pricing(input=0.05, output=0.08)),
        ("mixtral-8x7b", Pricing(input=0.24, output=0.24)),
        ("gemma2-9b", Pricing(input=0.20, output=0.20)),
    )
    default_pricing = Pricing(input=0.10, output=0.10)
    description = "High-performance inference for open-source models"

    def is_chat_model(self, entry: Dict[str, Any]) -> bool:
        return "whisper" not in entry.get("id", "")


class OpenRouter(OpenAICompatible):
    """Routes to many upstream vendors; prices come from the live catalog.

    ``estimate_cost`` has no static table to consult and always uses the
    generic default tier.
    """

    provider_id = "openrouter"
    name = "OpenRouter"
    base_url = "https://openrouter.ai"
    models_path = "/api/v1/models"
    chat_path = "/api/v1/chat/completions"
    default_pricing = Pricing(input=1.00, output=2.00)

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
        app_url: Optional[str] = None,
        app_title: str = "chatrelay",
    ):
        super().__init__(client=client, timeout=timeout)
        self.app_url = app_url
        self.app_title = app_title

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        headers = super().auth_headers(api_key)
        if self.app_url:
            headers["HTTP-Referer"] = self.app_url
        if self.app_title:
            headers["X-Title"] = self.app_title
        return headers

    def to_model(self, entry: Dict[str, Any]) -> Model:
        model_id = entry["id"]
        pricing = entry.get("pricing") or {}
        architecture = entry.get("architecture") or {}
        modality = architecture.get("modality") or ""
        input_modalities = architecture.get("input_modalities") or []
        return Model(
            id=model_id,
            name=entry.get("name") or model_id,
            provider_id=self.provider_id,
            context_length=entry.get("context_length"),
            pricing=Pricing(
                input=_per_million(pricing.get("prompt")),
                output=_per_million(pricing.get("completion")),
            ),
            supports_images=(
                "image" in modality or "image" in input_modalities or "vision" in model_id
            ),
            supports_documents=(
                "multimodal" in modality
                or "document" in input_modalities
                or "claude-3" in model_id
                or "gemini-1.5" in model_id
            ),
            supports_code=True,
            supports_function_calling=True,
            description=entry.get("description") or "OpenRouter model",
        )


def _per_million(price_per_token: Any) -> float:
    if not price_per_token:
        return 0.0
    try:
        return float(price_per_token) * 1_000_000
    except (TypeError, ValueError):
        return 0.0


# --- Anthropic ---


def _anthropic_model(model_id: str, name: str, price: Pricing, description: str) -> Model:
    return Model(
        id=model_id,
        name=name,
        provider_id="anthropic",
        context_length=200000,
        pricing=price,
        supports_images=True,
        supports_documents=True,
        supports_code=True,
        supports_function_calling=True,
        description=description,
    )


_SONNET = Pricing(input=3.00, output=15.00)
_HAIKU_35 = Pricing(input=1.00, output=5.00)
_OPUS = Pricing(input=15.00, output=75.00)
_HAIKU = Pricing(input=0.25, output=1.25)

# No public catalog endpoint, so the list is maintained here.
ANTHROPIC_MODELS = (
    _anthropic_model("claude-sonnet-4-20250514", "Claude Sonnet 4", _SONNET, "Next generation flagship model"),
    _anthropic_model("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", _SONNET, "Best balance of speed and intelligence"),
    _anthropic_model("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", _HAIKU_35, "Fastest and most efficient model"),
    _anthropic_model("claude-3-opus-20240229", "Claude 3 Opus", _OPUS, "Powerful model for highly complex tasks"),
    _anthropic_model("claude-3-sonnet-20240229", "Claude 3 Sonnet", _SONNET, "Balance of intelligence and speed"),
    _anthropic_model("claude-3-haiku-20240307", "Claude 3 Haiku", _HAIKU, "Near-instant responsiveness"),
)


class Anthropic(LLM):
    provider_id = "anthropic"
    name = "Anthropic"
    base_url = "https://api.anthropic.com"
    api_version = "2023-06-01"
    pdf_beta = "pdfs-2024-09-25"
    pricing_table = (
        ("claude-3-5-sonnet", _SONNET),
        ("claude-3-5-haiku", _HAIKU_35),
        ("claude-3-opus", _OPUS),
        ("claude-3-sonnet", _SONNET),
        ("claude-3-haiku", _HAIKU),
    )
    default_pricing = _SONNET
    default_max_tokens = 8192

    async def fetch_models(self, api_key: str) -> List[Model]:
        return [model.model_copy(deep=True) for model in ANTHROPIC_MODELS]

    def pricing_key(self, key: str) -> str:
        return key.replace("claude-", "")

    def format_message(self, message: ChatMessage) -> Dict[str, Any]:
        if not message.attachments:
            return {"role": message.role, "content": message.content}
        content: List[Dict[str, Any]] = []
        for attachment in message.attachments:
            if attachment.type == IMAGE_ATTACHMENT:
                content.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": attachment.media_type,
                            "data": attachment.payload,
                        },
                    }
                )
            elif attachment.is_pdf:
                content.append(
                    {
                        "type": "document",
                        "source": {
                            "type": "base64",
                            "media_type": "application/pdf",
                            "data": attachment.payload,
                        },
                    }
                )
        # Text goes after the attachments.
        if message.content:
            content.append({"type": "text", "text": message.content})
        return {"role": message.role, "content": content}

    def build_request(
        self, messages: List[ChatMessage], config: ChatConfig, api_key: str
    ) -> ChatRequest:
        system = next((m for m in messages if m.role == SYSTEM_ROLE), None)
        body: Dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens or self.default_max_tokens,
            "messages": [self.format_message(m) for m in messages if m.role != SYSTEM_ROLE],
            "stream": True,
        }
        if system is not None:
            body["system"] = system.content
        if config.temperature is not None:
            body["temperature"] = config.temperature

        headers = {"x-api-key": api_key, "anthropic-version": self.api_version}
        has_pdf = any(a.is_pdf for m in messages for a in (m.attachments or []))
        if has_pdf:
            headers["anthropic-beta"] = self.pdf_beta
        return ChatRequest(url=f"{self.base_url}/v1/messages", json=body, headers=headers)

    def check_event(self, event: Dict[str, Any]) -> None:
        if event.get("type") == "error":
            message = dig(event, "error", "message") or "unknown error"
            raise StreamError(f"{self.name} stream error: {message}")

    def extract_text(self, event: Dict[str, Any]) -> Optional[str]:
        if event.get("type") != "content_block_delta":
            return None
        return dig(event, "delta", "text")


# --- Gemini ---

GEMINI_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class Gemini(LLM):
    provider_id = "gemini"
    name = "Gemini"
    base_url = "https://generativelanguage.googleapis.com"
    pricing_table = (
        ("gemini-2.5-pro", Pricing(input=1.25, output=10.00)),
        ("gemini-2.5-flash", Pricing(input=0.15, output=0.60)),
        ("gemini-2.0-flash", Pricing(input=0.10, output=0.40)),
        ("gemini-1.5-pro", Pricing(input=1.25, output=5.00)),
        ("gemini-1.5-flash", Pricing(input=0.075, output=0.30)),
        ("gemini-1.0-pro", Pricing(input=0.50, output=1.50)),
    )
    default_pricing = Pricing(input=0.15, output=0.60)
    default_max_tokens = 8192
    safety_threshold = "BLOCK_ONLY_HIGH"

    def pricing_key(self, key: str) -> str:
        return key.lower().replace("gemini-", "")

    async def fetch_models(self, api_key: str) -> List[Model]:
        data = await self._fetch_catalog(
            f"{self.base_url}/v1beta/models", params={"key": api_key}
        )
        models = []
        for entry in data.get("models") or []:
            if "generateContent" not in (entry.get("supportedGenerationMethods") or []):
                continue
            model_id = entry["name"].replace("models/", "")
            multimodal = any(v in model_id for v in ("1.5", "2.0", "2.5"))
            models.append(
                Model(
                    id=model_id,
                    name=entry.get("displayName") or model_id,
                    provider_id=self.provider_id,
                    context_length=entry.get("inputTokenLimit"),
                    pricing=self.get_model_pricing(model_id),
                    supports_images=multimodal,
                    supports_documents=multimodal,
                    supports_code=True,
                    supports_function_calling=True,
                    description=(
                        "Highly capable model for complex reasoning"
                        if "pro" in model_id
                        else "Fast and efficient model for most tasks"
                    ),
                )
            )
        return models

    def format_message(self, message: ChatMessage) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [
            {"inline_data": {"mime_type": a.media_type, "data": a.payload}}
            for a in message.attachments or []
        ]
        if message.content and message.content.strip():
            parts.append({"text": message.content})
        return {"role": USER_ROLE if message.role == USER_ROLE else "model", "parts": parts}

    def build_request(
        self, messages: List[ChatMessage], config: ChatConfig, api_key: str
    ) -> ChatRequest:
        temperature = config.temperature
        body: Dict[str, Any] = {
            "contents": [self.format_message(m) for m in messages if m.role != SYSTEM_ROLE],
            "generationConfig": {
                "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
                "maxOutputTokens": config.max_tokens or self.default_max_tokens,
            },
            "safetySettings": [
                {"category": category, "threshold": self.safety_threshold}
                for category in GEMINI_SAFETY_CATEGORIES
            ],
        }
        system = next((m for m in messages if m.role == SYSTEM_ROLE), None)
        if system is not None:
            body["systemInstruction"] = {"parts": [{"text": system.content}]}
        return ChatRequest(
            url=f"{self.base_url}/v1beta/models/{config.model}:streamGenerateContent",
            json=body,
            params={"alt": "sse", "key": api_key},
        )

    def extract_text(self, event: Dict[str, Any]) -> Optional[str]:
        return dig(event, "candidates", 0, "content", "parts", 0, "text")


# --- Offline ---


class Echo(LLM):
    """Streams the last user message back word by word, without any network."""

    provider_id = "echo"
    name = "Echo"

    def __init__(self, default_model: str = "echo-v1", delay: float = 0.0):
        super().__init__()
        self.model = default_model
        self.delay = delay

    async def fetch_models(self, api_key: str) -> List[Model]:
        return [
            Model(
                id=self.model,
                name="Echo",
                provider_id=self.provider_id,
                supports_code=True,
                description="Echo LLM - static response for testing",
            )
        ]

    def build_request(self, messages, config, api_key):
        raise NotImplementedError("Echo does not issue HTTP requests")

    def extract_text(self, event):
        return None

    async def stream_chat(self, messages, config, api_key, callbacks, cancel_token=None):
        cancel_token = cancel_token or CancelToken()
        user_prompt = next(
            (m.content for m in reversed(messages) if m.role == USER_ROLE),
            "No message provided",
        )
        full_response = ""
        for word in user_prompt.split():
            if cancel_token.cancelled:
                break
            token = word if not full_response else f" {word}"
            full_response += token
            callbacks.on_token(token)
            await asyncio.sleep(self.delay)
        callbacks.on_complete(full_response)

