"""
Defines the core Pydantic data models for the application.

These models serve as the formal, validated data contract between the adapters,
the engine and the persistence layer. Vendor wire formats are built from them
inside each adapter and never leak out.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# --- Constants ---
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal["user", "assistant", "system"]

IMAGE_ATTACHMENT = "image"
FILE_ATTACHMENT = "file"
PDF_MIME_TYPE = "application/pdf"

DEFAULT_TITLE = "New Chat"
TITLE_LENGTH = 50

_DATA_URL_MIME = re.compile(r":(.*?);")


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- Models ---
class Attachment(BaseModel):
    """A file or image sent along with a user message."""

    id: str = Field(default_factory=_new_id)
    type: Literal["image", "file"]
    name: str
    mime_type: str
    size: int = 0
    data: str

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME_TYPE

    @property
    def payload(self) -> str:
        """The base64 payload without any ``data:...;base64,`` header."""
        header, sep, body = self.data.partition(",")
        return body if sep else header

    @property
    def media_type(self) -> str:
        """Mime type from the data-URL header, falling back to ``mime_type``."""
        header, sep, _ = self.data.partition(",")
        if sep:
            match = _DATA_URL_MIME.search(header)
            if match and match.group(1):
                return match.group(1)
        return self.mime_type


class ChatMessage(BaseModel):
    """Represents a single message within a conversation."""

    role: Role
    content: str = ""
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_now)
    token_count: Optional[int] = None
    timing: Optional[float] = None
    model: Optional[str] = None
    attachments: Optional[List[Attachment]] = None


class Conversation(BaseModel):
    """Represents a complete chat conversation session."""

    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(default_factory=_new_id)
    title: str = DEFAULT_TITLE
    messages: List[ChatMessage] = Field(default_factory=list)
    provider_id: str
    model_id: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    total_cost: float = 0.0
    disable_system_prompt: bool = False
    pinned: bool = False
    group_id: Optional[str] = None

    @classmethod
    def new(cls, provider_id: str, model_id: str) -> "Conversation":
        return cls(provider_id=provider_id, model_id=model_id)

    def find_message(self, message_id: str) -> int:
        """Index of the message with ``message_id``, or -1."""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return -1

    def touch(self) -> None:
        self.updated_at = _now()


class ChatGroup(BaseModel):
    """A user-defined folder of conversations."""

    id: str = Field(default_factory=_new_id)
    title: str
    collapsed: bool = False
    order: float = Field(default_factory=lambda: _now().timestamp())


class ChatConfig(BaseModel):
    """Per-request generation settings. Built fresh for every request."""

    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    system_prompt: Optional[str] = None


class Pricing(BaseModel):
    """Prices in USD per one million tokens."""

    input: float
    output: float


class Model(BaseModel):
    """An entry in a vendor's model catalog."""

    id: str
    name: str
    provider_id: str
    context_length: Optional[int] = None
    pricing: Optional[Pricing] = None
    supports_images: bool = False
    supports_documents: bool = False
    supports_code: bool = False
    supports_function_calling: bool = False
    description: Optional[str] = None


class ProviderInfo(BaseModel):
    id: str
    name: str
    base_url: str
    models_endpoint: Optional[str] = None
    supports_model_fetching: bool = True


class Preferences(BaseModel):
    theme: Literal["light", "dark", "system"] = "system"
    default_provider: str = "openai"
    default_model: Optional[str] = None
    system_prompt: str = ""
    username: str = "User"


def generate_conversation_title(first_message: str) -> str:
    """Builds a sidebar title from the first user message."""
    title = first_message[:TITLE_LENGTH].strip()
    return f"{title}..." if len(first_message) > TITLE_LENGTH else title
