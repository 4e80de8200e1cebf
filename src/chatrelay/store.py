"""Concrete implementations for persistence managers."""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import ChatGroup, Conversation, Preferences

logger = logging.getLogger(__name__)


class Store(ABC):
    """Interface for saving and loading conversations, groups and preferences."""

    @abstractmethod
    def get_conversation(self, convo_id: str) -> Optional[Conversation]:
        """Returns the most recently saved version of a conversation."""
        pass

    @abstractmethod
    def save_conversation(self, conversation: Conversation) -> None:
        """Inserts or replaces a conversation. Saving twice is harmless."""
        pass

    @abstractmethod
    def list_conversations(self) -> List[Conversation]:
        """Lists all conversations, newest first."""
        pass

    @abstractmethod
    def delete_conversation(self, convo_id: str) -> None:
        pass

    @abstractmethod
    def get_preferences(self) -> Preferences:
        pass

    @abstractmethod
    def _write_preferences(self, preferences: Preferences) -> None:
        pass

    @abstractmethod
    def list_groups(self) -> List[ChatGroup]:
        pass

    @abstractmethod
    def save_groups(self, groups: List[ChatGroup]) -> None:
        pass

    def set_preferences(self, **changes: Any) -> Preferences:
        """Merges ``changes`` into the stored preferences and returns the result."""
        current = self.get_preferences()
        updated = Preferences.model_validate({**current.model_dump(), **changes})
        self._write_preferences(updated)
        return updated

    def toggle_pin(self, convo_id: str) -> Optional[Conversation]:
        conversation = self.get_conversation(convo_id)
        if conversation is None:
            return None
        conversation.pinned = not conversation.pinned
        self.save_conversation(conversation)
        return conversation

    def rename_conversation(self, convo_id: str, title: str) -> Optional[Conversation]:
        conversation = self.get_conversation(convo_id)
        if conversation is None:
            return None
        conversation.title = title
        conversation.touch()
        self.save_conversation(conversation)
        return conversation

    def create_group(self, title: str) -> ChatGroup:
        group = ChatGroup(title=title)
        self.save_groups(self.list_groups() + [group])
        return group

    def rename_group(self, group_id: str, title: str) -> None:
        groups = self.list_groups()
        for group in groups:
            if group.id == group_id:
                group.title = title
                self.save_groups(groups)
                return

    def toggle_group_collapse(self, group_id: str) -> None:
        groups = self.list_groups()
        for group in groups:
            if group.id == group_id:
                group.collapsed = not group.collapsed
                self.save_groups(groups)
                return

    def delete_group(self, group_id: str) -> None:
        """Deletes a group; its conversations become ungrouped."""
        self.save_groups([g for g in self.list_groups() if g.id != group_id])
        for conversation in self.list_conversations():
            if conversation.group_id == group_id:
                conversation.group_id = None
                self.save_conversation(conversation)

    def move_conversation_to_group(self, convo_id: str, group_id: Optional[str]) -> None:
        conversation = self.get_conversation(convo_id)
        if conversation is not None:
            conversation.group_id = group_id
            self.save_conversation(conversation)


class InMemory(Store):
    """Keeps everything in dictionaries. Objects are deep-copied in and out."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._groups: List[ChatGroup] = []
        self._preferences = Preferences()

    def get_conversation(self, convo_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(convo_id)
        return conversation.model_copy(deep=True) if conversation else None

    def save_conversation(self, conversation: Conversation) -> None:
        copy = conversation.model_copy(deep=True)
        if conversation.id in self._conversations:
            self._conversations[conversation.id] = copy
        else:
            self._conversations = {conversation.id: copy, **self._conversations}

    def list_conversations(self) -> List[Conversation]:
        return [c.model_copy(deep=True) for c in self._conversations.values()]

    def delete_conversation(self, convo_id: str) -> None:
        self._conversations.pop(convo_id, None)

    def get_preferences(self) -> Preferences:
        return self._preferences.model_copy()

    def _write_preferences(self, preferences: Preferences) -> None:
        self._preferences = preferences.model_copy()

    def list_groups(self) -> List[ChatGroup]:
        return [g.model_copy() for g in self._groups]

    def save_groups(self, groups: List[ChatGroup]) -> None:
        self._groups = [g.model_copy() for g in groups]


class File(Store):
    """Saves each collection as a JSON document inside ``directory``."""

    CONVERSATIONS_FILE = "conversations.json"
    GROUPS_FILE = "groups.json"
    PREFERENCES_FILE = "preferences.json"

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def get_conversation(self, convo_id: str) -> Optional[Conversation]:
        for conversation in self.list_conversations():
            if conversation.id == convo_id:
                return conversation
        return None

    def save_conversation(self, conversation: Conversation) -> None:
        conversations = self.list_conversations()
        for index, existing in enumerate(conversations):
            if existing.id == conversation.id:
                conversations[index] = conversation
                break
        else:
            conversations.insert(0, conversation)
        self._write(self.CONVERSATIONS_FILE, [c.model_dump(mode="json") for c in conversations])

    def list_conversations(self) -> List[Conversation]:
        return [Conversation.model_validate(c) for c in self._read(self.CONVERSATIONS_FILE, [])]

    def delete_conversation(self, convo_id: str) -> None:
        remaining = [c for c in self.list_conversations() if c.id != convo_id]
        self._write(self.CONVERSATIONS_FILE, [c.model_dump(mode="json") for c in remaining])

    def get_preferences(self) -> Preferences:
        return Preferences.model_validate(self._read(self.PREFERENCES_FILE, {}))

    def _write_preferences(self, preferences: Preferences) -> None:
        self._write(self.PREFERENCES_FILE, preferences.model_dump(mode="json"))

    def list_groups(self) -> List[ChatGroup]:
        return [ChatGroup.model_validate(g) for g in self._read(self.GROUPS_FILE, [])]

    def save_groups(self, groups: List[ChatGroup]) -> None:
        self._write(self.GROUPS_FILE, [g.model_dump(mode="json") for g in groups])

    def _read(self, filename: str, default: Any) -> Any:
        path = self.directory / filename
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt store file %s", path)
            return default

    def _write(self, filename: str, data: Any) -> None:
        path = self.directory / filename
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
