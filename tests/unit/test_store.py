"""
Tests for the Store pillar implementations.

The Store pillar handles conversation, group and preference persistence with
two implementations: InMemory and File. Shared behavior is tested against both
through a parametrized fixture; file-specific behavior is tested separately.
"""

import json

import pytest
from chatrelay.models import ChatMessage, Conversation, Preferences
from chatrelay.store import File, InMemory, Store


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path) -> Store:
    if request.param == "memory":
        return InMemory()
    return File(str(tmp_path / "store"))


def make_conversation(convo_id: str, **kwargs) -> Conversation:
    return Conversation(id=convo_id, provider_id="openai", model_id="gpt-4o", **kwargs)


class TestStoreInterface:
    """Test the Store abstract base class interface."""

    def test_store_is_abstract(self):
        """Test that Store cannot be instantiated directly."""
        with pytest.raises(TypeError) as exc_info:
            Store()

        assert "abstract" in str(exc_info.value).lower()

    def test_store_requires_all_methods(self):
        class Incomplete(Store):
            def get_conversation(self, convo_id):
                return None

        with pytest.raises(TypeError) as exc_info:
            Incomplete()

        assert "save_conversation" in str(exc_info.value)


class TestConversations:
    """Conversation persistence shared by every store."""

    def test_missing_conversation_returns_none(self, any_store):
        assert any_store.get_conversation("nope") is None

    def test_save_and_get(self, any_store, sample_conversation):
        any_store.save_conversation(sample_conversation)

        loaded = any_store.get_conversation("001")
        assert loaded is not None
        assert loaded.id == "001"
        assert [m.content for m in loaded.messages] == [
            m.content for m in sample_conversation.messages
        ]
        assert [m.id for m in loaded.messages] == [m.id for m in sample_conversation.messages]

    def test_save_is_idempotent(self, any_store, sample_conversation):
        any_store.save_conversation(sample_conversation)
        any_store.save_conversation(sample_conversation)

        assert len(any_store.list_conversations()) == 1

    def test_save_replaces_existing(self, any_store, sample_conversation):
        any_store.save_conversation(sample_conversation)
        sample_conversation.messages.append(ChatMessage(role="user", content="One more"))
        any_store.save_conversation(sample_conversation)

        loaded = any_store.get_conversation("001")
        assert len(loaded.messages) == 5
        assert loaded.messages[-1].content == "One more"

    def test_new_conversations_listed_first(self, any_store):
        for convo_id in ("a", "b", "c"):
            any_store.save_conversation(make_conversation(convo_id))
        # Re-saving keeps the position.
        any_store.save_conversation(make_conversation("a", title="Renamed"))

        assert [c.id for c in any_store.list_conversations()] == ["c", "b", "a"]

    def test_delete(self, any_store):
        any_store.save_conversation(make_conversation("a"))
        any_store.save_conversation(make_conversation("b"))

        any_store.delete_conversation("a")
        any_store.delete_conversation("missing")

        assert [c.id for c in any_store.list_conversations()] == ["b"]

    def test_attachments_and_metadata_survive(self, any_store, image_attachment):
        convo = make_conversation("x", total_cost=0.25, disable_system_prompt=True)
        convo.messages.append(
            ChatMessage(role="user", content="look", attachments=[image_attachment], token_count=1001)
        )
        any_store.save_conversation(convo)

        loaded = any_store.get_conversation("x")
        assert loaded.total_cost == 0.25
        assert loaded.disable_system_prompt is True
        assert loaded.messages[0].attachments[0].data == image_attachment.data
        assert loaded.messages[0].token_count == 1001

    def test_toggle_pin(self, any_store):
        any_store.save_conversation(make_conversation("a"))

        assert any_store.toggle_pin("a").pinned is True
        assert any_store.get_conversation("a").pinned is True
        assert any_store.toggle_pin("a").pinned is False
        assert any_store.toggle_pin("missing") is None

    def test_rename(self, any_store):
        any_store.save_conversation(make_conversation("a"))

        any_store.rename_conversation("a", "Trip planning")

        assert any_store.get_conversation("a").title == "Trip planning"
        assert any_store.rename_conversation("missing", "x") is None


class TestInMemoryIsolation:
    def test_returned_objects_are_copies(self, sample_conversation):
        store = InMemory()
        store.save_conversation(sample_conversation)

        sample_conversation.messages.clear()
        loaded = store.get_conversation("001")
        assert len(loaded.messages) == 4

        loaded.title = "changed"
        assert store.get_conversation("001").title != "changed"


class TestPreferences:
    def test_defaults(self, any_store):
        assert any_store.get_preferences() == Preferences()

    def test_set_preferences_merges(self, any_store):
        any_store.set_preferences(default_provider="anthropic", default_model="claude-3-5-haiku-20241022")
        result = any_store.set_preferences(system_prompt="Be terse.")

        assert result.default_provider == "anthropic"
        assert result.default_model == "claude-3-5-haiku-20241022"
        assert result.system_prompt == "Be terse."
        assert any_store.get_preferences() == result


class TestGroups:
    def test_create_and_list(self, any_store):
        work = any_store.create_group("Work")
        home = any_store.create_group("Home")

        groups = any_store.list_groups()
        assert [g.title for g in groups] == ["Work", "Home"]
        assert [g.id for g in groups] == [work.id, home.id]
        assert work.collapsed is False

    def test_rename_and_collapse(self, any_store):
        group = any_store.create_group("Work")

        any_store.rename_group(group.id, "Office")
        any_store.toggle_group_collapse(group.id)

        [stored] = any_store.list_groups()
        assert stored.title == "Office"
        assert stored.collapsed is True

    def test_move_conversation(self, any_store):
        group = any_store.create_group("Work")
        any_store.save_conversation(make_conversation("a"))

        any_store.move_conversation_to_group("a", group.id)
        assert any_store.get_conversation("a").group_id == group.id

        any_store.move_conversation_to_group("a", None)
        assert any_store.get_conversation("a").group_id is None

    def test_delete_group_ungroups_conversations(self, any_store):
        group = any_store.create_group("Work")
        other = any_store.create_group("Home")
        any_store.save_conversation(make_conversation("a", group_id=group.id))
        any_store.save_conversation(make_conversation("b", group_id=other.id))

        any_store.delete_group(group.id)

        assert [g.id for g in any_store.list_groups()] == [other.id]
        assert any_store.get_conversation("a").group_id is None
        assert any_store.get_conversation("b").group_id == other.id


class TestFileStore:
    """File-specific behavior."""

    def test_creates_directory(self, tmp_path):
        directory = tmp_path / "nested" / "store"
        File(str(directory))
        assert directory.is_dir()

    def test_persists_across_instances(self, tmp_path, sample_conversation):
        File(str(tmp_path)).save_conversation(sample_conversation)
        File(str(tmp_path)).set_preferences(theme="dark")

        reopened = File(str(tmp_path))
        assert reopened.get_conversation("001") is not None
        assert reopened.get_preferences().theme == "dark"

    def test_writes_json_documents(self, tmp_path, sample_conversation):
        store = File(str(tmp_path))
        store.save_conversation(sample_conversation)

        with open(tmp_path / "conversations.json", encoding="utf-8") as f:
            data = json.load(f)
        assert data[0]["id"] == "001"
        assert data[0]["messages"][0]["role"] == "user"

    def test_no_temp_files_left_behind(self, tmp_path, sample_conversation):
        store = File(str(tmp_path))
        store.save_conversation(sample_conversation)
        store.create_group("Work")

        assert not list(tmp_path.glob("*.tmp"))

    def test_corrupt_file_falls_back_to_default(self, tmp_path, caplog):
        (tmp_path / "conversations.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "preferences.json").write_text("", encoding="utf-8")
        store = File(str(tmp_path))

        assert store.list_conversations() == []
        assert store.get_preferences() == Preferences()
        assert "corrupt" in caplog.text.lower()

    def test_unicode_content(self, tmp_path):
        store = File(str(tmp_path))
        convo = make_conversation("u")
        convo.messages.append(ChatMessage(role="user", content="Hello 世界! 🌍"))
        store.save_conversation(convo)

        assert store.get_conversation("u").messages[0].content == "Hello 世界! 🌍"
