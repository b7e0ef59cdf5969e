import pytest
import pytest_asyncio

from ai_coding_cli.commands import AppState, CommandAction, handle_command, is_command
from ai_coding_cli.config import Config
from ai_coding_cli.session import Conversation, ConversationStore


class RecordingUI:
    def __init__(self):
        self.lines: list[tuple[str, str]] = []

    def print_message(self, role: str, content: str) -> None:
        self.lines.append(("message", content))

    def print_success(self, message: str) -> None:
        self.lines.append(("success", message))

    def print_warning(self, message: str) -> None:
        self.lines.append(("warning", message))

    def print_error(self, message: str) -> None:
        self.lines.append(("error", message))

    def text(self) -> str:
        return "\n".join(content for _, content in self.lines)


@pytest_asyncio.fixture
async def state(tmp_path):
    store = ConversationStore(db_path=tmp_path / "conversations.db")
    app_state = AppState(conversation=Conversation(), store=store, config=Config())
    try:
        yield app_state
    finally:
        await store.close()


def test_is_command():
    assert is_command("/help")
    assert is_command("  /exit")
    assert not is_command("hello /not a command")


@pytest.mark.asyncio
async def test_help_lists_commands(state):
    ui = RecordingUI()

    action = await handle_command("/help", state, ui)

    assert action is CommandAction.CONTINUE
    assert "/autorun" in ui.text()
    assert "/load" in ui.text()


@pytest.mark.asyncio
async def test_unknown_command_lists_available_ones(state):
    ui = RecordingUI()

    action = await handle_command("/frobnicate", state, ui)

    assert action is CommandAction.UNKNOWN
    assert "Unknown command: /frobnicate" in ui.text()
    assert "/history" in ui.text()


@pytest.mark.asyncio
async def test_clear_empties_history(state):
    state.conversation.add_message("user", "hi")

    action = await handle_command("/clear", state, RecordingUI())

    assert action is CommandAction.CLEARED
    assert state.conversation.messages == []


@pytest.mark.asyncio
async def test_autorun_toggles(state):
    ui = RecordingUI()

    await handle_command("/autorun", state, ui)
    assert state.auto_execute is True

    await handle_command("/AUTORUN", state, ui)
    assert state.auto_execute is False


@pytest.mark.asyncio
async def test_exit_saves_non_empty_conversation(state):
    state.conversation.add_message("user", "keep me")

    action = await handle_command("/exit", state, RecordingUI())

    assert action is CommandAction.EXIT
    loaded = await state.store.load(state.conversation.id)
    assert loaded.messages[0]["content"] == "keep me"


@pytest.mark.asyncio
async def test_quit_is_an_alias_for_exit(state):
    assert await handle_command("/quit", state, RecordingUI()) is CommandAction.EXIT


@pytest.mark.asyncio
async def test_save_history_and_load(state):
    ui = RecordingUI()
    original = state.conversation
    original.add_message("user", "remember this task")
    await handle_command("/save", state, ui)
    saved_id = original.id

    state.conversation = Conversation()
    await handle_command("/history", state, ui)
    assert saved_id in ui.text()
    assert "remember this task" in ui.text()

    action = await handle_command(f"/load {saved_id}", state, ui)

    assert action is CommandAction.LOADED
    assert state.conversation.id == saved_id
    assert state.conversation.messages[0]["content"] == "remember this task"


@pytest.mark.asyncio
async def test_load_without_id_warns(state):
    ui = RecordingUI()

    action = await handle_command("/load", state, ui)

    assert action is CommandAction.CONTINUE
    assert ui.lines[-1][0] == "warning"


@pytest.mark.asyncio
async def test_load_unknown_id_reports_error(state):
    ui = RecordingUI()

    action = await handle_command("/load 20200101-000000-beef", state, ui)

    assert action is CommandAction.CONTINUE
    assert ui.lines[-1][0] == "error"


@pytest.mark.asyncio
async def test_info_shows_model_and_mode(state):
    ui = RecordingUI()

    await handle_command("/info", state, ui)

    assert state.config.model.model in ui.text()
    assert "Auto-execute: off" in ui.text()
