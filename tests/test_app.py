from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

import app
from chat_actions import ResponseDispatcher
from chat_state import ChatStateStore, MemoryStorage


class Rerun(Exception):
    """Raised in place of Streamlit's rerun so a test can stop the script run."""


class Stop(Exception):
    """Raised in place of Streamlit's st.stop."""


class RecordingDispatcher:
    """Dispatcher stand-in that checks the loading flag while it runs."""

    def __init__(self, store, reply="Hi! How can I help?", error=None):
        self.store = store
        self.reply = reply
        self.error = error
        self.loading_seen = None
        self.history_seen = None

    def respond(self, history):
        self.loading_seen = self.store.is_loading
        self.history_seen = history
        if self.error:
            raise self.error
        return self.reply


def fake_streamlit(store, **overrides):
    """A MagicMock standing in for the streamlit module during one script run."""
    fake = MagicMock()
    fake.session_state = {app.SESSION_KEY_STORE: store}
    fake.rerun.side_effect = Rerun
    fake.button.return_value = False
    fake.checkbox.return_value = False
    for name, value in overrides.items():
        setattr(fake, name, value)
    return fake


class TestDispatchCycle:
    """Tests for the two halves of a dispatch driven by the UI."""

    def test_submit_records_user_turn_and_sets_loading(self):
        # Arrange
        store = ChatStateStore(storage=MemoryStorage())
        # Act
        user_id = app.submit_message(store, "Hello")
        # Assert
        (user,) = store.messages
        assert (user.id, user.role, user.content) == (user_id, "user", "Hello")
        assert store.is_loading is True

    def test_complete_records_reply_and_clears_loading(self):
        # Arrange
        store = ChatStateStore(storage=MemoryStorage())
        app.submit_message(store, "Hello")
        dispatcher = RecordingDispatcher(store)
        # Act
        assistant_id = app.complete_pending(store, dispatcher)
        # Assert
        user, assistant = store.messages
        assert (assistant.role, assistant.content) == ("assistant", "Hi! How can I help?")
        assert assistant.id == assistant_id
        assert dispatcher.loading_seen is True
        assert dispatcher.history_seen[-1] is user
        assert store.is_loading is False

    def test_loading_cleared_when_dispatch_raises(self):
        store = ChatStateStore(storage=MemoryStorage())
        app.submit_message(store, "Hello")
        dispatcher = RecordingDispatcher(store, error=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            app.complete_pending(store, dispatcher)
        assert store.is_loading is False
        assert len(store) == 1

    def test_real_dispatcher_in_fallback_mode(self, make_settings):
        """Without a provider the assistant turn is the canned fallback."""
        store = ChatStateStore(storage=MemoryStorage())
        app.submit_message(store, "hello")
        app.complete_pending(store, ResponseDispatcher(make_settings()))
        assert store.messages[-1].content.startswith("Hello! I'm Sheikh Chat")


class TestRunChat:
    """Tests for run_chat across successive script runs."""

    def test_input_disabled_while_reply_pending(self, monkeypatch, make_settings):
        """The run that fetches the reply draws the chat input disabled."""
        # Arrange
        store = ChatStateStore(storage=MemoryStorage())
        fake_st = fake_streamlit(store)
        fake_st.chat_input.side_effect = ["hello", None, None]
        monkeypatch.setattr(app, "st", fake_st)
        monkeypatch.setattr(app, "get_dispatcher", lambda: ResponseDispatcher(make_settings()))
        # Act
        with pytest.raises(Rerun):
            app.run_chat()  # user submits
        pending = store.is_loading
        with pytest.raises(Rerun):
            app.run_chat()  # reply fetched
        app.run_chat()  # idle
        # Assert
        disabled = [c.kwargs["disabled"] for c in fake_st.chat_input.call_args_list]
        assert pending is True
        assert disabled == [False, True, False]
        assert [m.role for m in store.messages] == ["user", "assistant"]
        assert store.is_loading is False

    def test_blank_input_is_ignored(self, monkeypatch):
        store = ChatStateStore(storage=MemoryStorage())
        fake_st = fake_streamlit(store)
        fake_st.chat_input.return_value = "   "
        monkeypatch.setattr(app, "st", fake_st)
        app.run_chat()
        assert len(store) == 0
        fake_st.rerun.assert_not_called()


class TestRenderSidebar:
    def test_theme_button_explains_shared_preference(self, monkeypatch, make_settings):
        """The theme toggle tells users the choice is shared by the deployment."""
        # Arrange
        store = ChatStateStore(storage=MemoryStorage())
        fake_st = fake_streamlit(store)
        monkeypatch.setattr(app, "st", fake_st)
        monkeypatch.setattr(app, "get_dispatcher", lambda: ResponseDispatcher(make_settings()))
        # Act
        app.render_sidebar()
        # Assert
        helps = [c.kwargs.get("help") for c in fake_st.button.call_args_list]
        assert app.THEME_SCOPE_NOTE in helps
        assert "server" in app.THEME_SCOPE_NOTE


class TestGetSettings:
    def test_invalid_settings_shown_and_run_stopped(self, monkeypatch):
        """A bad environment value stops the page with a readable error."""
        # Arrange
        monkeypatch.setenv("AI_PROVIDER", "bogus")
        shown = []
        monkeypatch.setattr(app.st, "error", shown.append)

        def stop():
            raise Stop()

        monkeypatch.setattr(app.st, "stop", stop)
        # Act
        with pytest.raises(Stop):
            app.get_settings.__wrapped__()
        # Assert
        assert len(shown) == 1
        assert "Invalid application settings" in shown[0]
        assert "Unsupported provider: bogus" in shown[0]

    def test_valid_settings_returned(self, monkeypatch):
        monkeypatch.setenv("AI_PROVIDER", "ollama")
        levels = []
        monkeypatch.setattr(app, "setup_logging", levels.append)
        settings = app.get_settings.__wrapped__()
        assert settings.ai_provider == "ollama"
        assert levels == [settings.log_level]


class TestHelpers:
    def test_theme_css(self):
        assert app.theme_css(True) == app.DARK_CSS
        assert app.theme_css(False) == app.LIGHT_CSS

    @pytest.mark.parametrize("count,label", [(0, "0 messages"), (1, "1 message"), (2, "2 messages")])
    def test_message_count_label(self, count, label):
        assert app.message_count_label(count) == label

    @pytest.mark.parametrize("theme_type,expected", [("dark", True), ("light", False)])
    def test_system_prefers_dark(self, monkeypatch, theme_type, expected):
        context = SimpleNamespace(theme=SimpleNamespace(type=theme_type))
        monkeypatch.setattr(app.st, "context", context)
        assert app.system_prefers_dark() is expected


class TestInitSessionState:
    """Tests for the init_session_state function."""

    def test_creates_store_once(self, monkeypatch, make_settings, tmp_path):
        """A store is created for a fresh session and kept on later reruns."""
        # Arrange
        fake_session = {}
        monkeypatch.setattr(app.st, "session_state", fake_session)
        monkeypatch.setattr(app, "system_prefers_dark", lambda: False)
        settings = make_settings(theme_store_path=tmp_path / "prefs.json")
        monkeypatch.setattr(app, "get_settings", lambda: settings)
        # Act
        app.init_session_state()
        store = fake_session[app.SESSION_KEY_STORE]
        app.init_session_state()
        # Assert
        assert isinstance(store, ChatStateStore)
        assert fake_session[app.SESSION_KEY_STORE] is store

    @pytest.mark.parametrize("theme_type,expected", [("dark", True), ("light", False)])
    def test_fresh_session_follows_browser_theme(
        self, monkeypatch, make_settings, tmp_path, theme_type, expected
    ):
        """With nothing stored yet, the browser's colour scheme picks the theme."""
        # Arrange
        fake_session = {}
        monkeypatch.setattr(app.st, "session_state", fake_session)
        context = SimpleNamespace(theme=SimpleNamespace(type=theme_type))
        monkeypatch.setattr(app.st, "context", context)
        path = tmp_path / "prefs.json"
        monkeypatch.setattr(app, "get_settings", lambda: make_settings(theme_store_path=path))
        # Act
        app.init_session_state()
        # Assert
        assert fake_session[app.SESSION_KEY_STORE].is_dark_mode is expected

    def test_stored_theme_beats_browser_theme(self, monkeypatch, make_settings, tmp_path):
        fake_session = {}
        monkeypatch.setattr(app.st, "session_state", fake_session)
        monkeypatch.setattr(app, "system_prefers_dark", lambda: True)
        path = tmp_path / "prefs.json"
        path.write_text('{"theme": "light"}', encoding="utf-8")
        monkeypatch.setattr(app, "get_settings", lambda: make_settings(theme_store_path=path))
        app.init_session_state()
        assert fake_session[app.SESSION_KEY_STORE].is_dark_mode is False

    def test_theme_toggle_writes_to_configured_path(self, monkeypatch, make_settings, tmp_path):
        # Arrange
        fake_session = {}
        monkeypatch.setattr(app.st, "session_state", fake_session)
        monkeypatch.setattr(app, "system_prefers_dark", lambda: False)
        path = tmp_path / "prefs.json"
        monkeypatch.setattr(app, "get_settings", lambda: make_settings(theme_store_path=path))
        applied = []
        monkeypatch.setattr(app, "apply_theme", applied.append)
        # Act
        app.init_session_state()
        fake_session[app.SESSION_KEY_STORE].toggle_theme()
        # Assert
        assert '"theme": "dark"' in path.read_text(encoding="utf-8")
        assert applied == [True]


class TestMain:
    """Tests for the main entry point behavior."""

    def test_main_initializes_and_renders(self, monkeypatch):
        """main sets up the page, state, theme, sidebar and chat in order."""
        # Arrange
        called = []
        store = ChatStateStore(storage=MemoryStorage({"theme": "dark"}))
        monkeypatch.setattr(app.st, "set_page_config", lambda **kwargs: called.append("config"))
        monkeypatch.setattr(app, "init_session_state", lambda: called.append("init"))
        monkeypatch.setattr(app, "get_store", lambda: store)
        monkeypatch.setattr(app, "apply_theme", lambda dark: called.append(("theme", dark)))
        monkeypatch.setattr(app, "render_sidebar", lambda: called.append("sidebar"))
        monkeypatch.setattr(app, "run_chat", lambda: called.append("chat"))
        # Act
        app.main()
        # Assert
        assert called == ["config", "init", ("theme", True), "sidebar", "chat"]
