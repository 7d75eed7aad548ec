# app.py
#
# Streamlit interface for Sheikh Chat.
# Keeps the conversation in session state, sends each user turn through the
# response dispatcher, and offers status, connection test, theme toggle,
# clear and download in the sidebar.

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations
import logging

import streamlit as st
from pydantic import ValidationError

from chat_actions import ResponseDispatcher, status_lines
from chat_state import (
    ROLE_ASSISTANT,
    ROLE_USER,
    ChatStateStore,
    JSONFileStorage,
    format_timestamp,
)
from config import AppConfig, load_settings
from logging_config import setup_logging

# --------------------------------------------------------------------------- #
# constants
# --------------------------------------------------------------------------- #
SESSION_KEY_STORE = "chat_store"
SESSION_KEY_CONFIRM_CLEAR = "confirm_clear"
SESSION_KEY_TEST_RESULT = "connection_test"

THEME_SCOPE_NOTE = (
    "The theme choice is saved on the server and shared by everyone using "
    "this deployment."
)

WELCOME_TITLE = "Welcome to Sheikh Chat"
WELCOME_TEXT = (
    "I'm your AI assistant, here to help with questions, explanations, and "
    "meaningful conversations. Start typing to begin!"
)

DARK_CSS = """
<style>
.stApp { background-color: #111827; color: #f3f4f6; }
[data-testid="stSidebar"] { background-color: #1f2937; }
[data-testid="stChatMessage"] { background-color: #1f2937; }
</style>
"""
LIGHT_CSS = """
<style>
.stApp { background-color: #f9fafb; color: #111827; }
</style>
"""

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# helpers
# --------------------------------------------------------------------------- #
@st.cache_resource
def get_settings() -> AppConfig:
    try:
        settings = load_settings()
    except ValidationError as e:
        logger.error("Invalid application settings", extra={"error": str(e)})
        st.error(f"Invalid application settings. Check your environment variables.\n\n{e}")
        st.stop()
    setup_logging(settings.log_level)
    return settings


@st.cache_resource
def get_dispatcher() -> ResponseDispatcher:
    return ResponseDispatcher(get_settings())


def theme_css(is_dark: bool) -> str:
    return DARK_CSS if is_dark else LIGHT_CSS


def apply_theme(is_dark: bool) -> None:
    st.markdown(theme_css(is_dark), unsafe_allow_html=True)


def system_prefers_dark() -> bool:
    """Colour scheme reported by the visitor's browser."""
    return st.context.theme.type == "dark"


def message_count_label(count: int) -> str:
    return f"{count} {'message' if count == 1 else 'messages'}"


def init_session_state() -> None:
    if SESSION_KEY_STORE not in st.session_state:
        storage = JSONFileStorage(get_settings().theme_store_path)
        st.session_state[SESSION_KEY_STORE] = ChatStateStore(
            storage=storage,
            prefers_dark=system_prefers_dark(),
            on_theme_change=apply_theme,
        )


def get_store() -> ChatStateStore:
    return st.session_state[SESSION_KEY_STORE]


def submit_message(store: ChatStateStore, content: str) -> str:
    """
    First half of a dispatch: record the user turn and mark the session as
    waiting for a reply. The reply is fetched on the next script run so
    that the chat input can be drawn disabled in the meantime.
    """
    message_id = store.add_message(content, ROLE_USER)
    store.set_loading(True)
    return message_id


def complete_pending(store: ChatStateStore, dispatcher: ResponseDispatcher) -> str:
    """
    Second half of a dispatch: ask the dispatcher for a reply to the
    pending user turn, record it, and clear the loading flag.
    Returns the assistant message id.
    """
    try:
        reply = dispatcher.respond(store.messages)
        message_id = store.add_message(reply, ROLE_ASSISTANT)
    finally:
        store.set_loading(False)
    logger.info("Assistant reply recorded", extra={"turns": len(store)})
    return message_id


# --------------------------------------------------------------------------- #
# sidebar
# --------------------------------------------------------------------------- #
def render_sidebar() -> None:
    store = get_store()
    dispatcher = get_dispatcher()
    with st.sidebar:
        st.title("Sheikh Chat")
        st.caption(f"AI Assistant • {message_count_label(len(store))}")

        status = dispatcher.get_status()
        summary, *details = status_lines(status)
        if status["configured"]:
            st.success(summary, icon="✅")
        else:
            st.warning(summary, icon="⚠️")
        with st.expander("AI status"):
            st.text("\n".join(details))

        if st.button("🔌 test connection"):
            with st.spinner("testing connection…"):
                st.session_state[SESSION_KEY_TEST_RESULT] = dispatcher.test_connection()
        result = st.session_state.get(SESSION_KEY_TEST_RESULT)
        if result:
            (st.success if result["success"] else st.error)(result["message"])

        label = "☀️ light mode" if store.is_dark_mode else "🌙 dark mode"
        if st.button(label, help=THEME_SCOPE_NOTE):
            store.toggle_theme()
            st.rerun()

        confirmed = st.checkbox("confirm clearing all messages", key=SESSION_KEY_CONFIRM_CLEAR)
        if st.button("🗑️ clear chat", disabled=not len(store)):
            if confirmed:
                store.clear_messages()
                st.session_state.pop(SESSION_KEY_CONFIRM_CLEAR, None)
                st.rerun()
            else:
                st.info("Tick the confirmation box first. This action cannot be undone.")

        st.download_button("💾 download chat", store.export_json(), file_name="chat_history.json")

# --------------------------------------------------------------------------- #
# main chat logic
# --------------------------------------------------------------------------- #
def run_chat() -> None:
    store = get_store()

    if not len(store):
        st.header(WELCOME_TITLE)
        st.write(WELCOME_TEXT)

    # display history
    for message in store.messages:
        formatted = f"{message.content}\n\n<sub>{format_timestamp(message)}</sub>"
        st.chat_message(message.role).markdown(formatted, unsafe_allow_html=True)

    placeholder = (
        "Start a conversation with Sheikh Chat..." if not len(store) else "Type your message..."
    )
    user_input = st.chat_input(placeholder, disabled=store.is_loading)

    # a turn submitted on the previous run is answered now, with the input disabled
    if store.is_loading:
        with st.spinner("Sheikh Chat is typing…"):
            complete_pending(store, get_dispatcher())
        st.rerun()

    content = (user_input or "").strip()
    if not content:
        return
    submit_message(store, content)
    st.rerun()

# --------------------------------------------------------------------------- #
# entry point
# --------------------------------------------------------------------------- #
def main() -> None:
    st.set_page_config(page_title="Sheikh Chat", page_icon="💬", layout="wide")
    init_session_state()
    apply_theme(get_store().is_dark_mode)
    render_sidebar()
    run_chat()


if __name__ == "__main__":
    main()
