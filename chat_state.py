# chat_state.py
#
# Description: Holds the state of one chat session: the ordered message
#              list, the loading flag and the theme flag. The theme flag is
#              persisted through a small key/value storage so that it
#              survives page reloads.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# constants and type definitions
# --------------------------------------------------------------------------- #
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)

THEME_KEY = "theme"
THEME_DARK = "dark"
THEME_LIGHT = "light"

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Message:
    """One turn in a conversation. Never changed after creation."""
    id: str
    role: str
    content: str
    timestamp: datetime


def generate_id() -> str:
    return uuid.uuid4().hex


def format_timestamp(message: Message) -> str:
    return message.timestamp.strftime(TIMESTAMP_FORMAT)

# --------------------------------------------------------------------------- #
# theme storage
# --------------------------------------------------------------------------- #
class ThemeStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Keeps values in a dict; used for tests and the CLI."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JSONFileStorage:
    """
    Key/value storage backed by a small JSON file.

    The file lives on the server, so every session pointed at the same path
    shares one set of values.

    Reads return None for a missing file. Any other I/O problem is raised
    as OSError so that callers can decide whether it matters.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise OSError(f"Corrupt preference file: {self.path}") from e
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def initial_dark_mode(storage: Optional[ThemeStorage], prefers_dark: bool = False) -> bool:
    """
    Decide the starting theme: the stored preference if there is one,
    otherwise the system colour-scheme preference.
    """
    if storage is None:
        return prefers_dark
    try:
        stored = storage.get(THEME_KEY)
    except OSError:
        logger.warning("Could not read theme preference; using system preference")
        return prefers_dark
    if stored is None:
        return prefers_dark
    return stored == THEME_DARK

# --------------------------------------------------------------------------- #
# chat state store
# --------------------------------------------------------------------------- #
class ChatStateStore:
    """
    Session state for a single chat.

    All mutations happen on the session's own thread, so there is no
    locking. ``is_loading`` is advisory: the presentation layer disables
    input while it is set.
    """

    def __init__(
        self,
        storage: Optional[ThemeStorage] = None,
        prefers_dark: bool = False,
        on_theme_change: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._messages: List[Message] = []
        self._storage = storage
        self._on_theme_change = on_theme_change
        self.is_loading = False
        self.is_dark_mode = initial_dark_mode(storage, prefers_dark)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add_message(self, content: str, role: str) -> str:
        """Append a new message and return its id."""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")
        message = Message(
            id=generate_id(),
            role=role,
            content=content,
            timestamp=datetime.now(),
        )
        self._messages.append(message)
        return message.id

    def clear_messages(self) -> None:
        """Drop every message. Asking the user first is the caller's job."""
        self._messages = []

    def set_loading(self, loading: bool) -> None:
        self.is_loading = bool(loading)

    def toggle_theme(self) -> bool:
        """
        Flip between dark and light mode and return the new value.

        The new value is written to the theme storage and announced via
        ``on_theme_change``. A failed write is logged and otherwise ignored.
        """
        self.is_dark_mode = not self.is_dark_mode
        if self._storage is not None:
            try:
                self._storage.set(THEME_KEY, THEME_DARK if self.is_dark_mode else THEME_LIGHT)
            except OSError as e:
                logger.warning("Could not persist theme preference", extra={"error": str(e)})
        if self._on_theme_change is not None:
            self._on_theme_change(self.is_dark_mode)
        return self.is_dark_mode

    def export_json(self) -> str:
        """Serialise the transcript for download."""
        return json.dumps(
            [
                {
                    "id": m.id,
                    "role": m.role,
                    "content": m.content,
                    "timestamp": m.timestamp.isoformat(timespec="seconds"),
                }
                for m in self._messages
            ],
            indent=2,
            ensure_ascii=False,
        )
