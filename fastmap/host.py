"""Interfaces the map needs from its host chat engine and lore source."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence

log = logging.getLogger(__name__)

MessageHandler = Callable[[int], None]
ResetHandler = Callable[[], None]


@dataclass(frozen=True, slots=True)
class ChatMessage:
    text: str
    author: str | None = None
    message_id: int | None = None
    # False for bot notices; they keep their index but are never scanned.
    narrative: bool = True


class MessageLog(Protocol):
    def __len__(self) -> int: ...

    def message_at(self, index: int) -> Optional[ChatMessage]: ...

    def message_ids(self) -> List[Optional[int]]: ...


class ChatLog:
    """Append-only message log kept in memory."""

    def __init__(self, messages: Iterable[ChatMessage | str] = ()) -> None:
        self._messages: List[ChatMessage] = []
        self._indexes: dict[int, int] = {}
        for message in messages:
            self.append(message)

    def __len__(self) -> int:
        return len(self._messages)

    def message_at(self, index: int) -> Optional[ChatMessage]:
        if 0 <= index < len(self._messages):
            return self._messages[index]
        return None

    def append(self, message: ChatMessage | str) -> int:
        if isinstance(message, str):
            message = ChatMessage(text=message)
        self._messages.append(message)
        index = len(self._messages) - 1
        if message.message_id is not None:
            self._indexes.setdefault(message.message_id, index)
        return index

    def index_of(self, message_id: int) -> Optional[int]:
        return self._indexes.get(message_id)

    def message_ids(self) -> List[Optional[int]]:
        return [message.message_id for message in self._messages]

    def clear(self) -> None:
        self._messages.clear()
        self._indexes.clear()


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Subscription:
    """Handle returned by :class:`HostEvents`; ``detach`` unregisters it."""

    _handlers: list
    handler: Callable[..., None]
    active: bool = True

    def detach(self) -> None:
        if not self.active:
            return
        self.active = False
        try:
            self._handlers.remove(self.handler)
        except ValueError:
            pass


class HostEvents:
    """Synchronous event stream for ``message-appended`` and ``chat-reset``."""

    def __init__(self) -> None:
        self._appended: list[MessageHandler] = []
        self._reset: list[ResetHandler] = []

    def on_message_appended(self, handler: MessageHandler) -> Subscription:
        self._appended.append(handler)
        return Subscription(self._appended, handler)

    def on_chat_reset(self, handler: ResetHandler) -> Subscription:
        self._reset.append(handler)
        return Subscription(self._reset, handler)

    def emit_message_appended(self, index: int) -> None:
        for handler in list(self._appended):
            handler(index)

    def emit_chat_reset(self) -> None:
        for handler in list(self._reset):
            handler()


# ---------------------------------------------------------------------------
# Lore
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LoreEntry:
    tags: tuple[str, ...] = ()
    text: str = ""

    @property
    def searchable_text(self) -> str:
        return f"{' '.join(self.tags)} {self.text}".strip()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LoreEntry":
        raw_tags = data.get("tags") or data.get("key") or ()
        if isinstance(raw_tags, str):
            raw_tags = raw_tags.split(",")
        tags = tuple(str(tag).strip() for tag in raw_tags if str(tag).strip())
        text = data.get("text")
        if text is None:
            text = data.get("content", "")
        return cls(tags=tags, text=str(text or ""))

    def to_mapping(self) -> dict[str, Any]:
        return {"tags": list(self.tags), "text": self.text}


class LoreSource(Protocol):
    def list_entries(self) -> Sequence[LoreEntry]: ...


@dataclass(slots=True)
class LoreBook:
    """Static lore entries, usually loaded from the ``lore`` collection."""

    entries: list[LoreEntry] = field(default_factory=list)

    def list_entries(self) -> Sequence[LoreEntry]:
        return tuple(self.entries)

    def add(self, tags: Iterable[str], text: str) -> LoreEntry:
        entry = LoreEntry(tags=tuple(tag.strip() for tag in tags if tag.strip()), text=text)
        self.entries.append(entry)
        return entry

    @classmethod
    def from_collection(cls, bucket: Mapping[str, Any] | None) -> "LoreBook":
        entries: list[LoreEntry] = []
        for key, payload in sorted((bucket or {}).items()):
            if not isinstance(payload, Mapping):
                log.warning("Skipping malformed lore entry %s", key)
                continue
            entries.append(LoreEntry.from_mapping(payload))
        return cls(entries=entries)


__all__ = [
    "ChatLog",
    "ChatMessage",
    "HostEvents",
    "LoreBook",
    "LoreEntry",
    "LoreSource",
    "MessageLog",
    "Subscription",
]
