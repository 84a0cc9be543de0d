"""Shared helpers for cogs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Sequence

import discord
from discord.ext import commands

from ..config import MapConfig
from ..host import ChatLog, ChatMessage, HostEvents, LoreBook
from ..session import MapSession
from ..storage import DataStore
from ..travel.events import TravelEvent

log = logging.getLogger(__name__)


class MapCog(commands.Cog):
    """Owns one :class:`MapSession` per channel and its host plumbing."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.sessions: dict[int, MapSession] = {}
        self.host_events: dict[int, HostEvents] = {}
        self.lore_books: dict[int, LoreBook] = {}
        self._loading: dict[int, asyncio.Lock] = {}

    @property
    def store(self) -> DataStore:
        return self.bot.store  # type: ignore[attr-defined]

    @property
    def config(self) -> MapConfig:
        return self.bot.config  # type: ignore[attr-defined]

    async def reply(
        self,
        interaction: discord.Interaction,
        message: str | None = None,
        *,
        embed: discord.Embed | None = None,
        view: discord.ui.View | None = None,
        ephemeral: bool = False,
    ) -> None:
        kwargs: dict[str, Any] = {"ephemeral": ephemeral}
        if embed is not None:
            kwargs["embed"] = embed
        if view is not None:
            kwargs["view"] = view
        if interaction.response.is_done():
            await interaction.followup.send(message, **kwargs)
        else:
            await interaction.response.send_message(message, **kwargs)

    async def send_error(self, interaction: discord.Interaction, error: Exception | str) -> None:
        await self.reply(interaction, str(error), ephemeral=True)

    async def lore_for(self, guild_id: int) -> LoreBook:
        book = self.lore_books.get(guild_id)
        if book is None:
            bucket = await self.store.get(guild_id, "lore")
            book = LoreBook.from_collection(bucket)
            self.lore_books[guild_id] = book
        return book

    def _persist_callback(self, guild_id: int, channel_id: int):
        async def _persist(payload: Mapping[str, Any]) -> None:
            await self.store.set(guild_id, "maps", str(channel_id), payload)

        return _persist

    async def _fetch_recent(
        self, channel: discord.abc.Messageable, *, after: int | None
    ) -> List[ChatMessage]:
        """The newest ``history_limit`` messages after ``after``, oldest first."""

        recent: List[ChatMessage] = []
        async for message in channel.history(limit=self.config.history_limit, oldest_first=False):
            if after is not None and message.id <= after:
                break
            recent.append(_to_chat_message(message))
        recent.reverse()
        return recent

    async def session_for(
        self, channel: discord.abc.GuildChannel | discord.Thread, *, create: bool = True
    ) -> MapSession | None:
        """Return the live session for ``channel``, loading it on first use.

        A channel without a stored map gets a fresh one built by replaying its
        recent history, unless ``create`` is false.
        """

        session = self.sessions.get(channel.id)
        if session is not None:
            return session
        lock = self._loading.setdefault(channel.id, asyncio.Lock())
        async with lock:
            session = self.sessions.get(channel.id)
            if session is not None:
                return session
            return await self._load_session(channel, create=create)

    async def _load_session(
        self, channel: discord.abc.GuildChannel | discord.Thread, *, create: bool
    ) -> MapSession | None:
        guild_id = channel.guild.id
        record = await self.store.get_record(guild_id, "maps", str(channel.id))
        if record is None and not create:
            return None
        lore = await self.lore_for(guild_id)
        anchor = record.get("chat_anchor") if record else None
        recent = await self._fetch_recent(
            channel, after=int(anchor) if anchor else None  # type: ignore[arg-type]
        )
        settings = self.config.session_settings()
        if record is None:
            session = MapSession(ChatLog(), settings=settings, lore=lore)
            session.scan_lore()
            replayed = self._catch_up(session, recent)
            log.info(
                "Built map for channel %s from %d message(s): %d waypoint(s)",
                channel.id,
                replayed,
                len(session.store),
            )
        elif "message_ids" in record:
            # Indices were assigned before the restart; rebuild them from the
            # stored ids and ingest only what arrived since.
            chat = ChatLog(
                ChatMessage(text="", message_id=int(message_id))
                for message_id in record["message_ids"]
            )
            session = MapSession.from_mapping(record, chat, settings=settings, lore=lore)
            replayed = self._catch_up(session, recent)
            if replayed:
                log.info("Caught up %d message(s) in channel %s", replayed, channel.id)
        else:
            session = MapSession.from_mapping(record, ChatLog(recent), settings=settings, lore=lore)
        session.drain_events()
        session.bind_persistence(self._persist_callback(guild_id, channel.id))
        events = HostEvents()
        session.attach(events)
        self.sessions[channel.id] = session
        self.host_events[channel.id] = events
        session.request_save()
        return session

    @staticmethod
    def _catch_up(session: MapSession, messages: Sequence[ChatMessage]) -> int:
        chat = session.chat
        assert isinstance(chat, ChatLog)
        known = [message_id for message_id in chat.message_ids() if message_id is not None]
        newest = max(known) if known else None
        count = 0
        for message in messages:
            if message.message_id is not None:
                if chat.index_of(message.message_id) is not None:
                    continue
                if newest is not None and message.message_id < newest:
                    continue
            session.handle_message_appended(chat.append(message))
            count += 1
        return count

    async def ingest_message(
        self, channel: discord.abc.GuildChannel | discord.Thread, message: discord.Message
    ) -> List[TravelEvent]:
        """Append ``message`` to the channel's log and return discovery notices.

        Every channel message takes an index, bot notices included, so the
        numbering matches a replay of the channel history.
        """

        session = await self.session_for(channel, create=False)
        if session is None:
            return []
        chat = session.chat
        assert isinstance(chat, ChatLog)
        if chat.index_of(message.id) is not None:
            return []
        index = chat.append(_to_chat_message(message))
        self.host_events[channel.id].emit_message_appended(index)
        return [event for event in session.drain_events() if event.key.startswith("discovery:")]

    def reset_chat(self, channel_id: int, anchor: int) -> MapSession:
        """Start a new chat on the channel's map from the message ``anchor``."""

        session = self.sessions[channel_id]
        chat = session.chat
        assert isinstance(chat, ChatLog)
        chat.clear()
        session.chat_anchor = str(anchor)
        self.host_events[channel_id].emit_chat_reset()
        session.drain_events()
        return session

    async def close_sessions(self) -> None:
        for session in self.sessions.values():
            session.detach()
            await session.flush()
        self.sessions.clear()
        self.host_events.clear()
        self._loading.clear()


def _to_chat_message(message: discord.Message) -> ChatMessage:
    return ChatMessage(
        text=message.clean_content or message.content,
        author=message.author.display_name,
        message_id=message.id,
        narrative=not message.author.bot,
    )


__all__ = ["MapCog"]
