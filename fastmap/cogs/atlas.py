"""Slash commands and message hooks for the fast travel map."""

from __future__ import annotations

import base64
import binascii
import io
import logging
import uuid
from typing import Sequence

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import LORE_EMOJI, MAP_EMOJI
from ..host import LoreEntry
from ..models.map import Waypoint
from ..render import MiniMapRenderer, connection_pairs
from ..session import MapSession
from ..travel import TravelBusy, TravelCancelled, TravelOutcome, TravelUnreachable
from ..travel.events import TravelEvent, describe_progress
from ..views import QuickTravelView, TravelProgressView, distance_label
from .base import MapCog

log = logging.getLogger(__name__)

PROGRESS_EDIT_STEP = 0.25


def _progress_bar(progress: float, *, width: int = 12) -> str:
    filled = int(round(max(0.0, min(1.0, progress)) * width))
    return "▰" * filled + "▱" * (width - filled)


def _event_lines(events: Sequence[TravelEvent]) -> list[str]:
    lines: list[str] = []
    for event in events:
        prefix = "⚠️ " if event.warning else ""
        lines.append(f"{prefix}{event.description}")
    return lines


def _background_file(image: str | None) -> discord.File | None:
    if not image or not image.startswith("data:image"):
        return None
    _, _, encoded = image.partition(",")
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        log.warning("Stored map background is not valid base64")
        return None
    return discord.File(io.BytesIO(raw), filename="map.png")


class AtlasCog(MapCog):
    map_group = app_commands.Group(
        name="map", description="Explore and fast travel across the world map", guild_only=True
    )

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None:
            return
        channel = message.channel
        if not isinstance(channel, (discord.abc.GuildChannel, discord.Thread)):
            return
        discoveries = await self.ingest_message(channel, message)
        if discoveries:
            lines = " ".join(event.description for event in discoveries)
            await channel.send(f"{MAP_EMOJI} {lines}")

    # ------------------------------------------------------------------
    # Embeds
    # ------------------------------------------------------------------

    def _map_embed(self, session: MapSession) -> tuple[discord.Embed, discord.File | None]:
        entries = session.visible_waypoints()
        renderer = MiniMapRenderer(session.viewport, surface_size=session.settings.surface_size)
        embed = discord.Embed(
            title=f"{MAP_EMOJI} World Map",
            description=renderer.render(entries, state=session.state),
            colour=discord.Colour.dark_gold(),
        )
        embed.add_field(
            name="Discovered",
            value=f"{session.discovered_count()}/{len(session.store)}",
            inline=True,
        )
        embed.add_field(
            name="Position",
            value=f"Message #{session.state.current_position_index}",
            inline=True,
        )
        fog = "On" if session.state.fog_enabled else "Off"
        embed.add_field(
            name="Fog of War",
            value=f"{fog} · radius {session.state.discovery_radius}",
            inline=True,
        )
        nearby = session.nearby_count()
        if nearby:
            embed.add_field(
                name="Nearby",
                value=f"❗ {nearby} undiscovered location(s) close by",
                inline=False,
            )
        legend = renderer.legend(entries)
        if legend:
            embed.add_field(name="Locations", value="\n".join(legend), inline=False)
        routes = connection_pairs(entries)
        if routes:
            embed.add_field(
                name="Routes",
                value="\n".join(f"{a.name} → {b.name}" for a, b in routes[-5:]),
                inline=False,
            )
        attachment = _background_file(session.map_image)
        if attachment is not None:
            embed.set_image(url="attachment://map.png")
        elif session.map_image and session.map_image.startswith(("http://", "https://")):
            embed.set_image(url=session.map_image)
        viewport = session.viewport
        embed.set_footer(
            text=f"Zoom {viewport.zoom:.2f}× · Pan ({viewport.pan_x:.0f}, {viewport.pan_y:.0f})"
        )
        return embed, attachment

    @staticmethod
    def _journey_embed(waypoint: Waypoint, progress: float, distance: int) -> discord.Embed:
        embed = discord.Embed(
            title=f"Travelling to {waypoint.name}",
            description=f"{describe_progress(waypoint, progress)}\n{_progress_bar(progress)}",
            colour=discord.Colour.blurple(),
        )
        embed.set_footer(text=f"Distance: {distance} messages")
        return embed

    @staticmethod
    def _outcome_embed(outcome: TravelOutcome, events: Sequence[TravelEvent]) -> discord.Embed:
        embed = discord.Embed(
            title="Destination Reached",
            description="\n".join(_event_lines(events)) or f"Arrived at {outcome.destination.name}",
            colour=discord.Colour.green() if outcome.destination_resolved else discord.Colour.orange(),
        )
        if outcome.destination.is_anchored:
            embed.set_footer(text=f"Now at message #{outcome.position_index}")
        else:
            embed.set_footer(text=f"{LORE_EMOJI} Lore location")
        return embed

    # ------------------------------------------------------------------
    # Travel
    # ------------------------------------------------------------------

    async def _travel(
        self, interaction: discord.Interaction, session: MapSession, target: str
    ) -> None:
        waypoint = session.resolve_waypoint(target)
        if waypoint is None:
            await self.send_error(interaction, f"Location not found: {target}")
            return
        if session.travel.is_traveling:
            await self.send_error(interaction, "You are already on a journey.")
            return
        if not session.is_discovered(waypoint):
            await self.send_error(interaction, "Cannot travel to undiscovered location!")
            return

        distance = session.travel.distance_to(waypoint)
        if session.travel.settings.is_instant(distance):
            outcome = await session.travel_to(waypoint)
            await self.reply(
                interaction, embed=self._outcome_embed(outcome, session.drain_events())
            )
            return

        async def _cancel(button_interaction: discord.Interaction) -> None:
            if session.cancel_travel():
                await button_interaction.response.send_message(
                    "Turning back...", ephemeral=True
                )
            else:
                await button_interaction.response.send_message(
                    "There is no journey to cancel.", ephemeral=True
                )

        view = TravelProgressView(interaction.user.id, on_cancel=_cancel)
        await self.reply(interaction, embed=self._journey_embed(waypoint, 0.0, distance), view=view)
        message = await interaction.original_response()
        last_stage = describe_progress(waypoint, 0.0)
        last_progress = 0.0

        async def _on_progress(progress: float) -> None:
            nonlocal last_stage, last_progress
            stage = describe_progress(waypoint, progress)
            if stage == last_stage and progress - last_progress < PROGRESS_EDIT_STEP:
                return
            last_stage, last_progress = stage, progress
            try:
                await message.edit(embed=self._journey_embed(waypoint, progress, distance))
            except discord.HTTPException as exc:
                log.debug("Unable to update journey message: %s", exc)

        try:
            outcome = await session.travel_to(waypoint, on_progress=_on_progress)
        except TravelCancelled:
            view.finish()
            embed = discord.Embed(
                title="Travel Cancelled",
                description="\n".join(_event_lines(session.drain_events())),
                colour=discord.Colour.red(),
            )
            await message.edit(embed=embed, view=None)
            return
        except (TravelBusy, TravelUnreachable) as exc:
            view.finish()
            await message.edit(content=str(exc), embed=None, view=None)
            return
        view.finish()
        await message.edit(
            embed=self._outcome_embed(outcome, session.drain_events()), view=None
        )

    async def _session(self, interaction: discord.Interaction) -> MapSession | None:
        channel = interaction.channel
        if interaction.guild is None or not isinstance(
            channel, (discord.abc.GuildChannel, discord.Thread)
        ):
            await self.send_error(interaction, "The world map is only available in server channels.")
            return None
        return await self.session_for(channel)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @map_group.command(name="show", description="Show the world map for this channel")
    async def show(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(thinking=True)
        session = await self._session(interaction)
        if session is None:
            return
        embed, attachment = self._map_embed(session)
        if attachment is not None:
            await interaction.followup.send(embed=embed, file=attachment)
        else:
            await interaction.followup.send(embed=embed)

    @map_group.command(name="travel", description="Fast travel to a discovered location")
    @app_commands.describe(destination="Location name or waypoint id")
    async def travel(self, interaction: discord.Interaction, destination: str) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        await self._travel(interaction, session, destination)

    @travel.autocomplete("destination")
    async def travel_autocomplete(
        self, interaction: discord.Interaction, current: str
    ) -> list[app_commands.Choice[str]]:
        channel = interaction.channel
        session = self.sessions.get(channel.id) if channel is not None else None
        if session is None:
            return []
        search = current.casefold()
        position = session.state.current_position_index
        choices: list[app_commands.Choice[str]] = []
        for waypoint in session.quick_travel_options(limit=len(session.store)):
            if search and search not in waypoint.name.casefold():
                continue
            label = f"{waypoint.name} ({distance_label(waypoint, position)})"
            choices.append(app_commands.Choice(name=label[:100], value=waypoint.id))
            if len(choices) >= 25:
                break
        return choices

    @map_group.command(name="cancel", description="Abort the journey in progress")
    async def cancel(self, interaction: discord.Interaction) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        if session.cancel_travel():
            await self.reply(interaction, "Turning back...", ephemeral=True)
        else:
            await self.send_error(interaction, "There is no journey to cancel.")

    @map_group.command(name="quick", description="Pick one of the latest discovered locations")
    async def quick(self, interaction: discord.Interaction) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        options = session.quick_travel_options()
        if not options:
            await self.send_error(interaction, "No discovered locations yet.")
            return

        async def _selected(select_interaction: discord.Interaction, waypoint_id: str) -> None:
            await self._travel(select_interaction, session, waypoint_id)

        view = QuickTravelView(
            interaction.user.id,
            options,
            current_position=session.state.current_position_index,
            on_select=_selected,
        )
        await self.reply(interaction, "Where to?", view=view, ephemeral=True)

    @map_group.command(name="pin", description="Pin a custom location on the map")
    @app_commands.describe(
        name="Name of the location",
        x="Horizontal position on the map surface (pixels)",
        y="Vertical position on the map surface (pixels)",
    )
    async def pin(
        self,
        interaction: discord.Interaction,
        name: app_commands.Range[str, 1, 40],
        x: float | None = None,
        y: float | None = None,
    ) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        width, height = session.settings.surface_size
        try:
            waypoint = session.add_manual_waypoint(
                name,
                width / 2 if x is None else x,
                height / 2 if y is None else y,
            )
        except ValueError as exc:
            await self.send_error(interaction, exc)
            return
        await self.reply(interaction, f"📌 Pinned **{waypoint.name}** on the map.")

    @map_group.command(name="fog", description="Toggle fog of war")
    async def fog(self, interaction: discord.Interaction, enabled: bool) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        session.set_fog(enabled)
        await self.reply(interaction, f"Fog of war {'enabled' if enabled else 'disabled'}.")

    @map_group.command(name="radius", description="Set how many messages away locations are revealed")
    async def radius(
        self, interaction: discord.Interaction, value: app_commands.Range[int, 0, 100]
    ) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        revealed = session.set_radius(value)
        session.drain_events()
        suffix = f" Revealed {len(revealed)} location(s)." if revealed else ""
        await self.reply(interaction, f"Discovery radius set to {value}.{suffix}")

    @map_group.command(name="zoom", description="Zoom the map around its centre")
    async def zoom(
        self, interaction: discord.Interaction, factor: app_commands.Range[float, 0.1, 10.0]
    ) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        width, height = session.settings.surface_size
        value = session.viewport.zoom_at(width / 2, height / 2, factor)
        session.request_save()
        await self.reply(interaction, f"Zoom is now {value:.2f}×.", ephemeral=True)

    @map_group.command(name="pan", description="Move the map view")
    async def pan(self, interaction: discord.Interaction, dx: int = 0, dy: int = 0) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        session.viewport.pan_by(dx, dy)
        session.request_save()
        embed, attachment = self._map_embed(session)
        if attachment is not None:
            await interaction.response.send_message(embed=embed, file=attachment, ephemeral=True)
        else:
            await self.reply(interaction, embed=embed, ephemeral=True)

    @map_group.command(name="clear", description="Forget discovered progress; lore locations remain")
    async def clear(self, interaction: discord.Interaction) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        session.clear()
        await self.reply(interaction, "Map cleared.")

    @map_group.command(name="newchat", description="Start a new chat on this channel's map")
    async def newchat(self, interaction: discord.Interaction) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        self.reset_chat(interaction.channel_id, interaction.id)  # type: ignore[arg-type]
        await self.reply(
            interaction,
            f"New chat started. {len(session.store)} lore location(s) carried over.",
        )

    @map_group.command(name="reveal", description="Reveal every location on the map")
    async def reveal(self, interaction: discord.Interaction) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        revealed = session.reveal_all()
        session.drain_events()
        await self.reply(interaction, f"Revealed {len(revealed)} location(s).", ephemeral=True)

    @map_group.command(name="lore", description="Add a lore entry that seeds known locations")
    @app_commands.describe(tags="Comma separated keywords", text="Lore text")
    async def lore(self, interaction: discord.Interaction, tags: str, text: str) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        assert interaction.guild is not None
        entry = LoreEntry.from_mapping({"tags": tags, "text": text})
        await self.store.set(
            interaction.guild.id, "lore", f"entry-{uuid.uuid4().hex[:8]}", entry.to_mapping()
        )
        book = await self.lore_for(interaction.guild.id)
        book.entries.append(entry)
        added = session.scan_lore()
        names = ", ".join(wp.name for wp in added) or "no new locations"
        await self.reply(interaction, f"{LORE_EMOJI} Lore saved: {names}.")

    @map_group.command(name="scan", description="Scan lore entries for locations")
    async def scan(self, interaction: discord.Interaction) -> None:
        session = await self._session(interaction)
        if session is None:
            return
        added = session.scan_lore()
        if not added:
            await self.reply(interaction, "No new lore locations found.", ephemeral=True)
            return
        await self.reply(interaction, f"{LORE_EMOJI} Found {len(added)} location(s) in lore.")

    @map_group.command(name="generate", description="Paint a background for the map")
    async def generate(self, interaction: discord.Interaction) -> None:
        generator = getattr(self.bot, "image_generator", None)
        if generator is None:
            await self.send_error(interaction, "Map painting is not configured (IMAGE_API_URL).")
            return
        session = await self._session(interaction)
        if session is None:
            return
        if not session.discovered_count():
            await self.send_error(interaction, "Discover locations first!")
            return
        await interaction.response.defer(thinking=True)
        image = await session.generate_background(generator)
        if image is None:
            await interaction.followup.send("Generation failed, try again later.", ephemeral=True)
            return
        embed, attachment = self._map_embed(session)
        if attachment is not None:
            await interaction.followup.send("Map updated!", embed=embed, file=attachment)
        else:
            await interaction.followup.send("Map updated!", embed=embed)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(AtlasCog(bot))
