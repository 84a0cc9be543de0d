"""Discord UI components for map interactions."""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence

import discord

from .constants import LORE_EMOJI
from .models.map import Waypoint
from .render import CATEGORY_GLYPHS

SimpleCallback = Callable[[discord.Interaction], Awaitable[None]]
OptionCallback = Callable[[discord.Interaction, str], Awaitable[None]]


class OwnedView(discord.ui.View):
    """Base view that restricts interactions to a single Discord user."""

    def __init__(self, owner_id: int | None, *, timeout: float | None = 120.0) -> None:
        super().__init__(timeout=timeout)
        self.owner_id = owner_id

    async def interaction_check(self, interaction: discord.Interaction) -> bool:  # type: ignore[override]
        if self.owner_id is None or interaction.user.id == self.owner_id:
            return True
        await interaction.response.send_message(
            "Only the traveller who opened this map may use these controls.",
            ephemeral=True,
        )
        return False


class CallbackButton(discord.ui.Button[OwnedView]):
    """Reusable button that forwards interactions to a coroutine callback."""

    def __init__(
        self,
        *,
        label: str | None,
        callback: SimpleCallback,
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        emoji: str | None = None,
    ) -> None:
        super().__init__(label=label, style=style, emoji=emoji)
        self._callback = callback

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        await self._callback(interaction)


class CallbackSelect(discord.ui.Select[OwnedView]):
    """Reusable select component that forwards the chosen option to a callback."""

    def __init__(
        self,
        *,
        options: Sequence[discord.SelectOption],
        callback: OptionCallback,
        placeholder: str = "Make a selection",
    ) -> None:
        super().__init__(options=list(options), placeholder=placeholder, min_values=1, max_values=1)
        self._callback = callback

    async def callback(self, interaction: discord.Interaction) -> None:  # type: ignore[override]
        if not self.values:
            await interaction.response.send_message("Select an option first.", ephemeral=True)
            return
        await self._callback(interaction, self.values[0])


def distance_label(waypoint: Waypoint, current_position: int) -> str:
    if not waypoint.is_anchored:
        return "Lore"
    return f"{abs(waypoint.position_index - current_position)} msg"


def waypoint_options(
    waypoints: Sequence[Waypoint], current_position: int
) -> list[discord.SelectOption]:
    options: list[discord.SelectOption] = []
    for waypoint in waypoints[:25]:
        emoji = LORE_EMOJI if not waypoint.is_anchored else CATEGORY_GLYPHS[waypoint.category]
        options.append(
            discord.SelectOption(
                label=waypoint.name[:100],
                value=waypoint.id,
                description=f"{waypoint.category.value.title()} · {distance_label(waypoint, current_position)}",
                emoji=emoji,
            )
        )
    return options


class TravelProgressView(OwnedView):
    """Shown while a journey runs; the only control aborts it."""

    def __init__(
        self,
        owner_id: int | None,
        *,
        on_cancel: SimpleCallback,
        timeout: float | None = None,
    ) -> None:
        super().__init__(owner_id, timeout=timeout)
        self.cancel_button = CallbackButton(
            label="Cancel Journey",
            callback=on_cancel,
            style=discord.ButtonStyle.danger,
            emoji="✋",
        )
        self.add_item(self.cancel_button)

    def finish(self) -> None:
        self.cancel_button.disabled = True
        self.stop()


class QuickTravelView(OwnedView):
    """Select menu listing the most recently discovered waypoints."""

    def __init__(
        self,
        owner_id: int | None,
        waypoints: Sequence[Waypoint],
        *,
        current_position: int,
        on_select: OptionCallback,
        timeout: float | None = 120.0,
    ) -> None:
        super().__init__(owner_id, timeout=timeout)
        options = waypoint_options(waypoints, current_position)
        if options:
            self.add_item(
                CallbackSelect(
                    options=options,
                    callback=on_select,
                    placeholder="Choose a destination",
                )
            )


__all__ = [
    "CallbackButton",
    "CallbackSelect",
    "OwnedView",
    "QuickTravelView",
    "TravelProgressView",
    "distance_label",
    "waypoint_options",
]
