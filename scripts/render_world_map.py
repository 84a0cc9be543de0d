#!/usr/bin/env python3
"""Render a saved channel map record to a PNG world map."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import Any, Mapping

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import networkx as nx
from matplotlib.lines import Line2D

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fastmap.host import ChatLog
from fastmap.models.map import OriginKind, WaypointCategory
from fastmap.render import connection_pairs
from fastmap.session import MapSession
from fastmap.storage import read_toml

# Same palette the in-chat map used for its category dots.
CATEGORY_COLOURS = {
    WaypointCategory.FOREST: "#228B22",
    WaypointCategory.MOUNTAIN: "#8B4513",
    WaypointCategory.WATER: "#1E90FF",
    WaypointCategory.DESERT: "#FFA500",
    WaypointCategory.CITY: "#FFD700",
    WaypointCategory.PLAINS: "#90EE90",
    WaypointCategory.DUNGEON: "#4A4A4A",
    WaypointCategory.TEMPLE: "#9370DB",
}

HIDDEN_COLOUR = "#555555"
LORE_BORDER = "#FFD700"
CURRENT_BORDER = "#FFFFFF"
DEFAULT_BORDER = "#333333"
BACKGROUND = "#0A0A15"
ROUTE_COLOUR = "#FFD700"


def load_session(record: Mapping[str, Any]) -> MapSession:
    return MapSession.from_mapping(record, ChatLog())


def build_graph(session: MapSession, *, include_hidden: bool = False) -> nx.Graph:
    """Nodes are waypoints placed at their world coordinates, edges are routes."""

    graph = nx.Graph()
    entries = session.visible_waypoints()
    for entry in entries:
        if not entry.discovered and not include_hidden:
            continue
        waypoint = entry.waypoint
        graph.add_node(
            waypoint.id,
            label=waypoint.name,
            pos=(waypoint.coordinates.x, -waypoint.coordinates.y),
            category=waypoint.category,
            discovered=entry.discovered,
            current=entry.is_current,
            lore=waypoint.origin is OriginKind.LORE,
        )
    for start, end in connection_pairs(entries):
        graph.add_edge(start.id, end.id, gap=end.position_index - start.position_index)
    return graph


def render_world_map(record_path: Path, output_path: Path, *, dpi: int = 150, size: float = 8.0,
                     include_hidden: bool = False) -> None:
    record = read_toml(record_path)
    if not isinstance(record, Mapping):
        raise SystemExit(f"Unable to read map record at {record_path}")
    session = load_session(record)
    graph = build_graph(session, include_hidden=include_hidden)
    pos = nx.get_node_attributes(graph, "pos")

    fig = plt.figure(figsize=(size, size), dpi=dpi)
    fig.patch.set_facecolor(BACKGROUND)
    ax = fig.add_subplot(1, 1, 1)
    ax.set_facecolor(BACKGROUND)

    nodes = list(graph.nodes)
    colours = [
        CATEGORY_COLOURS[graph.nodes[node]["category"]]
        if graph.nodes[node]["discovered"]
        else HIDDEN_COLOUR
        for node in nodes
    ]
    borders = []
    for node in nodes:
        data = graph.nodes[node]
        if data["current"]:
            borders.append(CURRENT_BORDER)
        elif data["lore"]:
            borders.append(LORE_BORDER)
        else:
            borders.append(DEFAULT_BORDER)

    nx.draw_networkx_edges(
        graph, pos, ax=ax, edge_color=ROUTE_COLOUR, style="dashed", alpha=0.4, width=1.5
    )
    nx.draw_networkx_nodes(
        graph,
        pos,
        ax=ax,
        nodelist=nodes,
        node_color=colours,
        edgecolors=borders,
        linewidths=2.0,
        node_size=160,
    )
    labels = {node: graph.nodes[node]["label"] for node in nodes if graph.nodes[node]["discovered"]}
    nx.draw_networkx_labels(graph, pos, labels=labels, ax=ax, font_size=7, font_color="white")

    legend_handles = [
        Line2D([], [], marker="o", linestyle="", color=colour, label=category.value.title())
        for category, colour in CATEGORY_COLOURS.items()
    ]
    ax.legend(handles=legend_handles, loc="lower left", frameon=False, fontsize=6, labelcolor="white")
    ax.set_title(
        f"Discovered {session.discovered_count()}/{len(session.store)}", color="white", fontsize=10
    )
    ax.axis("off")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, bbox_inches="tight", facecolor=BACKGROUND)
    plt.close(fig)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("record", type=Path, help="Path to a saved maps/<channel>.toml record.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("img/world-map.png"),
        help="Where to write the rendered map image.",
    )
    parser.add_argument("--dpi", type=int, default=150, help="Rendering DPI.")
    parser.add_argument("--size", type=float, default=8.0, help="Figure size in inches.")
    parser.add_argument(
        "--include-hidden",
        action="store_true",
        help="Also draw undiscovered waypoints as grey dots.",
    )
    args = parser.parse_args()
    render_world_map(
        args.record, args.output, dpi=args.dpi, size=args.size, include_hidden=args.include_hidden
    )


if __name__ == "__main__":
    main()
