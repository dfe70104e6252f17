"""Serialization helpers for generated dungeon layouts."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from modules.dungeon.doorways import Doorway
from modules.dungeon.gen.geometry import AXIS_NAMES
from modules.dungeon.gen.graph import DungeonGraph
from modules.dungeon.resolve.sizing import LayoutGeometry


@dataclass(slots=True)
class DungeonLayout:
    """Everything needed to materialise or replay one generated dungeon."""

    seed: int | str
    graph: DungeonGraph
    geometry: LayoutGeometry
    doorways: list[Doorway] = field(default_factory=list)
    mode: str = "batch"
    unresolved: list[int] = field(default_factory=list)
    degenerate: bool = False

    @property
    def room_count(self) -> int:
        return len(self.geometry.rooms)

    @property
    def hallway_count(self) -> int:
        return len(self.geometry.hallways)

    def to_dict(self) -> dict[str, Any]:
        return {
            "seed": self.seed,
            "mode": self.mode,
            "graph": self.graph.as_dict(),
            "geometry": self.geometry.as_dict(),
            "doorways": [door.as_dict() for door in self.doorways],
            "unresolved": list(self.unresolved),
            "degenerate": self.degenerate,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DungeonLayout":
        if "seed" not in data or "graph" not in data:
            raise ValueError("layout data requires 'seed' and 'graph'")
        return cls(
            seed=data["seed"],
            graph=DungeonGraph.from_dict(data["graph"]),
            geometry=LayoutGeometry.from_dict(data.get("geometry", {})),
            doorways=[_doorway_from_dict(door) for door in data.get("doorways", [])],
            mode=str(data.get("mode", "batch")),
            unresolved=[int(v) for v in data.get("unresolved", [])],
            degenerate=bool(data.get("degenerate", False)),
        )


def _doorway_from_dict(data: Mapping[str, Any]) -> Doorway:
    axis = AXIS_NAMES.index(data.get("axis", "X"))
    default_width = "Z" if axis == 0 else "X"
    default_height = "Z" if axis == 1 else "Y"
    return Doorway(
        center=tuple(float(v) for v in data["position"]),  # type: ignore[arg-type]
        width=float(data["width"]),
        height=float(data["height"]),
        width_axis=AXIS_NAMES.index(data.get("width_axis", default_width)),
        height_axis=AXIS_NAMES.index(data.get("height_axis", default_height)),
        axis=axis,
        direction=int(data.get("direction", 1)),
        size=tuple(float(v) for v in data["size"]),  # type: ignore[arg-type]
        from_room_id=data.get("from_room_id"),
        to_room_id=data.get("to_room_id"),
        room_id=data.get("room_id"),
    )


def save_json(layout: DungeonLayout, path: str | Path) -> None:
    """Serialise a :class:`DungeonLayout` to JSON on disk."""

    destination = Path(path)
    destination.write_text(json.dumps(layout.to_dict(), indent=2), encoding="utf-8")


def load_json(path: str | Path) -> DungeonLayout:
    """Load a :class:`DungeonLayout` from JSON data on disk."""

    source = Path(path)
    text = source.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise json.JSONDecodeError(
            f"Error parsing JSON in file '{source}': {exc.msg}",
            exc.doc,
            exc.pos,
        ) from exc
    return DungeonLayout.from_dict(data)


__all__ = ["DungeonLayout", "load_json", "save_json"]
