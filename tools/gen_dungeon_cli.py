"""Command line interface to generate dungeon layouts for development."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path

from modules.dungeon.gen.presets import preset_names
from modules.dungeon.settings import DungeonSettings
from modules.dungeon.spec import save_json
from modules.dungeon.systems.dungeon_generator import GENERATION_MODES, generate_layout


def _seed(value: str) -> int | str:
    return int(value) if value.lstrip("-").isdigit() else value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a procedural dungeon layout.")
    parser.add_argument("--seed", type=_seed, default=None, help="Integer or string seed; random when omitted.")
    parser.add_argument("--mode", default="batch", choices=GENERATION_MODES)
    parser.add_argument("--preset", default=None, choices=preset_names(), help="Growth preset (batch mode).")
    parser.add_argument("--config", default=None, help="YAML settings file overriding the defaults.")
    parser.add_argument("--start", type=float, nargs=3, default=[0.0, 0.0, 0.0], metavar=("X", "Y", "Z"))
    parser.add_argument("--goal", type=float, nargs=3, default=[150.0, 0.0, 150.0], metavar=("X", "Y", "Z"))
    parser.add_argument("--max-segments", type=int, default=None, help="Maximum segments per branch.")
    parser.add_argument("--spurs", type=int, nargs=2, default=None, metavar=("MIN", "MAX"))
    parser.add_argument("--out", required=True, help="Path to the JSON layout output.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.max_segments is not None:
        overrides["max_segments_per_branch"] = args.max_segments
    if args.spurs is not None:
        overrides["spur_count"] = tuple(args.spurs)

    try:
        base = DungeonSettings.from_file(args.config) if args.config else DungeonSettings.from_loader()
        settings = base.with_overrides(
            seed=args.seed,
            preset=args.preset,
            growth=overrides,
            incremental=overrides,
        )
    except (KeyError, ValueError) as exc:
        parser.error(str(exc))

    layout = generate_layout(settings, args.start, args.goal, args.mode)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    save_json(layout, out_path)
    print(
        f"seed={layout.seed} mode={layout.mode} rooms={layout.room_count} "
        f"hallways={layout.hallway_count} doorways={len(layout.doorways)} -> {out_path}"
    )


if __name__ == "__main__":
    main()
