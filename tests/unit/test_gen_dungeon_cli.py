from __future__ import annotations

import json
from pathlib import Path

import pytest

from tools.gen_dungeon_cli import main


def test_cli_writes_layout_json(tmp_path: Path, capsys) -> None:
    out = tmp_path / "out" / "dungeon.json"
    main(["--seed", "abc123", "--max-segments", "5", "--spurs", "0", "0", "--out", str(out)])

    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["seed"] == "abc123"
    assert data["mode"] == "batch"
    assert len(data["graph"]["branches"]) == 1
    assert "seed=abc123" in capsys.readouterr().out


def test_cli_numeric_seed_and_incremental_mode(tmp_path: Path) -> None:
    out = tmp_path / "inc.json"
    main(["--seed", "42", "--mode", "incremental", "--out", str(out)])
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["seed"] == 42
    assert data["mode"] == "incremental"


def test_cli_rejects_unknown_preset(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(["--preset", "Volcano", "--out", str(tmp_path / "x.json")])
