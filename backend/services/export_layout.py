from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import yaml

BACKEND_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_LAYOUT_PATH = BACKEND_ROOT / "config" / "export_layout.yaml"

REQUIRED_SECTIONS = ("pdf", "csv", "xlsx")


def load_layout(layout_path: Path = DEFAULT_LAYOUT_PATH) -> Dict[str, Any]:
    with Path(layout_path).open("r", encoding="utf-8") as layout_file:
        loaded = yaml.safe_load(layout_file)

    if not isinstance(loaded, dict):
        msg = f"Layout file must contain a dictionary at root: {layout_path}"
        raise ValueError(msg)

    missing = [section for section in REQUIRED_SECTIONS if not isinstance(loaded.get(section), dict)]
    if missing:
        msg = f"Layout file {layout_path} is missing sections: {', '.join(missing)}"
        raise ValueError(msg)

    columns = loaded["pdf"].get("columns")
    if not isinstance(columns, list) or not columns:
        raise ValueError("pdf.columns must be a non-empty list")

    return loaded


def font_path_from(layout: Dict[str, Any]) -> str:
    """Configured TTF path; relative layout paths are taken from the backend package."""
    override = os.getenv("RIDE_LEDGER_FONT_PATH")
    if override:
        return override
    configured = str(layout.get("font", {}).get("path") or "")
    if not configured:
        return ""
    path = Path(configured)
    return str(path if path.is_absolute() else BACKEND_ROOT / path)
