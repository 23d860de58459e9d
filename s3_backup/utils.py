from __future__ import annotations
from typing import Dict, Any
from pathlib import Path
import yaml

from .errors import FilesystemFailure


def ensure_dir(path: Path | str) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def safe_local_path(root: Path | str, key: str) -> Path:
    """
    Map an object key onto a path under root.
    Keys that would escape root (``../x``, absolute keys) are rejected.
    """
    base = Path(root).resolve()
    target = (base / key.lstrip("/")).resolve()
    if target != base and base not in target.parents:
        raise FilesystemFailure(f"key {key!r} resolves outside {base}")
    return target


def human_bytes(n: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    s = float(n)
    for u in units:
        if s < 1024 or u == units[-1]:
            return f"{s:.1f} {u}"
        s /= 1024.0
