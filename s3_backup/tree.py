from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Set


class KeyTree:
    """
    Deduplicated set of hierarchy paths built from object keys.

    ``add("a/b/c.txt")`` records ``a/``, ``a/b/`` and ``a/b/c.txt``; a key that
    already ends in ``/`` contributes only directory paths.
    """

    def __init__(self, keys: Optional[Iterable[str]] = None):
        self._paths: Set[str] = set()
        for key in keys or ():
            self.add(key)

    def add(self, key: str) -> None:
        parts = key.split("/")
        current = ""
        for i, part in enumerate(parts):
            current += part
            if i < len(parts) - 1:
                current += "/"
                self._paths.add(current)
            elif part:
                self._paths.add(current)

    def sorted_paths(self) -> List[str]:
        return sorted(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths


def build_tree(keys: Iterable[str]) -> List[str]:
    return KeyTree(keys).sorted_paths()


def _nest(paths: Iterable[str]) -> Dict[str, dict]:
    tree: Dict[str, dict] = {}
    for path in paths:
        is_dir = path.endswith("/")
        parts = path[:-1].split("/") if is_dir else path.split("/")
        node = tree
        for i, part in enumerate(parts):
            label = part + "/" if (i < len(parts) - 1 or is_dir) else part
            node = node.setdefault(label, {})
    return tree


def render_tree(paths: Iterable[str], root: Optional[str] = None) -> List[str]:
    """Render sorted tree paths as ``├──``/``└──`` lines."""
    lines: List[str] = [root] if root else []

    def _walk(node: Dict[str, dict], prefix: str) -> None:
        items = sorted(node.items())
        for idx, (name, subtree) in enumerate(items):
            is_last = idx == len(items) - 1
            lines.append(prefix + ("└── " if is_last else "├── ") + name)
            _walk(subtree, prefix + ("    " if is_last else "│   "))

    _walk(_nest(paths), "")
    return lines
