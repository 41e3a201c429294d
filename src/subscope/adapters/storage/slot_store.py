"""JSON values kept one per file under a root directory."""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
import re
import tempfile
from typing import Any

from loguru import logger

__all__ = ["JsonSlotStore", "slot_name"]

_SAFE_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


def slot_name(logical_key: str) -> str:
    """Map an arbitrary key onto a fixed-length, path-safe slot name."""
    return hashlib.sha256(logical_key.encode("utf-8")).hexdigest()


class JsonSlotStore:
    """Stores one JSON document per ``(namespace, slot)`` under ``root``.

    Saves replace the whole slot through a temp file and ``os.replace``, so a
    reader sees either the previous document or the new one. Namespace and
    slot names must already be path-safe; hash free-form keys with
    ``slot_name``.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser()

    def load(self, namespace: str, slot: str) -> Any | None:
        """Return the stored document, or None if absent or unreadable."""
        path = self.slot_path(namespace, slot)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Slot {} unreadable: {}", path, exc)
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Slot {} holds invalid JSON", path)
            return None

    def save(self, namespace: str, slot: str, value: Any) -> None:
        """Replace the slot with ``value``.

        Raises:
            TypeError: If ``value`` is not JSON-serializable.
            OSError: If the file cannot be written.
        """
        path = self.slot_path(namespace, slot)
        document = json.dumps(value, ensure_ascii=True, sort_keys=True)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(document)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def has(self, namespace: str, slot: str) -> bool:
        return self.slot_path(namespace, slot).is_file()

    def slot_path(self, namespace: str, slot: str) -> Path:
        _check_name("namespace", namespace)
        _check_name("slot", slot)
        return self.root / namespace / f"{slot}.json"


def _check_name(kind: str, value: str) -> None:
    if not value or ".." in value or not _SAFE_NAME.match(value):
        raise ValueError(f"Invalid {kind} name: {value!r}")
