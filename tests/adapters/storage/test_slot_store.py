"""Tests for the one-file-per-slot JSON store."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from subscope.adapters.storage.slot_store import JsonSlotStore, slot_name


class TestSaveLoad:
    def test_saved_document_is_loaded(self, tmp_path: Path) -> None:
        # input
        store = JsonSlotStore(tmp_path)

        # act
        store.save("ns", "slot", {"ts": 1, "items": []})

        # assert
        assert store.load("ns", "slot") == {"ts": 1, "items": []}
        assert store.has("ns", "slot") is True
        assert store.slot_path("ns", "slot") == tmp_path / "ns" / "slot.json"

    def test_missing_slot(self, tmp_path: Path) -> None:
        store = JsonSlotStore(tmp_path)

        assert store.load("ns", "missing") is None
        assert store.has("ns", "missing") is False

    def test_save_replaces_previous_document(self, tmp_path: Path) -> None:
        store = JsonSlotStore(tmp_path)
        store.save("ns", "slot", [1])
        store.save("ns", "slot", [2])

        assert store.load("ns", "slot") == [2]

    @pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe\x00"])
    def test_unreadable_document_loads_as_none(self, tmp_path: Path, raw: bytes) -> None:
        store = JsonSlotStore(tmp_path)
        path = store.slot_path("ns", "slot")
        path.parent.mkdir(parents=True)
        path.write_bytes(raw)

        assert store.load("ns", "slot") is None


class TestFailedSave:
    def test_unserializable_value_keeps_previous_document(self, tmp_path: Path) -> None:
        store = JsonSlotStore(tmp_path)
        store.save("ns", "slot", {"ok": True})

        with pytest.raises(TypeError):
            store.save("ns", "slot", {"bad": object()})

        assert store.load("ns", "slot") == {"ok": True}

    def test_failed_replace_leaves_no_temp_file(self, tmp_path: Path) -> None:
        store = JsonSlotStore(tmp_path)
        store.save("ns", "slot", {"ok": True})

        with patch("os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                store.save("ns", "slot", {"ok": False})

        assert list((tmp_path / "ns").glob(".tmp*")) == []
        assert store.load("ns", "slot") == {"ok": True}


class TestNames:
    @pytest.mark.parametrize(
        ("namespace", "slot"),
        [("../evil", "slot"), ("ns", "a/../b"), ("ns", "has space"), ("", "slot")],
    )
    def test_unsafe_names_are_rejected(
        self, tmp_path: Path, namespace: str, slot: str
    ) -> None:
        store = JsonSlotStore(tmp_path)

        with pytest.raises(ValueError, match="Invalid"):
            store.load(namespace, slot)

    def test_slot_name_is_a_stable_digest(self) -> None:
        name = slot_name("recurring_cache_v1:u1")

        assert name == slot_name("recurring_cache_v1:u1")
        assert name != slot_name("recurring_cache_v1:u2")
        assert len(name) == 64
        assert all(ch in "0123456789abcdef" for ch in name)
