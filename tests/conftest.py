"""Shared pytest fixtures for all tests."""
from __future__ import annotations

import os

# Keep test runs from writing log files into the user's data directory
os.environ.setdefault("LOG_TO_FILE", "false")

from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence

import pytest

from checklist import storage
from checklist.models import Item, Status, wiki_url
from checklist.store import ItemStore


class MemoryPersistence:
    """Dict-backed stand-in for checklist.storage."""

    def __init__(self, initial: Dict[str, List[Item]] | None = None) -> None:
        self.data: Dict[str, List[Item]] = dict(initial or {})
        self.saves = 0

    def load(self, key: str) -> List[Item]:
        return list(self.data.get(key, []))

    def save(self, key: str, items: Sequence[Item]) -> None:
        self.saves += 1
        self.data[key] = list(items)


class FakeLookup:
    """
    Lookup collaborator double. Enriches items whose name is in known;
    raises for the call numbers listed in fail_calls (0-based).
    """

    def __init__(self, known: Iterable[str] = (), fail_calls: Iterable[int] = ()) -> None:
        self.known = set(known)
        self.fail_calls = set(fail_calls)
        self.calls: List[List[str]] = []
        self.on_call: Callable[[int], None] | None = None

    def __call__(self, batch: Sequence[Item]) -> List[Item]:
        call_no = len(self.calls)
        self.calls.append([it.item_id for it in batch])
        if self.on_call is not None:
            self.on_call(call_no)
        if call_no in self.fail_calls:
            raise RuntimeError(f"lookup failed on call {call_no}")
        out = []
        for it in batch:
            if it.name in self.known:
                it = replace(
                    it,
                    identified=True,
                    image=f"https://img.example/{it.name}.png",
                    extract=f"{it.name} is a Squishmallow.",
                    source=wiki_url(it.name),
                )
            out.append(it)
        return out


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def store(persistence: MemoryPersistence) -> ItemStore:
    return ItemStore(persistence, key="test_checklist").load()


@pytest.fixture
def make_store(persistence: MemoryPersistence) -> Callable[..., ItemStore]:
    """Build a loaded store holding the given names, with optional statuses."""

    def _make(names: Iterable[str], statuses: Dict[str, Status] | None = None) -> ItemStore:
        s = ItemStore(persistence, key="test_checklist").load()
        s.add_names(names)
        for name, status in (statuses or {}).items():
            item = s.find_by_name(name)
            assert item is not None
            s.set_status(item.item_id, status)
        return s

    return _make


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point checklist.storage at a throwaway SQLite file."""
    path = tmp_path / "checklist.sqlite3"
    monkeypatch.setattr(storage, "DB_PATH", str(path))
    return path


@pytest.fixture
def make_lookup() -> Callable[..., FakeLookup]:
    return FakeLookup
