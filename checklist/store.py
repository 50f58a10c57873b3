# checklist/store.py
import os
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Protocol, Sequence, Tuple

from . import storage
from .diff import diff_names
from .logger import get_logger
from .models import Item, Status, new_item_id, wiki_url

logger = get_logger(__name__)

STORAGE_KEY = os.getenv("STORAGE_KEY", "squish_master_check_v2")

# Fields a caller may change on an existing item. id and name are fixed.
MUTABLE_FIELDS = frozenset({"identified", "image", "extract", "status", "source"})


class Persistence(Protocol):
    def load(self, key: str) -> List[Item]: ...

    def save(self, key: str, items: Sequence[Item]) -> None: ...


class ItemStore:
    """
    Ordered, id-keyed collection of checklist items.

    Every mutation builds a new tuple, persists it, then publishes it, so
    readers only ever get a complete snapshot. Writers serialize on a lock;
    readers never block.
    """

    def __init__(self, persistence: Persistence = storage, key: str = STORAGE_KEY):
        self._persistence = persistence
        self._key = key
        self._write_lock = threading.RLock()
        self._snapshot: Tuple[Tuple[Item, ...], Dict[str, int]] = ((), {})

    def load(self) -> "ItemStore":
        items = self._persistence.load(self._key) or []
        with self._write_lock:
            self._publish(self._drop_duplicates(items))
        logger.info("Loaded %d checklist items.", len(self))
        return self

    # Reads

    def all(self) -> Tuple[Item, ...]:
        return self._snapshot[0]

    def __len__(self) -> int:
        return len(self._snapshot[0])

    def get(self, item_id: str) -> Item | None:
        items, index = self._snapshot
        pos = index.get(item_id)
        return items[pos] if pos is not None else None

    def find_by_name(self, name: str) -> Item | None:
        for it in self.all():
            if it.name == name:
                return it
        return None

    def names(self) -> List[str]:
        return [it.name for it in self.all()]

    # Writes

    def upsert_by_name(self, name: str) -> Tuple[Item, bool]:
        with self._write_lock:
            existing = self.find_by_name(name)
            if existing is not None:
                return existing, False
            item = self._new_item(name, self._index)
            self._commit(self._items + (item,))
        logger.debug("Created item %s (%s)", item.item_id, name)
        return item, True

    def add_names(self, names: Iterable[str]) -> List[Item]:
        """
        Append an untracked, unidentified item for each name not already
        present, in the given order. Persists once. Returns the created items.
        """
        with self._write_lock:
            new_names, _ = diff_names(self.names(), names)
            if not new_names:
                return []
            taken = dict(self._index)
            created: List[Item] = []
            for name in new_names:
                item = self._new_item(name, taken)
                taken[item.item_id] = -1
                created.append(item)
            self._commit(self._items + tuple(created))
        return created

    def update_by_id(self, item_id: str, **changes) -> Item | None:
        """
        Replace fields on one item. Returns the updated item, or None when
        no item has that id.
        """
        _check_fields(changes)
        with self._write_lock:
            pos = self._index.get(item_id)
            if pos is None:
                logger.debug("update_by_id: no item with id %s", item_id)
                return None
            updated = replace(self._items[pos], **changes)
            items = list(self._items)
            items[pos] = updated
            self._commit(tuple(items))
        return updated

    def update_many(self, item_ids: Iterable[str], **changes) -> List[Item]:
        """
        Apply the same changes to every listed item in one write. Unknown ids
        are skipped. Returns the updated items in store order.
        """
        _check_fields(changes)
        wanted = set(item_ids)
        with self._write_lock:
            items = list(self._items)
            updated: List[Item] = []
            for pos, it in enumerate(items):
                if it.item_id in wanted:
                    items[pos] = replace(it, **changes)
                    updated.append(items[pos])
            if updated:
                self._commit(tuple(items))
        return updated

    def merge_enrichment(self, records: Iterable[Item]) -> List[Item]:
        """
        Fold lookup results back in by id. Only identified/image/extract/source
        are taken from a record; status and name always stay as stored.
        image and extract are kept when the record has none, and an item
        never goes back to unidentified.
        """
        with self._write_lock:
            items = list(self._items)
            merged: List[Item] = []
            for rec in records:
                pos = self._index.get(rec.item_id)
                if pos is None:
                    logger.debug("merge_enrichment: ignoring unknown id %s", rec.item_id)
                    continue
                current = items[pos]
                items[pos] = replace(
                    current,
                    identified=current.identified or rec.identified,
                    image=rec.image if rec.image is not None else current.image,
                    extract=rec.extract if rec.extract is not None else current.extract,
                    source=rec.source if rec.source is not None else current.source,
                )
                merged.append(items[pos])
            if merged:
                self._commit(tuple(items))
        return merged

    def set_status(self, item_id: str, status: Status | str) -> Item | None:
        return self.update_by_id(item_id, status=Status(status))

    def set_image(self, item_id: str, url: str) -> Item | None:
        url = (url or "").strip()
        if not url:
            return self.get(item_id)
        return self.update_by_id(item_id, image=url)

    # Internals

    def _new_item(self, name: str, taken: Dict[str, int]) -> Item:
        item_id = new_item_id()
        while item_id in taken:
            item_id = new_item_id()
        return Item(item_id=item_id, name=name, source=wiki_url(name))

    def _commit(self, items: Tuple[Item, ...]) -> None:
        self._persistence.save(self._key, items)
        self._publish(items)

    def _publish(self, items: Sequence[Item]) -> None:
        items = tuple(items)
        index = {it.item_id: pos for pos, it in enumerate(items)}
        self._snapshot = (items, index)

    # Writers only; readers take self._snapshot once
    @property
    def _items(self) -> Tuple[Item, ...]:
        return self._snapshot[0]

    @property
    def _index(self) -> Dict[str, int]:
        return self._snapshot[1]

    @staticmethod
    def _drop_duplicates(items: Sequence[Item]) -> List[Item]:
        seen_ids: set[str] = set()
        seen_names: set[str] = set()
        out: List[Item] = []
        for it in items:
            if it.item_id in seen_ids or it.name in seen_names:
                logger.warning("Dropping duplicate stored item %s (%s)", it.item_id, it.name)
                continue
            seen_ids.add(it.item_id)
            seen_names.add(it.name)
            out.append(it)
        return out


def _check_fields(changes: Dict[str, object]) -> None:
    bad = set(changes) - MUTABLE_FIELDS
    if bad:
        raise ValueError(f"Cannot change item field(s): {', '.join(sorted(bad))}")
    if "status" in changes:
        changes["status"] = Status(changes["status"])
