# checklist/selection.py
import threading
from typing import FrozenSet, Iterable, List, Sequence

from .logger import get_logger
from .models import Item, Status
from .store import ItemStore

logger = get_logger(__name__)


def filter_items(items: Sequence[Item], query: str | None) -> List[Item]:
    """Items whose name contains query, ignoring case. Empty query keeps all."""
    if not query:
        return list(items)
    needle = query.lower()
    return [it for it in items if needle in it.name.lower()]


class Selection:
    """
    Set of selected item ids, kept apart from whatever filter is showing.
    """

    def __init__(self, store: ItemStore):
        self._store = store
        self._lock = threading.Lock()
        self._selected: FrozenSet[str] = frozenset()

    @property
    def selected(self) -> FrozenSet[str]:
        return self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def toggle(self, item_id: str, selected: bool) -> None:
        with self._lock:
            if selected:
                self._selected = self._selected | {item_id}
            else:
                self._selected = self._selected - {item_id}

    def select_all(self, visible_ids: Iterable[str]) -> None:
        # Replaces the selection, it does not add to it
        with self._lock:
            self._selected = frozenset(visible_ids)

    def clear(self) -> None:
        with self._lock:
            self._selected = frozenset()

    def apply_to_selected(self, status: Status | str) -> List[Item]:
        """
        Set status on every selected item in a single store write, then clear
        the selection. Returns the updated items.
        """
        status = Status(status)
        with self._lock:
            ids = self._selected
            updated = self._store.update_many(ids, status=status) if ids else []
            self._selected = frozenset()
        logger.info("Marked %d selected items as %s.", len(updated), status.value)
        return updated
