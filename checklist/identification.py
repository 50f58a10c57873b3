# checklist/identification.py
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Sequence, Set

from .logger import get_logger
from .models import Item, Status
from .store import ItemStore

logger = get_logger(__name__)

HIGHLIGHT_SECONDS = float(os.getenv("HIGHLIGHT_SECONDS", "3"))

# What a recognizer answers when nothing matched
UNKNOWN = "Unknown"

Recognizer = Callable[[bytes, Sequence[str], str], str]


@dataclass(frozen=True)
class Identification:
    item: Item
    highlight_until: float


class IdentificationBridge:
    """
    Turns a name produced by an image recognizer into a status change.

    The name is untrusted: only an exact, case-sensitive match against the
    current checklist names does anything. A match is marked 'there' and
    stays highlighted for HIGHLIGHT_SECONDS.
    """

    def __init__(
        self,
        store: ItemStore,
        recognizer: Recognizer | None = None,
        highlight_seconds: float = HIGHLIGHT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._recognizer = recognizer
        self.highlight_seconds = highlight_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._highlights: Dict[str, float] = {}

    def identify_photo(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> Identification | None:
        """
        Run the recognizer over a photo and resolve its answer.
        Recognizer errors propagate untouched; the store is not modified then.
        """
        if self._recognizer is None:
            raise RuntimeError("No recognizer configured")
        name = self._recognizer(image_bytes, self._store.names(), mime_type)
        return self.resolve_identification(name)

    def resolve_identification(self, name: str | None) -> Identification | None:
        if not name or name == UNKNOWN:
            logger.info("Could not identify the item in the photo.")
            return None

        item = self._store.find_by_name(name)
        if item is None:
            logger.info("Recognized name %r is not on the checklist.", name)
            return None

        updated = self._store.set_status(item.item_id, Status.THERE)
        if updated is None:
            return None

        now = self._clock()
        until = now + self.highlight_seconds
        with self._lock:
            self._prune(now)
            self._highlights[updated.item_id] = until
        logger.info("Identified %s; marked as there.", updated.name)
        return Identification(item=updated, highlight_until=until)

    def highlighted_ids(self) -> Set[str]:
        now = self._clock()
        with self._lock:
            self._prune(now)
            return set(self._highlights)

    def _prune(self, now: float) -> None:
        # caller holds self._lock
        self._highlights = {
            iid: until for iid, until in self._highlights.items() if until > now
        }
