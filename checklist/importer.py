# checklist/importer.py
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from .logger import get_logger
from .models import Item
from .store import ItemStore

logger = get_logger(__name__)


class ImportFailed(Exception):
    """The master name list could not be fetched; nothing was changed."""


@dataclass(frozen=True)
class ImportResult:
    total: int
    created: List[Item] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return len(self.created)

    @property
    def message(self) -> str:
        return (
            f"Master list loaded. {self.total} total names, "
            f"{self.new_count} new items added."
        )


def import_master_list(
    store: ItemStore, fetch_names: Callable[[], Sequence[str]]
) -> ImportResult:
    """
    Fetch the canonical name list and append an unidentified, untracked item
    for every name the store does not have yet. Existing items are left alone.
    """
    try:
        names = list(fetch_names())
    except Exception as e:
        logger.error("Failed to load master list: %s", e)
        raise ImportFailed(str(e)) from e

    created = store.add_names(names)
    result = ImportResult(total=len(names), created=created)
    logger.info(
        "Master list import: %d names returned, %d new, %d items in checklist.",
        result.total,
        result.new_count,
        len(store),
    )
    return result
