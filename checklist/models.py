# checklist/models.py
import os
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict
from urllib.parse import quote

WIKI_BASE_URL = os.getenv(
    "WIKI_BASE_URL", "https://squishmallowsquad.fandom.com"
).rstrip("/")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class Status(str, Enum):
    THERE = "there"
    ARRIVING = "arriving"
    NOT_THERE = "notthere"
    UNTRACKED = "untracked"


@dataclass(frozen=True)
class Item:
    """
    One collectible on the checklist.
    item_id is the only key used for updates; the name is display only.
    image/extract stay None until something fills them in.
    """
    item_id: str
    name: str
    identified: bool = False
    image: str | None = None
    extract: str | None = None
    status: Status = Status.UNTRACKED
    source: str | None = None

    def __post_init__(self):
        if not self.item_id:
            raise ValueError("Item id must not be empty")
        # Status() raises ValueError for anything outside the closed set
        object.__setattr__(self, "status", Status(self.status))


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def new_item_id() -> str:
    """Millisecond timestamp plus a random suffix, both base36."""
    return _base36(int(time.time() * 1000)) + _base36(random.getrandbits(52))


def wiki_url(title: str) -> str:
    # Same escaping as a browser's encodeURIComponent
    path = quote(title, safe="!*'()")
    return f"{WIKI_BASE_URL}/wiki/{path}"


def item_to_dict(item: Item) -> Dict[str, Any]:
    return {
        "id": item.item_id,
        "name": item.name,
        "identified": item.identified,
        "image": item.image,
        "extract": item.extract,
        "status": item.status.value,
        "source": item.source,
    }


def item_from_dict(data: Dict[str, Any]) -> Item:
    """
    Build an Item from its JSON form. Raises KeyError/ValueError/TypeError
    on malformed input; callers decide how to treat that.
    """
    if not isinstance(data, dict):
        raise TypeError(f"Expected an object, got {type(data).__name__}")
    name = data["name"]
    if not isinstance(name, str):
        raise TypeError("Item name must be a string")
    identified = data.get("identified", False)
    if not isinstance(identified, bool):
        raise TypeError("Item identified flag must be a boolean")
    return Item(
        item_id=str(data["id"]),
        name=name,
        identified=identified,
        image=data.get("image"),
        extract=data.get("extract"),
        status=Status(data.get("status", Status.UNTRACKED.value)),
        source=data.get("source"),
    )
