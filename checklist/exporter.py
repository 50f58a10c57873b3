# checklist/exporter.py
import json
import os
from typing import Sequence

from .logger import get_logger
from .models import Item, item_to_dict

logger = get_logger(__name__)

DEFAULT_EXPORT_NAME = "squishmallows_checklist.json"


def export_json(items: Sequence[Item], path: str = DEFAULT_EXPORT_NAME) -> str:
    """
    Write the full checklist as indented JSON. Returns the path written.
    """
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([item_to_dict(it) for it in items], f, indent=2, ensure_ascii=False)
    logger.info("Exported %d items to %s", len(items), path)
    return path

