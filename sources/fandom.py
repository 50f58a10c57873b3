# sources/fandom.py
import os
from dataclasses import replace
from typing import Any, Dict, List, Sequence

import requests
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from checklist.logger import get_logger
from checklist.models import WIKI_BASE_URL, Item, wiki_url

logger = get_logger(__name__)

API_BASE = os.getenv("FANDOM_API_BASE", f"{WIKI_BASE_URL}/api.php")
MASTER_LIST_PAGE = os.getenv("FANDOM_MASTER_LIST_PAGE", "Master_List")
THUMB_SIZE = int(os.getenv("FANDOM_THUMB_SIZE", "400"))
MAX_ATTEMPTS = int(os.getenv("FANDOM_MAX_ATTEMPTS", "3"))
USER_AGENT = os.getenv(
    "FANDOM_USER_AGENT",
    "squish-checklist/1.0 (personal collection checklist)",
)

SESSION = requests.Session()
SESSION.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})


class FetchError(Exception):
    """Wiki API unreachable, non-200, or returned something that is not JSON."""


def _get_json(params: Dict[str, Any]) -> Dict[str, Any]:
    r = SESSION.get(API_BASE, params=params, timeout=30)
    if r.status_code != 200:
        logger.warning("Wiki API returned status %s for %s", r.status_code, params.get("action"))
        raise FetchError(f"Bad status code {r.status_code}")
    try:
        data = r.json()
    except ValueError as e:
        raise FetchError(f"Invalid JSON from wiki API: {e}") from e
    if not isinstance(data, dict):
        raise FetchError("Unexpected wiki API payload")
    if "error" in data:
        info = data["error"].get("info") if isinstance(data["error"], dict) else data["error"]
        raise FetchError(f"Wiki API error: {info}")
    return data


@retry(
    wait=wait_exponential_jitter(initial=1, max=30),
    stop=stop_after_attempt(MAX_ATTEMPTS),
    retry=retry_if_exception_type((requests.RequestException, FetchError)),
)
def _get_json_with_retry(params: Dict[str, Any]) -> Dict[str, Any]:
    return _get_json(params)


def fetch_master_list() -> List[str]:
    """
    Return every character name linked from the wiki's master list page, in
    page order. Links into other namespaces (File:, Category:, ...) are dropped.
    """
    params = {
        "action": "parse",
        "page": MASTER_LIST_PAGE,
        "prop": "links",
        "format": "json",
        "formatversion": "2",
    }
    logger.info("Fetching master list from %s (page %s)", API_BASE, MASTER_LIST_PAGE)

    try:
        data = _get_json_with_retry(params)
    except RetryError as e:
        cause = e.last_attempt.exception()
        logger.error("Master list fetch failed after %d attempts: %s", MAX_ATTEMPTS, cause)
        raise FetchError(f"Failed to fetch master list: {cause}") from cause

    links = (data.get("parse") or {}).get("links") or []
    names: List[str] = []
    for link in links:
        if not isinstance(link, dict):
            continue
        title = link.get("title") or link.get("*") or ""
        if title and ":" not in title:
            names.append(title)

    logger.info("Master list: %d names", len(names))
    return names


def fetch_item_details(items: Sequence[Item]) -> List[Item]:
    """
    Look up one batch of items on the wiki and return every input item,
    enriched where a page with exactly the item's name exists.

    Single attempt; raises FetchError on any transport or API failure so the
    caller can leave the batch as it was.
    """
    if not items:
        return []

    params = {
        "action": "query",
        "titles": "|".join(it.name for it in items),
        "prop": "pageimages|extracts",
        "pithumbsize": str(THUMB_SIZE),
        "exintro": "1",
        "explaintext": "1",
        "exlimit": "max",
        "format": "json",
        "formatversion": "2",
    }

    try:
        data = _get_json(params)
    except requests.RequestException as e:
        logger.warning("Batch lookup failed for %d titles: %s", len(items), e)
        raise FetchError(f"Batch lookup failed: {e}") from e

    pages = (data.get("query") or {}).get("pages") or []
    found: Dict[str, Dict[str, Any]] = {}
    for page in pages:
        if not isinstance(page, dict):
            continue
        if page.get("missing") or page.get("invalid"):
            continue
        title = page.get("title")
        if title:
            found[title] = page

    out: List[Item] = []
    for it in items:
        page = found.get(it.name)
        if page is None:
            out.append(it)
            continue
        thumb = (page.get("thumbnail") or {}).get("source")
        out.append(
            replace(
                it,
                identified=True,
                image=thumb or it.image,
                extract=page.get("extract") or it.extract,
                source=wiki_url(page["title"]),
            )
        )

    matched = sum(1 for it in items if it.name in found)
    logger.debug("Batch lookup: %d/%d titles matched a wiki page", matched, len(items))
    return out
