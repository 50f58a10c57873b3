import os
from collections import Counter
from pathlib import Path
from typing import Dict, Sequence
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import Item, Status

# Resolve template directory relative to this file
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)

REPORT_THEME = os.getenv("REPORT_THEME", "dark").strip().lower()
if REPORT_THEME not in ("light", "dark"):
    REPORT_THEME = "dark"

THEMES = {
    "light": {
        "page_bg": "#f5f5f5",
        "card_bg": "#ffffff",
        "card_border": "#e0e0e0",
        "text_primary": "#202124",
        "text_secondary": "#555",
        "text_muted": "#999",
        "link_color": "#1a73e8",
        "placeholder_bg": "#e2e8f0",
        "placeholder_text": "#475569",
    },
    "dark": {
        "page_bg": "#121212",
        "card_bg": "#1E1E1E",
        "card_border": "#333333",
        "text_primary": "#F1F1F1",
        "text_secondary": "#BBBBBB",
        "text_muted": "#777777",
        "link_color": "#8AB4F8",
        "placeholder_bg": "#1e293b",
        "placeholder_text": "#94a3b8",
    },
}

STATUS_LABELS = {
    Status.THERE: ("There", "#10b981"),
    Status.ARRIVING: ("Arriving", "#f59e0b"),
    Status.NOT_THERE: ("Not There", "#ef4444"),
    Status.UNTRACKED: ("Untracked", "#64748b"),
}


def _escape_xml(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def placeholder_image(name: str, theme: str = REPORT_THEME) -> str:
    """
    Deterministic SVG data URI showing the item's name, used when no image
    is known yet.
    """
    colors = THEMES.get(theme, THEMES["dark"])
    svg = (
        "<svg xmlns='http://www.w3.org/2000/svg' width='100' height='100'>"
        f"<rect width='100%' height='100%' fill='{colors['placeholder_bg']}'/>"
        f"<text x='50%' y='50%' fill='{colors['placeholder_text']}' font-size='12' "
        "dominant-baseline='middle' text-anchor='middle' font-family='sans-serif'>"
        f"{_escape_xml(name or '')}</text></svg>"
    )
    return "data:image/svg+xml;utf8," + quote(svg, safe="")


def _truncate(text: str | None, n: int) -> str:
    if not text:
        return ""
    return text if len(text) <= n else text[: n - 1] + "…"


def _blurb(it: Item) -> str:
    blurb = _truncate(it.extract, 100)
    if blurb:
        return blurb
    return "No extract available." if it.identified else "Not yet identified."


def status_counts(items: Sequence[Item]) -> Dict[Status, int]:
    counts = Counter(it.status for it in items)
    return {s: counts.get(s, 0) for s in Status}


def _summary_text(items: Sequence[Item]) -> str:
    counts = status_counts(items)
    identified = sum(1 for it in items if it.identified)
    parts = " · ".join(f"{counts[s]} {STATUS_LABELS[s][0].lower()}" for s in Status)
    return f"{len(items)} items ({identified} identified)\n{parts}"


def build_plaintext_summary(items: Sequence[Item]) -> str:
    template = env.get_template("checklist.txt")

    item_data = [
        {
            "name": it.name,
            "status": STATUS_LABELS[it.status][0],
            "identified": it.identified,
        }
        for it in items
    ]

    ctx = {
        "summary_text": _summary_text(items),
        "items": item_data,
    }

    return template.render(**ctx)


def build_html_checklist(items: Sequence[Item], title: str = "Squishmallows Checklist") -> str:
    template = env.get_template("checklist.html")
    colors = THEMES[REPORT_THEME]

    item_data = [
        {
            "name": it.name,
            "image_url": it.image or placeholder_image(it.name),
            "blurb": _blurb(it),
            "status": STATUS_LABELS[it.status][0],
            "status_color": STATUS_LABELS[it.status][1],
            "source": it.source,
        }
        for it in items
    ]

    counts = status_counts(items)
    summary = [
        {"label": STATUS_LABELS[s][0], "color": STATUS_LABELS[s][1], "count": counts[s]}
        for s in Status
    ]

    ctx = {
        "title": title,
        "total": len(items),
        "identified": sum(1 for it in items if it.identified),
        "summary": summary,
        "items": item_data,
        "colors": colors,
    }

    return template.render(**ctx)
