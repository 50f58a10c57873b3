import argparse
import mimetypes
from concurrent.futures import ThreadPoolExecutor
from typing import List

from checklist.enrichment import EnrichmentEngine, EnrichmentProgress, EnrichmentState
from checklist.exporter import DEFAULT_EXPORT_NAME, export_json
from checklist.identification import IdentificationBridge
from checklist.importer import ImportFailed, import_master_list
from checklist.logger import get_logger
from checklist.models import Status
from checklist.report_html import build_html_checklist, build_plaintext_summary
from checklist.selection import Selection, filter_items
from checklist.store import ItemStore
import sources
from sources.gemini import RecognitionError

logger = get_logger(__name__)

STATUS_CHOICES = [s.value for s in Status]


def _print_progress(progress: EnrichmentProgress) -> None:
    if progress.state is EnrichmentState.DISPATCHING and progress.batch_index is not None:
        logger.debug("[%3d%%] %s", progress.percent, progress.message)
    elif progress.message:
        logger.info("[%3d%%] %s", progress.percent, progress.message)


def cmd_load(store: ItemStore, args: argparse.Namespace) -> int:
    logger.info("Fetching master list...")
    try:
        result = import_master_list(store, sources.NAME_LIST)
    except ImportFailed as e:
        print(f"Failed to load master list: {e}")
        return 1
    print(result.message)
    return 0


def cmd_enrich(store: ItemStore, args: argparse.Namespace) -> int:
    engine = EnrichmentEngine(
        store, sources.LOOKUP, reset_delay=0, on_progress=_print_progress
    )
    # Worker thread so Ctrl-C can ask the run to stop between batches
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(engine.enrich_all)
        try:
            report = future.result()
        except KeyboardInterrupt:
            engine.cancel()
            report = future.result()

    print(report.message)
    for failure in report.failures:
        print(f"  {failure}")
    return 0 if report.state is not EnrichmentState.CANCELLED else 1


def cmd_list(store: ItemStore, args: argparse.Namespace) -> int:
    items = filter_items(store.all(), args.filter)
    if args.status:
        items = [it for it in items if it.status.value == args.status]
    print(build_plaintext_summary(items))
    return 0


def cmd_mark(store: ItemStore, args: argparse.Namespace) -> int:
    item = store.find_by_name(args.name)
    if item is None:
        print(f"No item named {args.name!r}.")
        return 1
    store.set_status(item.item_id, args.status)
    print(f"{item.name}: {args.status}")
    return 0


def cmd_mark_visible(store: ItemStore, args: argparse.Namespace) -> int:
    visible = filter_items(store.all(), args.filter)
    selection = Selection(store)
    selection.select_all(it.item_id for it in visible)
    updated = selection.apply_to_selected(args.status)
    print(f"Marked {len(updated)} items as {args.status}.")
    return 0


def cmd_set_image(store: ItemStore, args: argparse.Namespace) -> int:
    item = store.find_by_name(args.name)
    if item is None:
        print(f"No item named {args.name!r}.")
        return 1
    store.set_image(item.item_id, args.url)
    print(f"{item.name}: image set.")
    return 0


def cmd_identify(store: ItemStore, args: argparse.Namespace) -> int:
    mime_type = mimetypes.guess_type(args.image)[0] or "image/jpeg"
    with open(args.image, "rb") as f:
        image_bytes = f.read()

    bridge = IdentificationBridge(store, sources.RECOGNIZER)
    try:
        match = bridge.identify_photo(image_bytes, mime_type)
    except RecognitionError as e:
        print(f"Identification failed: {e}")
        return 1

    if match is None:
        print("Could not identify a checklist item in this photo.")
        return 1
    print(f"Identified: {match.item.name} (marked as there)")
    return 0


def cmd_export(store: ItemStore, args: argparse.Namespace) -> int:
    items = store.all()
    if args.html:
        with open(args.path, "w", encoding="utf-8") as f:
            f.write(build_html_checklist(items))
        logger.info("Wrote HTML checklist with %d items to %s", len(items), args.path)
    else:
        export_json(items, args.path)
    print(f"Exported {len(items)} items to {args.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="squish-checklist",
        description="Squishmallows collection checklist",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("load", help="Import new names from the wiki master list")
    p.set_defaults(func=cmd_load)

    p = sub.add_parser("enrich", help="Look up images and summaries for unidentified items")
    p.set_defaults(func=cmd_enrich)

    p = sub.add_parser("list", help="Show the checklist")
    p.add_argument("--filter", help="Only names containing this text")
    p.add_argument("--status", choices=STATUS_CHOICES)
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("mark", help="Set the status of one item")
    p.add_argument("name")
    p.add_argument("status", choices=STATUS_CHOICES)
    p.set_defaults(func=cmd_mark)

    p = sub.add_parser("mark-visible", help="Set the status of every item matching a filter")
    p.add_argument("status", choices=STATUS_CHOICES)
    p.add_argument("--filter", help="Only names containing this text")
    p.set_defaults(func=cmd_mark_visible)

    p = sub.add_parser("set-image", help="Set the image URL of one item")
    p.add_argument("name")
    p.add_argument("url")
    p.set_defaults(func=cmd_set_image)

    p = sub.add_parser("identify", help="Identify an item from a photo and mark it as there")
    p.add_argument("image", help="Path to a photo")
    p.set_defaults(func=cmd_identify)

    p = sub.add_parser("export", help="Write the checklist to a file")
    p.add_argument("path", nargs="?", default=DEFAULT_EXPORT_NAME)
    p.add_argument("--html", action="store_true", help="Printable HTML instead of JSON")
    p.set_defaults(func=cmd_export)

    return parser


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    store = ItemStore().load()
    return args.func(store, args)


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as e:
        logger.exception("Fatal checklist error: %s", e)
        raise SystemExit(2)
