# checklist/diff.py
from typing import Iterable, List, Tuple


def diff_names(
    existing: Iterable[str], incoming: Iterable[str]
) -> Tuple[List[str], List[str]]:
    """
    Split incoming names into those not seen before and those already present.
    - existing: names already on the checklist
    - incoming: names in the order the source returned them
    Matching is exact (case and whitespace sensitive). A name repeated in
    incoming is reported as new only once.
    Returns:
      (new_names, already_present) both in incoming order
    """
    seen = set(existing)
    new_names: List[str] = []
    present: List[str] = []

    for name in incoming:
        if name in seen:
            present.append(name)
            continue
        seen.add(name)
        new_names.append(name)

    return new_names, present
