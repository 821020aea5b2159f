from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional


def split_lines(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return str(text).split("\n")


def _changes(before: List[str], after: List[str]) -> List[Dict[str, Any]]:
    matcher = SequenceMatcher(a=before, b=after, autojunk=False)
    changes: List[Dict[str, Any]] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        changes.append({"op": tag, "before": [i1, i2], "after": [j1, j2]})
    return changes


def make_diff(previous: Optional[str], next_text: Optional[str]) -> Dict[str, Any]:
    """Line diff record stored on a version.

    ``before``/``after`` are the raw line lists compared by position. ``changes``
    holds aligned hunks so viewers can show real insertions and deletions.
    """
    before = split_lines(previous)
    after = split_lines(next_text)
    changes = _changes(before, after)
    added = sum(change["after"][1] - change["after"][0] for change in changes)
    removed = sum(change["before"][1] - change["before"][0] for change in changes)
    return {
        "before": before,
        "after": after,
        "changes": changes,
        "stats": {"added": added, "removed": removed},
    }
