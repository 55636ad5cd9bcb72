"""Field-level audit of prospect changes using deepdiff."""

import logging
import re
from typing import Any, Dict, List

from deepdiff import DeepDiff

logger = logging.getLogger(__name__)

IGNORED_PATHS = ["root['last_interaction']"]


def describe_changes(before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
    """Human-readable list of changed fields between two prospect documents.

    Args:
        before: Document before the dispatch
        after: Document after the dispatch

    Returns:
        Lines like "conversation_state: 'greeting' -> 'qualification'"
    """
    diff = DeepDiff(before, after, exclude_paths=IGNORED_PATHS, ignore_order=True)
    lines = []

    for path, change in diff.get("values_changed", {}).items():
        lines.append(f"{_field(path)}: {change['old_value']!r} -> {change['new_value']!r}")

    for path, change in diff.get("type_changes", {}).items():
        lines.append(f"{_field(path)}: {change['old_value']!r} -> {change['new_value']!r}")

    for path in diff.get("dictionary_item_added", []):
        lines.append(f"{_field(path)}: added")

    for path in diff.get("dictionary_item_removed", []):
        lines.append(f"{_field(path)}: removed")

    for path, value in diff.get("iterable_item_added", {}).items():
        lines.append(f"{_field(path)}: + {value!r}")

    for path, value in diff.get("iterable_item_removed", {}).items():
        lines.append(f"{_field(path)}: - {value!r}")

    return lines


def _field(path: str) -> str:
    """root['answers']['Q'] -> answers.Q"""
    return re.sub(r"\['([^']*)'\]", r".\1", path[len("root"):]).lstrip(".")


def log_changes(phone_number: str, before: Dict[str, Any], after: Dict[str, Any]):
    if not logger.isEnabledFor(logging.DEBUG):
        return
    for line in describe_changes(before, after):
        logger.debug(f"{phone_number} {line}")
