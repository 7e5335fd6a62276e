"""
Snapshot diffing for the audit viewer.

Pure functions — no DB access. Snapshots are the JSON-shaped dicts written by
ledger.snapshot(), so values are str / int / float / bool / None or nested
dicts and lists.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class FieldChange:
    field: str
    old: Any
    new: Any
    changed: bool


def diff_snapshots(
    old: Optional[dict[str, Any]], new: Optional[dict[str, Any]]
) -> list[FieldChange]:
    """
    Compare two snapshots field by field.

    Returns one entry per key in the union of both snapshots: old's keys in
    their original order, then keys that only exist in new. A key missing on
    one side is reported as None on that side.
    """
    old = old or {}
    new = new or {}
    keys = list(old)
    keys.extend(k for k in new if k not in old)
    return [
        FieldChange(
            field=key,
            old=old.get(key),
            new=new.get(key),
            changed=(key in old) != (key in new) or not deep_equal(old.get(key), new.get(key)),
        )
        for key in keys
    ]


def changed_fields(old: Optional[dict], new: Optional[dict]) -> list[str]:
    return [c.field for c in diff_snapshots(old, new) if c.changed]


def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality over JSON values.

    Unlike ==, booleans never equal numbers (True vs 1) and dict key order
    is irrelevant while list order matters.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b
