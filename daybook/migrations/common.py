from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

from daybook.utils.dates import parse_iso


class MigrationResult(NamedTuple):
    records: List[Any]
    version: int          # version found in the stored payload (0 = unversioned)
    upgraded: bool        # True when the store should be rewritten at the current version


def as_record(x: Any) -> Dict[str, Any]:
    return x if isinstance(x, dict) else {}


def str_or(o: Mapping[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    v = o.get(key)
    return v if isinstance(v, str) else default


def is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def number_or(o: Mapping[str, Any], key: str, default: float = 0) -> float:
    v = o.get(key)
    return v if is_number(v) else default


def time_or_none(o: Mapping[str, Any], key: str) -> Optional[datetime]:
    return parse_iso(o.get(key))


def str_list(v: Any) -> Optional[List[str]]:
    if not isinstance(v, list):
        return None
    return [x for x in v if isinstance(x, str)]


def payload_version(raw: Any) -> int:
    v = as_record(raw).get("version")
    return int(v) if is_number(v) and float(v).is_integer() else 0


def unwrap_collection(raw: Any, key: str) -> List[Any]:
    """Find the record array in any of the stored shapes: bare list, {key: [...]}, {"data": ...}."""
    data = raw
    if isinstance(raw, dict) and isinstance(raw.get("data"), (dict, list)):
        data = raw["data"]
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    return []
