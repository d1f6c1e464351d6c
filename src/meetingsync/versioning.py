"""
Content versioning for snapshots

A cheap, deterministic fingerprint of a data payload used to answer "did
the content actually change". Collections are sorted by entity id before
hashing so the same records in a different order fingerprint identically
on every device.

The hash is a 32-bit rolling polynomial (h = h*31 + byte, wrapped to a
signed 32-bit integer) rendered in base 36. It is NOT collision-resistant
and must stay this exact function: other devices compare against it.
"""

from typing import Any, Dict, List, Optional, Tuple
import json

from .models import COLLECTIONS

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _entity_sort_key(entity: Any) -> Tuple[str, bytes]:
    key: Any = ""
    if isinstance(entity, dict):
        key = entity.get("id")
        if key is None:
            key = entity.get("name", "")
    # Serialized content breaks ties between records sharing (or lacking) an id
    return str(key), serialize(entity)


def canonicalize(data: Optional[Dict[str, Any]]) -> Dict[str, List[Any]]:
    """
    Sort every typed collection by entity id.

    Categories without an id sort by name. Records with equal keys are
    ordered by their serialized content. The input is not modified.

    Args:
        data: Data payload with meetings/stakeholders/stakeholderCategories

    Returns:
        New payload containing only the three collections, each sorted
    """
    data = data or {}
    return {
        name: sorted(data.get(name) or [], key=_entity_sort_key)
        for name in COLLECTIONS
    }


def _to_signed_32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return sign + "".join(reversed(digits))


def rolling_hash(payload: bytes) -> int:
    """
    32-bit rolling polynomial hash of a byte string.

    Examples:
        >>> rolling_hash(b"")
        0
        >>> rolling_hash(b"a")
        97
    """
    h = 0
    for byte in payload:
        h = _to_signed_32(h * 31 + byte)
    return h


def serialize(data: Any) -> bytes:
    """Deterministic JSON encoding (sorted keys, compact separators, UTF-8)"""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def checksum(data: Optional[Dict[str, Any]]) -> str:
    """
    Order-independent fingerprint of a data payload.

    Args:
        data: Data payload (None hashes to "empty")

    Returns:
        Base-36 string of the signed 32-bit rolling hash

    Examples:
        >>> a = {"meetings": [{"id": "1"}, {"id": "2"}]}
        >>> b = {"meetings": [{"id": "2"}, {"id": "1"}]}
        >>> checksum(a) == checksum(b)
        True
    """
    if data is None:
        return "empty"
    return _to_base36(rolling_hash(serialize(canonicalize(data))))


def version(data: Optional[Dict[str, Any]]) -> str:
    """Data version stored in snapshot metadata: checksum of the canonical form"""
    if data is None:
        return "empty"
    return checksum(canonicalize(data))
