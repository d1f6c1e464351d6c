"""
Record-level merge of two data payloads

Meetings and stakeholders are merged by id: every id from either side
survives, and when both sides hold the same id the record with the strictly
newer comparison timestamp wins. Ties keep the local record, so merging is
deterministic and re-applying the same remote is a no-op.

Stakeholder categories are not merged: the local list passes through
unchanged. They are treated as a low-churn shared taxonomy.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple, Sequence
import json
import logging

from .models import parse_timestamp, normalize_data

logger = logging.getLogger(__name__)

# Timestamp fields consulted in order, per collection
TIMESTAMP_FIELDS = {
    "meetings": ("lastSaved", "updatedAt", "createdAt"),
    "stakeholders": ("updatedAt", "createdAt"),
}

MERGED_COLLECTIONS = tuple(TIMESTAMP_FIELDS)


def comparison_timestamp(record: Dict[str, Any], collection: str) -> Optional[datetime]:
    """
    Timestamp used to pick a winner for a record.

    Args:
        record: Meeting or stakeholder record
        collection: "meetings" or "stakeholders"

    Returns:
        First parseable timestamp among the collection's fields, or None
    """
    for field_name in TIMESTAMP_FIELDS.get(collection, ("updatedAt", "createdAt")):
        parsed = parse_timestamp(record.get(field_name))
        if parsed is not None:
            return parsed
    return None


def _is_newer(candidate: Dict[str, Any], current: Dict[str, Any], collection: str) -> bool:
    """True only when candidate's timestamp is strictly greater than current's"""
    candidate_ts = comparison_timestamp(candidate, collection)
    current_ts = comparison_timestamp(current, collection)
    if candidate_ts is None:
        return False
    if current_ts is None:
        return True
    return candidate_ts > current_ts


def _content_key(record: Any) -> str:
    return json.dumps(record, sort_keys=True, default=str)


@dataclass
class MergeStats:
    """Per-collection counts describing where merged records came from"""
    kept_local: Dict[str, int] = field(default_factory=dict)
    took_remote: Dict[str, int] = field(default_factory=dict)
    added_from_remote: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keptLocal": dict(self.kept_local),
            "tookRemote": dict(self.took_remote),
            "addedFromRemote": dict(self.added_from_remote),
        }


class MergeEngine:
    """
    Merges local and remote data without losing records.

    Example:
        engine = MergeEngine()
        merged = engine.merge(local_data, remote_data)
    """

    def merge(self, local: Optional[Dict[str, Any]], remote: Optional[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Merge two data payloads.

        Args:
            local: This device's data
            remote: Data downloaded from the backend

        Returns:
            Merged payload with meetings, stakeholders and stakeholderCategories
        """
        merged, _ = self.merge_with_stats(local, remote)
        return merged

    def merge_with_stats(
        self,
        local: Optional[Dict[str, Any]],
        remote: Optional[Dict[str, Any]],
    ) -> Tuple[Dict[str, List[Dict[str, Any]]], MergeStats]:
        """Merge and also report where each surviving record came from"""
        safe_local = normalize_data(local)
        safe_remote = normalize_data(remote)
        stats = MergeStats()

        merged: Dict[str, List[Dict[str, Any]]] = {}
        for collection in MERGED_COLLECTIONS:
            merged[collection] = self._merge_collection(
                collection,
                safe_local[collection],
                safe_remote[collection],
                stats,
            )

        # Local categories win outright
        merged["stakeholderCategories"] = list(safe_local["stakeholderCategories"])

        logger.info(
            f"Merge complete: meetings {len(safe_local['meetings'])}+{len(safe_remote['meetings'])}"
            f" -> {len(merged['meetings'])}, stakeholders {len(safe_local['stakeholders'])}"
            f"+{len(safe_remote['stakeholders'])} -> {len(merged['stakeholders'])}"
        )
        return merged, stats

    def _merge_collection(
        self,
        collection: str,
        local_records: Sequence[Dict[str, Any]],
        remote_records: Sequence[Dict[str, Any]],
        stats: MergeStats,
    ) -> List[Dict[str, Any]]:
        winners: Dict[Any, Dict[str, Any]] = {}
        origin: Dict[Any, str] = {}
        order: List[Any] = []

        # Records without an id cannot be matched; keep one copy of each
        anonymous: Dict[str, Dict[str, Any]] = {}

        for side, records in (("local", local_records), ("remote", remote_records)):
            for record in records:
                if not isinstance(record, dict):
                    continue
                record_id = record.get("id")
                if record_id is None:
                    anonymous.setdefault(_content_key(record), record)
                    continue

                if record_id not in winners:
                    winners[record_id] = record
                    origin[record_id] = side
                    order.append(record_id)
                elif _is_newer(record, winners[record_id], collection):
                    winners[record_id] = record
                    if origin[record_id] == "local" and side == "remote":
                        origin[record_id] = "replaced"

        kept_local = sum(1 for i in order if origin[i] == "local")
        took_remote = sum(1 for i in order if origin[i] == "replaced")
        added = sum(1 for i in order if origin[i] == "remote")
        stats.kept_local[collection] = kept_local
        stats.took_remote[collection] = took_remote
        stats.added_from_remote[collection] = added

        logger.debug(
            f"Merged {collection}: kept {kept_local} local, took {took_remote} newer remote, "
            f"added {added} remote-only"
        )
        return [winners[i] for i in order] + list(anonymous.values())
