"""Unit Tests for MergeEngine

Tests: id union, newest-wins, tie handling, idempotence, categories,
records without ids
"""
import pytest


def _ids(records):
    return [r["id"] for r in records]


class TestComparisonTimestamp:
    """Tests for the timestamp used to pick a winner."""

    def test_meeting_field_priority(self):
        """Meetings prefer lastSaved, then updatedAt, then createdAt."""
        from meetingsync.merge import comparison_timestamp

        record = {
            "lastSaved": "2025-03-01T00:00:00Z",
            "updatedAt": "2025-02-01T00:00:00Z",
            "createdAt": "2025-01-01T00:00:00Z",
        }
        assert comparison_timestamp(record, "meetings").month == 3
        assert comparison_timestamp({"createdAt": "2025-01-01T00:00:00Z"}, "meetings").month == 1

    def test_stakeholders_ignore_last_saved(self):
        """Stakeholders use updatedAt, then createdAt."""
        from meetingsync.merge import comparison_timestamp

        record = {"lastSaved": "2025-03-01T00:00:00Z", "updatedAt": "2025-02-01T00:00:00Z"}
        assert comparison_timestamp(record, "stakeholders").month == 2

    def test_missing_timestamps(self):
        """No usable timestamp yields None."""
        from meetingsync.merge import comparison_timestamp

        assert comparison_timestamp({"id": "x", "updatedAt": "not a date"}, "stakeholders") is None


class TestMergeEngine:
    """Tests for merge()."""

    def test_union_of_ids(self):
        """Every id from either side survives exactly once."""
        from meetingsync.merge import MergeEngine

        local = {"meetings": [{"id": "m1"}, {"id": "m2"}], "stakeholders": [{"id": "s1"}]}
        remote = {"meetings": [{"id": "m2"}, {"id": "m3"}], "stakeholders": [{"id": "s2"}]}

        merged = MergeEngine().merge(local, remote)

        assert _ids(merged["meetings"]) == ["m1", "m2", "m3"]
        assert _ids(merged["stakeholders"]) == ["s1", "s2"]

    def test_newer_remote_wins(self):
        """A strictly newer remote record replaces the local one."""
        from meetingsync.merge import MergeEngine

        local = {"meetings": [{"id": "m1", "title": "old", "lastSaved": "2025-01-01T10:00:00Z"}]}
        remote = {"meetings": [{"id": "m1", "title": "new", "lastSaved": "2025-01-01T11:00:00Z"}]}

        merged = MergeEngine().merge(local, remote)
        assert merged["meetings"][0]["title"] == "new"

    def test_newer_local_wins(self):
        """A newer local record is kept over an older remote one."""
        from meetingsync.merge import MergeEngine

        local = {"stakeholders": [{"id": "s1", "name": "Local", "updatedAt": "2025-01-02T00:00:00Z"}]}
        remote = {"stakeholders": [{"id": "s1", "name": "Remote", "updatedAt": "2025-01-01T00:00:00Z"}]}

        merged = MergeEngine().merge(local, remote)
        assert merged["stakeholders"][0]["name"] == "Local"

    def test_tie_keeps_local(self):
        """Equal timestamps keep the local record."""
        from meetingsync.merge import MergeEngine

        ts = "2025-01-01T00:00:00Z"
        local = {"meetings": [{"id": "m1", "title": "local", "updatedAt": ts}]}
        remote = {"meetings": [{"id": "m1", "title": "remote", "updatedAt": ts}]}

        merged = MergeEngine().merge(local, remote)
        assert merged["meetings"][0]["title"] == "local"

    def test_timestamped_beats_untimestamped(self):
        """A record with a timestamp beats one without."""
        from meetingsync.merge import MergeEngine

        local = {"meetings": [{"id": "m1", "title": "local"}]}
        remote = {"meetings": [{"id": "m1", "title": "remote", "createdAt": "2025-01-01T00:00:00Z"}]}

        merged = MergeEngine().merge(local, remote)
        assert merged["meetings"][0]["title"] == "remote"

    def test_idempotent(self):
        """merge(merge(A, B), B) == merge(A, B)."""
        from meetingsync.merge import MergeEngine

        engine = MergeEngine()
        a = {
            "meetings": [
                {"id": "m1", "lastSaved": "2025-01-01T00:00:00Z"},
                {"id": "m2", "lastSaved": "2025-01-05T00:00:00Z"},
            ],
            "stakeholders": [{"id": "s1", "updatedAt": "2025-01-01T00:00:00Z"}],
            "stakeholderCategories": [{"key": "exec"}],
        }
        b = {
            "meetings": [
                {"id": "m2", "lastSaved": "2025-01-02T00:00:00Z"},
                {"id": "m3", "lastSaved": "2025-01-03T00:00:00Z"},
            ],
            "stakeholders": [{"id": "s1", "updatedAt": "2025-01-09T00:00:00Z"}],
            "stakeholderCategories": [{"key": "peer"}],
        }

        once = engine.merge(a, b)
        assert engine.merge(once, b) == once

    def test_categories_pass_through_from_local(self):
        """Stakeholder categories are taken from local unchanged."""
        from meetingsync.merge import MergeEngine

        local = {"stakeholderCategories": [{"key": "exec"}]}
        remote = {"stakeholderCategories": [{"key": "peer"}, {"key": "exec"}]}

        merged = MergeEngine().merge(local, remote)
        assert merged["stakeholderCategories"] == [{"key": "exec"}]

    def test_records_without_id_deduplicated(self):
        """Id-less records are kept once per distinct content."""
        from meetingsync.merge import MergeEngine

        local = {"meetings": [{"title": "draft"}, {"id": "m1"}]}
        remote = {"meetings": [{"title": "draft"}, {"title": "other"}]}

        merged = MergeEngine().merge(local, remote)

        assert len(merged["meetings"]) == 3
        assert {"title": "draft"} in merged["meetings"]
        assert {"title": "other"} in merged["meetings"]

    def test_missing_inputs(self):
        """None on either side behaves like empty data."""
        from meetingsync.merge import MergeEngine

        merged = MergeEngine().merge(None, {"meetings": [{"id": "m1"}]})

        assert _ids(merged["meetings"]) == ["m1"]
        assert merged["stakeholders"] == []
        assert merged["stakeholderCategories"] == []

    def test_inputs_not_mutated(self):
        """Merging leaves both inputs untouched."""
        import copy
        from meetingsync.merge import MergeEngine

        local = {"meetings": [{"id": "m1", "lastSaved": "2025-01-01T00:00:00Z"}]}
        remote = {"meetings": [{"id": "m1", "lastSaved": "2025-01-02T00:00:00Z"}, {"id": "m2"}]}
        local_copy, remote_copy = copy.deepcopy(local), copy.deepcopy(remote)

        MergeEngine().merge(local, remote)

        assert local == local_copy
        assert remote == remote_copy

    def test_stats(self):
        """merge_with_stats reports where surviving records came from."""
        from meetingsync.merge import MergeEngine

        local = {"meetings": [
            {"id": "m1", "lastSaved": "2025-01-01T00:00:00Z"},
            {"id": "m2", "lastSaved": "2025-01-05T00:00:00Z"},
        ]}
        remote = {"meetings": [
            {"id": "m1", "lastSaved": "2025-01-02T00:00:00Z"},
            {"id": "m3"},
        ]}

        _, stats = MergeEngine().merge_with_stats(local, remote)

        assert stats.kept_local["meetings"] == 1
        assert stats.took_remote["meetings"] == 1
        assert stats.added_from_remote["meetings"] == 1
