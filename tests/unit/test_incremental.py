"""Tests for sync windows and deletion detection."""
from datetime import date

from lifelog.sync.incremental import date_range, diff_ids, sync_window

FLOOR = date(2008, 2, 7)


class TestSyncWindow:
    def test_first_import_starts_at_floor(self):
        assert sync_window(None, 7, FLOOR, date(2024, 1, 20)) == (FLOOR, date(2024, 1, 20))

    def test_reaches_back_overlap_days(self):
        start, end = sync_window(date(2024, 1, 10), 7, FLOOR, date(2024, 1, 20))
        assert start == date(2024, 1, 3)
        assert end == date(2024, 1, 20)

    def test_never_before_floor(self):
        start, _ = sync_window(date(2008, 2, 9), 7, FLOOR, date(2024, 1, 20))
        assert start == FLOOR

    def test_start_never_after_today(self):
        # stored data newer than today (clock skew) still yields a valid range
        start, end = sync_window(date(2024, 2, 1), 0, FLOOR, date(2024, 1, 20))
        assert start == end == date(2024, 1, 20)


class TestDateRange:
    def test_inclusive(self):
        days = date_range(date(2024, 1, 30), date(2024, 2, 2))
        assert days == [date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1), date(2024, 2, 2)]

    def test_single_day(self):
        assert date_range(date(2024, 1, 1), date(2024, 1, 1)) == [date(2024, 1, 1)]

    def test_reversed_range_is_empty(self):
        assert date_range(date(2024, 1, 2), date(2024, 1, 1)) == []


class TestDiffIds:
    def test_splits_deleted_retained_new(self):
        diff = diff_ids({1, 2, 3, 4}, {2, 3, 5})
        assert diff.deleted == {1, 4}
        assert diff.retained == {2, 3}
        assert diff.new == {5}

    def test_accepts_any_iterables(self):
        diff = diff_ids(["a", "b"], (x for x in ["b"]))
        assert diff.deleted == {"a"}
        assert diff.retained == {"b"}
        assert diff.new == set()

    def test_empty_fetch_deletes_everything(self):
        assert diff_ids({"a", "b"}, []).deleted == {"a", "b"}
