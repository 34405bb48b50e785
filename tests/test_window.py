from datetime import datetime, timedelta, timezone

import pytest

from billing_collector.window import BillingWindow, billing_window, local_day_start


class TestDailyWindow:
    def test_bills_previous_local_day(self, reference: "datetime") -> "None":
        time_range = billing_window(reference, BillingWindow.DAILY)
        # 2023-01-14 00:00 Zurich is 2023-01-13 23:00 UTC
        assert time_range.start == datetime(2023, 1, 13, 23, 0, tzinfo=timezone.utc)
        assert time_range.end == datetime(2023, 1, 14, 23, 0, tzinfo=timezone.utc)

    def test_uses_local_date_not_utc_date(self) -> "None":
        # 23:30 UTC on the 14th is already the 15th in Zurich
        reference = datetime(2023, 1, 14, 23, 30, tzinfo=timezone.utc)
        time_range = billing_window(reference, BillingWindow.DAILY)
        assert time_range.start == datetime(2023, 1, 13, 23, 0, tzinfo=timezone.utc)

    def test_summer_time_offset(self) -> "None":
        reference = datetime(2023, 7, 10, 12, 0, tzinfo=timezone.utc)
        time_range = billing_window(reference, BillingWindow.DAILY)
        assert time_range.start == datetime(2023, 7, 8, 22, 0, tzinfo=timezone.utc)

    def test_is_exactly_one_day_across_dst_change(self) -> "None":
        # the local day of 2023-03-26 only has 23 hours
        reference = datetime(2023, 3, 27, 8, 0, tzinfo=timezone.utc)
        time_range = billing_window(reference, BillingWindow.DAILY)
        assert time_range.end - time_range.start == timedelta(days=1)


class TestHourlyWindow:
    def test_bills_current_local_hour(self, reference: "datetime") -> "None":
        time_range = billing_window(reference, BillingWindow.HOURLY)
        assert time_range.start == datetime(2023, 1, 15, 9, 0, tzinfo=timezone.utc)
        assert time_range.end == datetime(2023, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert time_range.end - time_range.start == timedelta(hours=1)

    def test_result_is_utc(self, reference: "datetime") -> "None":
        time_range = billing_window(reference, BillingWindow.HOURLY)
        assert time_range.start.utcoffset() == timedelta(0)


class TestReferenceInstant:
    def test_naive_reference_is_rejected(self) -> "None":
        with pytest.raises(ValueError):
            billing_window(datetime(2023, 1, 15, 10, 0), BillingWindow.DAILY)

    def test_local_day_start(self, reference: "datetime") -> "None":
        start = local_day_start(reference)
        assert start.isoformat() == "2023-01-15T00:00:00+01:00"
        assert local_day_start(reference, days_back=2).day == 13
