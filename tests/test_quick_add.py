import unittest
from datetime import datetime, timedelta, timezone

from daybook.quick_add import parse_quick_add

UTC = timezone.utc
NOW = datetime(2025, 6, 10, 12, 0, tzinfo=UTC)


class TestQuickAdd(unittest.TestCase):
    def test_relative_minutes(self) -> None:
        r = parse_quick_add("Call Sam in 30m", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Call Sam")
        self.assertEqual(r.due_at, NOW + timedelta(minutes=30))
        self.assertEqual(r.remind_at, r.due_at)

    def test_relative_hours_variants(self) -> None:
        for phrase in ("in 2h", "in 2 hr", "IN 2H"):
            with self.subTest(phrase=phrase):
                r = parse_quick_add(f"Stretch {phrase}", now=NOW, tz="UTC")
                self.assertEqual(r.title, "Stretch")
                self.assertEqual(r.due_at, NOW + timedelta(hours=2))

    def test_tomorrow_with_time(self) -> None:
        r = parse_quick_add("Dentist tomorrow 9:00", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Dentist")
        self.assertEqual(r.due_at, datetime(2025, 6, 11, 9, 0, tzinfo=UTC))
        self.assertEqual(r.remind_at, r.due_at)

    def test_today_without_time_is_start_of_day(self) -> None:
        r = parse_quick_add("Pay rent today", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Pay rent")
        self.assertEqual(r.due_at, datetime(2025, 6, 10, tzinfo=UTC))

    def test_next_week(self) -> None:
        r = parse_quick_add("Review draft next week 14:30", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Review draft")
        self.assertEqual(r.due_at, datetime(2025, 6, 17, 14, 30, tzinfo=UTC))

    def test_plain_time_uses_today(self) -> None:
        r = parse_quick_add("Standup 9:15", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Standup")
        self.assertEqual(r.due_at, datetime(2025, 6, 10, 9, 15, tzinfo=UTC))

    def test_time_in_local_zone(self) -> None:
        r = parse_quick_add("Lunch tomorrow 12:00", now=NOW, tz="+02:00")
        self.assertEqual(r.due_at, datetime(2025, 6, 11, 10, 0, tzinfo=UTC))

    def test_out_of_range_time_is_stripped_but_ignored(self) -> None:
        r = parse_quick_add("Odd 25:99 tomorrow", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Odd")
        self.assertEqual(r.due_at, datetime(2025, 6, 11, tzinfo=UTC))

    def test_offset_wins_over_day_words(self) -> None:
        r = parse_quick_add("Ping tomorrow in 10m", now=NOW, tz="UTC")
        self.assertEqual(r.due_at, NOW + timedelta(minutes=10))
        self.assertEqual(r.title, "Ping tomorrow")

    def test_only_phrases_returns_input_without_times(self) -> None:
        r = parse_quick_add("tomorrow", now=NOW, tz="UTC")
        self.assertEqual(r.title, "tomorrow")
        self.assertIsNone(r.due_at)
        self.assertIsNone(r.remind_at)

    def test_blank_input(self) -> None:
        r = parse_quick_add("   ", now=NOW, tz="UTC")
        self.assertEqual(r.title, "")
        self.assertIsNone(r.due_at)

    def test_day_word_inside_a_longer_word_anchors_but_stays_in_title(self) -> None:
        r = parse_quick_add("Buy todays paper", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Buy todays paper")
        self.assertEqual(r.due_at, datetime(2025, 6, 10, tzinfo=UTC))

        r = parse_quick_add("Call mum tomorrows 9:00", now=NOW, tz="UTC")
        self.assertEqual(r.title, "Call mum tomorrows")
        self.assertEqual(r.due_at, datetime(2025, 6, 11, 9, 0, tzinfo=UTC))


if __name__ == "__main__":
    unittest.main()
