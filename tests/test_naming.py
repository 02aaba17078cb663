import locale
import unittest
from datetime import date, datetime, timedelta

from src.botm.naming import PlaylistTarget, attributed_month, playlist_target


class TestAttributedMonth(unittest.TestCase):
    def test_early_days_belong_to_previous_month(self):
        d = date(2023, 1, 1)
        while d < date(2026, 1, 1):
            if d.day < 15:
                expected_year = d.year - 1 if d.month == 1 else d.year
                expected_month = 12 if d.month == 1 else d.month - 1
                self.assertEqual(attributed_month(d), date(expected_year, expected_month, 1), d)
            d += timedelta(days=1)

    def test_late_days_belong_to_current_month(self):
        d = date(2023, 1, 1)
        while d < date(2026, 1, 1):
            if d.day >= 15:
                self.assertEqual(attributed_month(d), date(d.year, d.month, 1), d)
            d += timedelta(days=1)

    def test_cutoff_boundary(self):
        self.assertEqual(attributed_month(date(2024, 7, 14)), date(2024, 6, 1))
        self.assertEqual(attributed_month(date(2024, 7, 15)), date(2024, 7, 1))

    def test_march_on_leap_year(self):
        self.assertEqual(attributed_month(date(2024, 3, 1)), date(2024, 2, 1))


class TestPlaylistTarget(unittest.TestCase):
    def test_before_cutoff(self):
        target = playlist_target(datetime(2024, 3, 10, 8, 30))
        self.assertEqual(target.name, "2024-02 (Feb) BOTM")
        self.assertEqual(
            target.description,
            "Bangers of the month for February 2024, (generated on 2024-03-10)",
        )

    def test_after_cutoff(self):
        target = playlist_target(datetime(2024, 3, 20))
        self.assertEqual(target.name, "2024-03 (Mar) BOTM")
        self.assertEqual(
            target.description,
            "Bangers of the month for March 2024, (generated on 2024-03-20)",
        )

    def test_january_rolls_back_a_year(self):
        target = playlist_target(datetime(2024, 1, 5))
        self.assertEqual(target.name, "2023-12 (Dec) BOTM")
        self.assertTrue(target.description.startswith("Bangers of the month for December 2023"))
        self.assertTrue(target.description.endswith("(generated on 2024-01-05)"))

    def test_every_month_name_is_english(self):
        expected = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
        for month, short in enumerate(expected, start=1):
            target = playlist_target(datetime(2024, month, 20))
            self.assertEqual(target.name, f"2024-{month:02d} ({short}) BOTM")

    def test_name_ignores_process_locale(self):
        previous = locale.setlocale(locale.LC_TIME)
        for candidate in ("fr_FR.UTF-8", "de_DE.UTF-8", "fr_FR", "de_DE"):
            try:
                locale.setlocale(locale.LC_TIME, candidate)
                break
            except locale.Error:
                continue
        else:
            self.skipTest("no non-English locale installed")
        try:
            target = playlist_target(datetime(2024, 3, 10))
        finally:
            locale.setlocale(locale.LC_TIME, previous)
        self.assertEqual(target.name, "2024-02 (Feb) BOTM")
        self.assertTrue(target.description.startswith("Bangers of the month for February 2024"))

    def test_defaults_to_now(self):
        self.assertIsInstance(playlist_target(), PlaylistTarget)


if __name__ == "__main__":
    unittest.main(verbosity=2)
