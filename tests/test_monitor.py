import unittest
from datetime import datetime, timezone

from showtime_monitor.bot.channel import InboundMessage
from showtime_monitor.catalog.client import CatalogClient
from showtime_monitor.catalog.models import CatalogLocation, CatalogShowtime, CatalogTitle
from showtime_monitor.config import AppConfig
from showtime_monitor.errors import CatalogError, MessagingError, RateLimitedError
from showtime_monitor.monitor import ShowtimeMonitor
from showtime_monitor.store.database import ShowtimeDatabase

NOW = datetime(2025, 10, 17, 12, 0, tzinfo=timezone.utc)

LINCOLN = CatalogLocation(id=610, name="AMC Lincoln Square 13", slug="amc-lincoln-square-13")
TRON = CatalogTitle(id=101, name="Tron: Ares", slug="tron-ares")
MINIONS = CatalogTitle(id=102, name="Minions", slug="minions")
AVATAR = CatalogTitle(id=103, name="Avatar: Fire and Ash", slug="avatar-fire-and-ash")


def _showtime(showtime_id: int, title: CatalogTitle, utc: datetime, local: str) -> CatalogShowtime:
    return CatalogShowtime(
        id=showtime_id,
        title_id=title.id,
        location_id=LINCOLN.id,
        start_utc=utc,
        start_local=local,
        auditorium=5,
        title_name=title.name,
    )


TRON_SHOWTIMES = [
    _showtime(3, TRON, datetime(2025, 10, 19, 1, 30, tzinfo=timezone.utc), "2025-10-18T21:30:00"),
    _showtime(1, TRON, datetime(2025, 10, 16, 23, 0, tzinfo=timezone.utc), "2025-10-16T19:00:00"),
    _showtime(2, TRON, datetime(2025, 10, 18, 23, 0, tzinfo=timezone.utc), "2025-10-18T19:00:00"),
]


class FakeCatalog:
    """Returns canned data; showtimes are returned unfiltered."""

    ticket_url = staticmethod(CatalogClient.ticket_url)

    def __init__(self, titles=None, showtimes=None, location=LINCOLN, failures=None) -> None:
        self.titles = titles if titles is not None else [MINIONS, TRON]
        self.showtimes = showtimes if showtimes is not None else {TRON.id: TRON_SHOWTIMES}
        self.location = location
        self.failures = failures or {}
        self.snapshot_calls = 0

    def list_all_titles(self):
        self.snapshot_calls += 1
        if "titles" in self.failures:
            raise self.failures["titles"]
        return list(self.titles)

    def list_showtimes(self, title_id, location_id, now=None):
        if title_id in self.failures:
            raise self.failures[title_id]
        return list(self.showtimes.get(title_id, []))

    def get_location_by_slug(self, slug):
        return self.location

    def search_locations(self, name):
        return [self.location] if self.location else []


class FakeChannel:
    def __init__(self, inbound=None, fail_sends: bool = False) -> None:
        self.sent: list[str] = []
        self.inbound = inbound or []
        self.fail_sends = fail_sends
        self.polled_with: list[int] = []

    async def send_message(self, text: str) -> None:
        if self.fail_sends:
            raise MessagingError("Telegram send failed")
        self.sent.append(text)

    async def poll_inbound_since(self, cursor: int):
        self.polled_with.append(cursor)
        return [m for m in self.inbound if m.id > cursor]


class MonitorTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.db = ShowtimeDatabase.open(":memory:")
        self.config = AppConfig(
            theatre="AMC Lincoln Square 13",
            telegram_bot_token="123:token",
            telegram_chat_id="42",
            amc_api_key="key",
            database_path=":memory:",
            send_delay_seconds=0,
        )

    def tearDown(self) -> None:
        self.db.close()

    def monitor(self, catalog=None, channel=None) -> ShowtimeMonitor:
        self.catalog = catalog or FakeCatalog()
        self.channel = channel or FakeChannel()
        return ShowtimeMonitor(self.config, self.db, self.catalog, self.channel)


class EndToEndTests(MonitorTestCase):
    async def test_new_showtimes_announced_once(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        summary = await self.monitor().run(now=NOW)

        self.assertEqual(self.db.count_showtimes(), 2)
        self.assertEqual(self.db.count_unnotified_showtimes(), 0)
        self.assertEqual(summary.location, "AMC Lincoln Square 13")
        self.assertEqual(summary.new_showtimes, 2)
        self.assertEqual(summary.messages_sent, 1)

        self.assertEqual(len(self.channel.sent), 1)
        lines = self.channel.sent[0].split("\n")
        self.assertEqual(lines[0], "🎬 <b>2 New Showtimes for Tron: Ares!</b>")
        showtime_lines = lines[3:]
        self.assertEqual(len(showtime_lines), 2)
        self.assertIn("7:00 PM", showtime_lines[0])
        self.assertIn("9:30 PM", showtime_lines[1])
        self.assertIn("https://www.amctheatres.com/showtimes/2/seats", showtime_lines[0])

    async def test_second_run_sends_nothing(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        await self.monitor().run(now=NOW)
        summary = await self.monitor().run(now=NOW)

        self.assertEqual(summary.new_showtimes, 0)
        self.assertEqual(self.channel.sent, [])
        self.assertEqual(self.db.count_showtimes(), 2)

    async def test_overlapping_watchlist_entries_check_title_once(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        self.db.add_to_watchlist("tron ares")
        summary = await self.monitor().run(now=NOW)
        self.assertEqual(summary.matched_titles, 1)
        self.assertEqual(self.catalog.snapshot_calls, 1)
        self.assertEqual(len(self.channel.sent), 1)

    async def test_empty_watchlist(self) -> None:
        summary = await self.monitor().run(now=NOW)
        self.assertEqual(summary.new_showtimes, 0)
        self.assertEqual(self.catalog.snapshot_calls, 0)
        self.assertEqual(self.channel.sent, [])


class FailureHandlingTests(MonitorTestCase):
    async def test_rate_limit_aborts_run(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        catalog = FakeCatalog(failures={"titles": RateLimitedError()})
        with self.assertRaises(RateLimitedError):
            await self.monitor(catalog=catalog).run(now=NOW)

    async def test_one_failing_title_does_not_stop_others(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        self.db.add_to_watchlist("Avatar: Fire and Ash")
        avatar_showtime = _showtime(
            9, AVATAR, datetime(2025, 10, 20, 0, 0, tzinfo=timezone.utc), "2025-10-19T20:00:00"
        )
        catalog = FakeCatalog(
            titles=[TRON, AVATAR],
            showtimes={AVATAR.id: [avatar_showtime]},
            failures={TRON.id: CatalogError("HTTP 500 from GET /theatres/610/showtimes")},
        )
        summary = await self.monitor(catalog=catalog).run(now=NOW)

        self.assertEqual(summary.failed_titles, ["Tron: Ares"])
        self.assertEqual(summary.new_showtimes, 1)
        self.assertIn("Avatar: Fire and Ash", self.channel.sent[0])

    async def test_catalog_outage_skips_check_but_processes_commands(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        catalog = FakeCatalog(failures={"titles": CatalogError("Request failed")})
        channel = FakeChannel(inbound=[InboundMessage(4, "/list")])
        summary = await self.monitor(catalog=catalog, channel=channel).run(now=NOW)

        self.assertEqual(summary.new_showtimes, 0)
        self.assertEqual(summary.commands_processed, 1)
        self.assertEqual(self.db.get_command_cursor(), 4)

    async def test_unknown_theatre_still_processes_commands(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        channel = FakeChannel(inbound=[InboundMessage(11, "/add Minions")])
        summary = await self.monitor(catalog=FakeCatalog(location=None), channel=channel).run(now=NOW)

        self.assertIsNone(summary.location)
        self.assertEqual(self.db.count_showtimes(), 0)
        self.assertEqual(self.db.get_watchlist(), ["Tron: Ares", "Minions"])
        self.assertEqual(len(channel.sent), 1)

    async def test_failed_send_still_marks_notified(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        channel = FakeChannel(fail_sends=True)
        summary = await self.monitor(channel=channel).run(now=NOW)

        self.assertEqual(summary.messages_sent, 0)
        self.assertEqual(self.db.count_showtimes(), 2)
        self.assertEqual(self.db.count_unnotified_showtimes(), 0)


class CommandPhaseTests(MonitorTestCase):
    async def test_commands_run_after_notifications(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        channel = FakeChannel(inbound=[InboundMessage(10, "/add Minions"), InboundMessage(12, "hi")])
        summary = await self.monitor(channel=channel).run(now=NOW)

        self.assertEqual(summary.commands_processed, 1)
        self.assertEqual(len(channel.sent), 2)
        self.assertTrue(channel.sent[0].startswith("🎬 <b>2 New Showtimes"))
        self.assertIn("Added <b>Minions</b>", channel.sent[1])
        self.assertEqual(self.db.get_command_cursor(), 12)

        await self.monitor(channel=channel).run(now=NOW)
        self.assertEqual(channel.polled_with, [0, 12])

    async def test_status(self) -> None:
        self.db.add_to_watchlist("Tron: Ares")
        await self.monitor().run(now=NOW)
        status = await self.monitor().status()
        self.assertEqual(status.location, "AMC Lincoln Square 13")
        self.assertEqual(status.watchlist, ["Tron: Ares"])
        self.assertEqual(status.total_showtimes, 2)
        self.assertEqual(status.unnotified_showtimes, 0)


if __name__ == "__main__":
    unittest.main()
