"""Long running race alert monitor: tick loop, periodic refresh and alert routing."""
import argparse
import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import AsyncIterator, Optional, Tuple
from zoneinfo import ZoneInfo

from log_config import setup_logging
from monitor.config import MonitorConfig
from monitor.sinks import AlertDispatcher, AlertSink, LoggingAlertSink, enable_notifications
from processor.alert_evaluator import AlertEvaluator, FiredAlertLedger
from processor.clock import SimulatedClock
from processor.models import Evaluation, PendingAlert, Preferences, Race, ScraperResult
from processor.race_listing import RaceListing
from scraper.netkeiba_races import NetkeibaRaceScraper
from storage.preferences_store import DynamoDBPreferencesStore, JsonFilePreferencesStore

logger = logging.getLogger(__name__)

LEDGER_HORIZON = timedelta(days=1)
DEGRADED_NOTICE = "Race data is unavailable right now; alerts resume after the next refresh."


async def tick_source(interval: float = 1.0) -> AsyncIterator[int]:
    """Yield a tick roughly every `interval` seconds, forever."""
    count = 0
    while True:
        await asyncio.sleep(interval)
        count += 1
        yield count


class RaceAlertMonitor:
    """
    Evaluates race alerts once per tick against the latest race listing.

    Races and preferences are held as immutable snapshots that are swapped
    as a whole, so a refresh landing between ticks is never seen half applied.
    """

    def __init__(self, listing: RaceListing, clock: SimulatedClock, sink: AlertSink,
                 preferences_store, refresh_interval: float = 60.0,
                 tick_interval: float = 1.0, catchup_seconds: float = 5.0):
        self.listing = listing
        self.clock = clock
        self.sink = sink
        self.preferences_store = preferences_store
        self.refresh_interval = refresh_interval
        self.tick_interval = tick_interval
        self.catchup_seconds = catchup_seconds

        self.evaluator = AlertEvaluator()
        self.ledger = FiredAlertLedger()
        self.dispatcher = AlertDispatcher(sink)

        self._races: Tuple[Race, ...] = ()
        self._preferences: Preferences = preferences_store.load()
        self._last_tick = None
        self.last_result: Optional[ScraperResult] = None
        self.next_alert: Optional[PendingAlert] = None
        self.notice: Optional[str] = None

    @property
    def races(self) -> Tuple[Race, ...]:
        return self._races

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    async def refresh(self) -> ScraperResult:
        """Refresh the race listing off the event loop and swap it in."""
        result = await asyncio.to_thread(self.listing.refresh, self.clock.now())
        self._races = result.races
        self.last_result = result

        if result.is_live:
            self.notice = None
        else:
            self.notice = DEGRADED_NOTICE
            logger.warning(DEGRADED_NOTICE)
        return result

    def tick(self) -> Evaluation:
        """Run one evaluation at the current virtual time and route what fired."""
        now = self.clock.now()
        races = self._races
        preferences = self._preferences

        since = None
        if self._last_tick is not None:
            gap = (now - self._last_tick).total_seconds()
            if 0 < gap <= self.catchup_seconds:
                since = self._last_tick

        evaluation = self.evaluator.evaluate(
            now, races, preferences, fired=self.ledger.snapshot(), since=since
        )
        self.ledger.record(evaluation.fired)
        for alert in evaluation.fired:
            self.dispatcher.dispatch(alert, preferences)

        self.ledger.prune(now - LEDGER_HORIZON)
        self._last_tick = now
        self.next_alert = evaluation.next_alert
        return evaluation

    def update_preferences(self, preferences: Preferences) -> None:
        """Swap in new preferences and persist them."""
        self._preferences = preferences
        try:
            self.preferences_store.save(preferences)
        except Exception as e:
            logger.error(f"Failed to persist preferences: {e}", exc_info=True)

    def enable_notifications(self) -> Optional[str]:
        """
        Ask the sink for notification permission and update preferences.

        Returns:
            Notice for the user when permission was denied, else None
        """
        preferences, notice = enable_notifications(self._preferences, self.sink)
        self.update_preferences(preferences)
        return notice

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Scheduled refresh failed: {e}", exc_info=True)

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Refresh once, then tick until cancelled or `stop_event` is set.

        The periodic refresh runs as a separate task and is cancelled when the
        tick loop ends.
        """
        await self.refresh()
        refresh_task = asyncio.create_task(self._refresh_loop(), name='race-refresh')
        ticks = tick_source(self.tick_interval)
        logger.info(
            "Alert monitor started",
            extra={
                'refresh_interval': self.refresh_interval,
                'tick_interval': self.tick_interval
            }
        )

        try:
            async for _ in ticks:
                if stop_event is not None and stop_event.is_set():
                    break
                self.tick()
        finally:
            await ticks.aclose()
            refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await refresh_task
            logger.info("Alert monitor stopped")


def build_monitor(config: MonitorConfig, sink: Optional[AlertSink] = None) -> RaceAlertMonitor:
    timezone = ZoneInfo(config.timezone)
    clock = SimulatedClock(timezone)
    scraper = NetkeibaRaceScraper(
        timeout=config.timeout_seconds,
        max_retries=config.max_retries
    )
    listing = RaceListing(scraper, now=clock.real_now)

    if config.preferences_file:
        store = JsonFilePreferencesStore(config.preferences_file)
    else:
        store = DynamoDBPreferencesStore(config.preferences_table, config.preferences_id)

    return RaceAlertMonitor(
        listing=listing,
        clock=clock,
        sink=sink or LoggingAlertSink(),
        preferences_store=store,
        refresh_interval=config.refresh_interval_seconds,
        tick_interval=config.tick_interval_seconds,
        catchup_seconds=config.catchup_seconds
    )


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Race deadline alert monitor")
    parser.add_argument('--jump-to', metavar='HH:MM',
                        help="start with the simulated clock at this time today")
    parser.add_argument('--log-level', help="override LOG_LEVEL")
    args = parser.parse_args(argv)

    config = MonitorConfig.from_env()
    if args.log_level:
        config.log_level = args.log_level
    setup_logging(config.log_level)

    monitor = build_monitor(config)
    if args.jump_to and not monitor.clock.jump_to_time_of_day(args.jump_to):
        logger.warning(f"Ignoring invalid --jump-to value: {args.jump_to}")

    try:
        asyncio.run(monitor.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == '__main__':
    main()
