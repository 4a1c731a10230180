"""Alert evaluator deciding which race alerts are due and which comes next."""
import logging
from datetime import datetime, timedelta
from typing import AbstractSet, Iterable, List, Optional, Sequence, Set

from processor.models import (
    AlertKey, AlertKind, Evaluation, FiredAlert, Grade, PendingAlert, Preferences,
    Race
)

logger = logging.getLogger(__name__)

DEADLINE_LEAD = timedelta(minutes=2)
PRE_WARNING_LEAD = timedelta(minutes=10)
# Ticks arrive roughly once per second; a trigger within this window is due.
FIRE_TOLERANCE_SECONDS = 1.0


class AlertEvaluator:
    """
    Pure evaluation of race alerts at a point in time.

    Two rules apply per race: the deadline alert two minutes before post
    time, and the pre-warning ten minutes before post time for graded races
    the user opted into. The evaluator keeps no state; callers pass in the
    keys of alerts that already fired.
    """

    def evaluate(
        self,
        now: datetime,
        races: Sequence[Race],
        preferences: Preferences,
        fired: AbstractSet[AlertKey] = frozenset(),
        since: Optional[datetime] = None
    ) -> Evaluation:
        """
        Evaluate all alert rules for all races.

        Args:
            now: Current (virtual) time
            races: Race snapshot
            preferences: Preference snapshot
            fired: Keys of alerts already fired this session
            since: Previous tick time; triggers in (since, now] are also due,
                so one missed tick does not lose an alert

        Returns:
            Evaluation with the next pending alert and the alerts due now
        """
        next_alert = None
        min_delta = None
        due: List[FiredAlert] = []

        for race in races:
            for kind, lead in self._rules_for(race, preferences):
                fires_at = race.start_time - lead
                key = AlertKey(race_id=race.id, kind=kind, fires_at=fires_at)
                if key in fired:
                    continue

                remaining = (fires_at - now).total_seconds()
                delta = int(remaining)

                if delta > 0 and (min_delta is None or delta < min_delta):
                    min_delta = delta
                    next_alert = PendingAlert(
                        fires_at=fires_at,
                        message=self._pending_message(race, kind),
                        race_id=race.id,
                        kind=kind
                    )

                if self._is_due(remaining, fires_at, now, since):
                    due.append(self._fired_alert(race, key))

        if due:
            logger.debug(f"{len(due)} alerts due at {now.isoformat()}")
        return Evaluation(next_alert=next_alert, fired=tuple(due))

    def _rules_for(self, race: Race, preferences: Preferences):
        if preferences.notify_only_heavy and not race.grade.is_heavy:
            return []

        rules = [(AlertKind.DEADLINE, DEADLINE_LEAD)]
        if self.qualifies_for_pre_warning(race, preferences):
            rules.append((AlertKind.PRE_WARNING, PRE_WARNING_LEAD))
        return rules

    @staticmethod
    def qualifies_for_pre_warning(race: Race, preferences: Preferences) -> bool:
        if preferences.g1_only_mode and race.grade == Grade.G1:
            return True
        return preferences.heavy_prize_mode and race.grade.is_heavy

    @staticmethod
    def _is_due(remaining: float, fires_at: datetime, now: datetime,
                since: Optional[datetime]) -> bool:
        if abs(remaining) < FIRE_TOLERANCE_SECONDS:
            return True
        return since is not None and since < fires_at <= now

    @staticmethod
    def _pending_message(race: Race, kind: AlertKind) -> str:
        if kind == AlertKind.DEADLINE:
            return f"Next alert: {race.race_name} deadline in 2 minutes"
        return f"Next alert: {race.race_name} start reviewing"

    def _fired_alert(self, race: Race, key: AlertKey) -> FiredAlert:
        if key.kind == AlertKind.DEADLINE:
            body = f"{race.race_name} closes in 2 minutes"
            spoken_text = f"Betting on {race.race_name} closes soon."
        else:
            body = f"{race.race_name} starts in 10 minutes"
            spoken_text = f"Time to start reviewing {race.race_name}."
        return FiredAlert(
            key=key,
            race_name=race.race_name,
            title=self._pending_message(race, key.kind),
            body=body,
            spoken_text=spoken_text
        )


class FiredAlertLedger:
    """Session record of alerts that already fired."""

    def __init__(self):
        self._keys: Set[AlertKey] = set()

    def __contains__(self, key: AlertKey) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def record(self, alerts: Iterable[FiredAlert]) -> None:
        for alert in alerts:
            self._keys.add(alert.key)

    def snapshot(self) -> frozenset:
        return frozenset(self._keys)

    def prune(self, before: datetime) -> int:
        """
        Forget alerts whose trigger time is earlier than `before`.

        Returns:
            Number of keys removed
        """
        stale = {key for key in self._keys if key.fires_at < before}
        self._keys -= stale
        return len(stale)
