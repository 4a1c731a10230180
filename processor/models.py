"""Data models for race listings, preferences and alerts."""
import dataclasses
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple


class Grade(str, Enum):
    """Race grade, most prestigious first."""
    G1 = 'G1'
    G2 = 'G2'
    G3 = 'G3'
    LISTED = 'Listed'
    GENERAL = 'General'

    @property
    def is_heavy(self) -> bool:
        """Graded stakes (G1-G3) are the "heavy prize" races."""
        return self in (Grade.G1, Grade.G2, Grade.G3)


class LinkProvider(str, Enum):
    """Where race detail links point when rendered."""
    NETKEIBA = 'netkeiba'
    JRA = 'jra'


class AlertKind(str, Enum):
    DEADLINE = 'deadline'
    PRE_WARNING = 'pre-warning'


@dataclass
class RaceEntry:
    """Raw race entry extracted from the listing markup."""
    venue: str
    race_number: Optional[str]
    race_name: str
    start_time: Optional[str]
    grade_marker: Optional[str]
    url: Optional[str]


@dataclass(frozen=True)
class Race:
    """Validated race anchored to a calendar day."""
    id: str
    location: str
    race_number: int
    race_name: str
    grade: Grade
    start_time: datetime
    url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'location': self.location,
            'raceNumber': self.race_number,
            'raceName': self.race_name,
            'grade': self.grade.value,
            'startTime': self.start_time.isoformat(),
            'url': self.url
        }


@dataclass(frozen=True)
class ScraperResult:
    """Result of a listing refresh."""
    races: Tuple[Race, ...]
    fetched_at: datetime
    source: str  # 'live' or 'mock'

    @property
    def is_live(self) -> bool:
        return self.source == 'live'

    def to_dict(self) -> dict:
        return {
            'races': [race.to_dict() for race in self.races],
            'fetchedAt': self.fetched_at.isoformat(),
            'source': self.source
        }


@dataclass(frozen=True)
class Preferences:
    """User configuration controlling which alerts fire and how."""
    heavy_prize_mode: bool = False
    g1_only_mode: bool = False
    audio_enabled: bool = True
    notify_only_heavy: bool = False
    notifications_enabled: bool = False
    link_provider: LinkProvider = LinkProvider.NETKEIBA
    voice_alerts: bool = False

    # Persisted JSON keys
    _WIRE_KEYS = {
        'heavy_prize_mode': 'heavyPrizeMode',
        'g1_only_mode': 'g1OnlyMode',
        'audio_enabled': 'audioEnabled',
        'notify_only_heavy': 'notifyOnlyHeavy',
        'notifications_enabled': 'notificationsEnabled',
        'link_provider': 'linkProvider',
        'voice_alerts': 'useVoiceAlert',
    }

    @classmethod
    def from_dict(cls, data: Any) -> 'Preferences':
        """
        Build preferences from a stored JSON object.

        Fields that are missing or of the wrong type keep their defaults, so
        a corrupt or outdated stored value never prevents startup.

        Args:
            data: Decoded JSON value (anything)

        Returns:
            Preferences instance
        """
        if not isinstance(data, dict):
            return cls()

        values = {}
        for f in fields(cls):
            raw = data.get(cls._WIRE_KEYS[f.name])
            if f.name == 'link_provider':
                try:
                    values[f.name] = LinkProvider(raw)
                except (TypeError, ValueError):
                    continue
            elif isinstance(raw, bool):
                values[f.name] = raw
        return cls(**values)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['link_provider'] = self.link_provider.value
        return {self._WIRE_KEYS[name]: value for name, value in data.items()}

    def replace(self, **changes) -> 'Preferences':
        return dataclasses.replace(self, **changes)


@dataclass(frozen=True)
class AlertKey:
    """Identity of one rule crossing for one race."""
    race_id: str
    kind: AlertKind
    fires_at: datetime


@dataclass(frozen=True)
class PendingAlert:
    """The nearest alert that has not fired yet."""
    fires_at: datetime
    message: str
    race_id: str
    kind: AlertKind


@dataclass(frozen=True)
class FiredAlert:
    """An alert that is due at the evaluated instant."""
    key: AlertKey
    race_name: str
    title: str
    body: str
    spoken_text: str

    @property
    def kind(self) -> AlertKind:
        return self.key.kind


@dataclass(frozen=True)
class Evaluation:
    """Evaluator output for a single tick."""
    next_alert: Optional[PendingAlert]
    fired: Tuple[FiredAlert, ...] = field(default_factory=tuple)
