"""Alert monitor configuration from environment variables."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class MonitorConfig:
    """Runtime configuration for the alert monitor."""
    log_level: str = 'INFO'
    timezone: str = 'Asia/Tokyo'
    timeout_seconds: int = 10
    max_retries: int = 3
    refresh_interval_seconds: float = 60.0
    tick_interval_seconds: float = 1.0
    catchup_seconds: float = 5.0
    preferences_table: str = 'race-alert-preferences'
    preferences_id: str = 'default'
    preferences_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'MonitorConfig':
        return cls(
            log_level=os.environ.get('LOG_LEVEL', 'INFO'),
            timezone=os.environ.get('RACE_TIMEZONE', 'Asia/Tokyo'),
            timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '10')),
            max_retries=int(os.environ.get('MAX_RETRIES', '3')),
            refresh_interval_seconds=float(os.environ.get('REFRESH_INTERVAL_SECONDS', '60')),
            tick_interval_seconds=float(os.environ.get('TICK_INTERVAL_SECONDS', '1.0')),
            catchup_seconds=float(os.environ.get('CATCHUP_SECONDS', '5')),
            preferences_table=os.environ.get('PREFERENCES_TABLE', 'race-alert-preferences'),
            preferences_id=os.environ.get('PREFERENCES_ID', 'default'),
            preferences_file=os.environ.get('PREFERENCES_FILE') or None
        )
