from __future__ import annotations

from datetime import date, datetime, timezone

from classbook.core.kst import KST, require_aware


class TimeProvider:
    """Source of "now". Instants are aware UTC; calendar dates are KST."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(KST).date()


class FixedTimeProvider(TimeProvider):
    """Pinned clock for scripts, benchmarks and tests."""

    def __init__(self, frozen: datetime) -> None:
        self._frozen = require_aware(frozen).astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._frozen


default_time_provider = TimeProvider()
