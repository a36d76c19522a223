from __future__ import annotations

from datetime import date, datetime, timezone as dt_timezone

import pytz

DEFAULT_TIMEZONE = "UTC"


class TimezoneUtils:
    """Clock helpers shared by the ledger and its API surface."""

    @staticmethod
    def utc_now() -> datetime:
        """Return the current UTC timestamp (timezone aware)."""
        return datetime.now(dt_timezone.utc)

    @staticmethod
    def resolve_timezone(name: str | None):
        try:
            return pytz.timezone(name or DEFAULT_TIMEZONE)
        except pytz.UnknownTimeZoneError:
            return pytz.timezone(DEFAULT_TIMEZONE)

    @staticmethod
    def office_today(timezone_name: str | None = None) -> date:
        """Calendar date at the supply office, which decides what counts as future-dated."""
        tz = TimezoneUtils.resolve_timezone(timezone_name)
        return TimezoneUtils.utc_now().astimezone(tz).date()
