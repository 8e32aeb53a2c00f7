"""Operations-calendar helpers. Rollups take "today" as an argument; routes get it here."""
import os
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

OPS_TIMEZONE = os.getenv("OPS_TIMEZONE", "America/New_York")


def ops_today(now: Optional[datetime] = None) -> date:
    """Calendar date in the operations timezone (warehouse local day)."""
    tz = ZoneInfo(OPS_TIMEZONE)
    moment = now.astimezone(tz) if now else datetime.now(tz)
    return moment.date()


def ops_timestamp(now: Optional[datetime] = None) -> str:
    """YYYY-MM-DD HH:MM:SS in the operations timezone."""
    tz = ZoneInfo(OPS_TIMEZONE)
    moment = now.astimezone(tz) if now else datetime.now(tz)
    return moment.strftime("%Y-%m-%d %H:%M:%S")
