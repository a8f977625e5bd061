"""Refresh diagnostics."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from stockfolio.api.dependencies import require_user
from stockfolio.core.security import TokenData
from stockfolio.domain.market_calendar import get_market_calendar
from stockfolio.domain.snapshots import SnapshotCategory
from stockfolio.jobs.activity import get_session_tracker
from stockfolio.repositories import instruments_orm, snapshots_orm


router = APIRouter(prefix="/debug")


def time_since(instant: datetime | None, now: datetime) -> str:
    """``"3 hours ago"`` style age; ``"Never"`` for a missing instant."""
    if instant is None:
        return "Never"
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    minutes = int((now - instant).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days} days ago"
    if hours > 0:
        return f"{hours} hours ago"
    if minutes > 0:
        return f"{minutes} minutes ago"
    return "Just now"


@router.get("/update-status")
async def update_status(user: TokenData = Depends(require_user)) -> dict:
    """Last refreshed instruments, latest snapshot times and market state."""
    now = datetime.now(UTC)
    calendar = get_market_calendar()

    instruments = await instruments_orm.recent_instruments(limit=10)
    latest_realtime = await snapshots_orm.latest_snapshot_timestamp(SnapshotCategory.REALTIME)
    latest_intraday = await snapshots_orm.latest_snapshot_timestamp(SnapshotCategory.INTRADAY)

    return {
        "success": True,
        "data": {
            "current_time": now,
            "market_time": calendar.format_local(now),
            "market": {
                "trading_day": calendar.is_trading_day(now),
                "open": calendar.is_within_continuous_window(now),
                "next_scheduled_refresh": calendar.next_scheduled_instant(now),
            },
            "active_sessions": get_session_tracker().active_count(),
            "stocks": [
                {
                    "id": i["id"],
                    "symbol": i["symbol"],
                    "name": i["name"],
                    "last_refreshed_at": i["last_refreshed_at"],
                    "time_since_update": time_since(i["last_refreshed_at"], now),
                }
                for i in instruments
            ],
            "latest_realtime_update": latest_realtime,
            "latest_realtime_age": time_since(latest_realtime, now),
            "latest_intraday_update": latest_intraday,
            "latest_intraday_age": time_since(latest_intraday, now),
        },
    }
