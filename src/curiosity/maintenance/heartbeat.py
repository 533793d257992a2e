"""Heartbeat: summarize recent activity and store contents."""

from datetime import datetime, timedelta
from typing import Any

from ..storage import GraphStoreBase


def engine_stats(store: GraphStoreBase) -> dict[str, Any]:
    """Get record counts per kind plus the most recent daily selection."""
    stats: dict[str, Any] = {"counts": store.counts()}

    today = datetime.now().date()
    stats["daily_today"] = store.get_daily(today.isoformat()) is not None
    stats["daily_yesterday"] = store.get_daily((today - timedelta(days=1)).isoformat()) is not None
    return stats


def get_recent_concepts(store: GraphStoreBase, days: int = 7) -> list[dict[str, Any]]:
    """Get concepts updated in the last N days, newest first."""
    cutoff = int((datetime.now() - timedelta(days=days)).timestamp() * 1000)
    recent = [
        {
            "id": n.id,
            "name": n.name,
            "weight": n.weight,
            "updated": datetime.fromtimestamp(n.last_updated / 1000).isoformat(),
        }
        for n in store.list_concepts()
        if n.last_updated >= cutoff
    ]
    recent.sort(key=lambda x: x["updated"], reverse=True)
    return recent
