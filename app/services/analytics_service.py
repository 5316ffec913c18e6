"""Running security statistics"""
import bisect
import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Optional

from app.core.config import settings
from app.schemas.waf import (
    RequestLog,
    RequestStatus,
    TimeBucket,
    TopBlockedEntry,
    WafStats,
)

logger = logging.getLogger(__name__)


def floor_to_hour(timestamp: datetime) -> datetime:
    return timestamp.replace(minute=0, second=0, microsecond=0)


def rank_offenders(counts: Counter, limit: int) -> List[TopBlockedEntry]:
    """Count descending, identifier ascending, at most `limit` entries"""
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [TopBlockedEntry(identifier=ip, count=count) for ip, count in ranked[:limit]]


class StatsAggregator:
    """
    Maintains WafStats incrementally from classified request logs.

    A full per-identifier tally of blocked requests backs the bounded
    top-offenders ranking, so an identifier that drops out of the top list
    keeps its count and the ranking always equals a replay of the blocked logs.
    """

    def __init__(self, top_limit: Optional[int] = None):
        self.top_limit = top_limit or settings.TOP_BLOCKED_LIMIT
        self._stats = WafStats()
        self._blocked_counts: Counter = Counter()

    def record(self, log: RequestLog) -> None:
        stats = self._stats
        stats.total_requests += 1

        blocked = log.status == RequestStatus.BLOCKED
        if blocked:
            stats.blocked_requests += 1
            if log.attack_type is not None:
                stats.attacks_by_type[log.attack_type] += 1
            self._blocked_counts[log.source_identifier] += 1
            self._rerank()
        elif log.status == RequestStatus.FLAGGED:
            stats.flagged_requests += 1
        else:
            stats.allowed_requests += 1

        self._bucket_for(log.timestamp).count += 1
        if blocked:
            self._bucket_for(log.timestamp).blocked += 1

    def snapshot(self) -> WafStats:
        """Detached copy of the current stats"""
        return self._stats.model_copy(deep=True)

    def rebuild(self, logs: Iterable[RequestLog]) -> WafStats:
        """Recompute everything from a full log sequence (any order)"""
        self._stats = WafStats()
        self._blocked_counts = Counter()
        for log in sorted(logs, key=lambda entry: entry.timestamp):
            self.record(log)
        return self.snapshot()

    def restore(self, stats: WafStats, logs: Iterable[RequestLog]) -> None:
        """Adopt persisted stats; the offender tally is rebuilt from the logs"""
        self._stats = stats.model_copy(deep=True)
        self._blocked_counts = Counter(
            log.source_identifier for log in logs if log.status == RequestStatus.BLOCKED
        )
        self._rerank()

    def on_blocklist_changed(self) -> None:
        """Backfill the ranking after an administrative blocklist change"""
        self._rerank()

    def _rerank(self) -> None:
        self._stats.top_blocked = rank_offenders(self._blocked_counts, self.top_limit)

    def _bucket_for(self, timestamp: datetime) -> TimeBucket:
        hour = floor_to_hour(timestamp)
        series = self._stats.requests_over_time
        hours = [bucket.hour for bucket in series]
        index = bisect.bisect_left(hours, hour)
        if index < len(series) and series[index].hour == hour:
            return series[index]

        bucket = TimeBucket(hour=hour)
        series.insert(index, bucket)
        logger.debug(f"Opened stats bucket for {hour}")
        return bucket
