"""WAF engine service"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Sequence, Set

from app.core.config import Settings, settings as default_settings
from app.schemas.waf import (
    FirewallRule,
    FirewallRuleCreate,
    FirewallRuleUpdate,
    Insight,
    InspectRequest,
    InspectResponse,
    RequestLog,
    ThreatAnalysis,
    WafSnapshot,
    WafStats,
)
from app.services.analytics_service import StatsAggregator
from app.services.blocklist_service import BlocklistManager
from app.services.classifier_service import RequestClassifier
from app.services.insight_service import InsightGenerator
from app.services.rule_service import RuleStore, sequence_of
from app.services.snapshot_service import PersistenceGateway
from app.services.threat_service import ClassifierBackend, ThreatScorer

logger = logging.getLogger(__name__)


class WAFService:
    """
    Single owner of rules, blocklist, request logs and stats.

    Mutations (inspection, rule CRUD, block/unblock) are serialized by one
    lock so the stats counters always agree with the log. Reads return
    copies. Threat analysis runs outside the lock on a copy of the window.
    Snapshot saves happen in a background writer and never delay a decision.
    """

    def __init__(
        self,
        gateway: Optional[PersistenceGateway] = None,
        backend: Optional[ClassifierBackend] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or default_settings
        self.gateway = gateway

        self.rules = RuleStore()
        self.blocklist = BlocklistManager()
        self.classifier = RequestClassifier(self.rules, self.blocklist)
        self.stats = StatsAggregator(top_limit=self.config.TOP_BLOCKED_LIMIT)
        self.scorer = ThreatScorer(backend, window_size=self.config.ANALYSIS_WINDOW_SIZE)
        self.insights = InsightGenerator(self.config.INSIGHT_LIKELIHOOD_THRESHOLD)

        self.blocklist.subscribe(self.stats.on_blocklist_changed)

        self._logs: List[RequestLog] = []
        self._next_log_id = 1
        self._lock = asyncio.Lock()

        self._latest_analysis: Optional[ThreatAnalysis] = None
        self._analysis_generation = 0
        self._published_generation = 0

        self._save_pending = False
        self._save_task: Optional[asyncio.Task] = None

    # ==================== State ====================

    def restore(self, snapshot: WafSnapshot) -> None:
        """Adopt a persisted snapshot"""
        self.rules.load(snapshot.rules)
        self.blocklist.replace(snapshot.blocklist)
        self._logs = list(snapshot.logs)
        self._next_log_id = max([1] + [sequence_of(log.id) + 1 for log in self._logs])

        stats = snapshot.stats
        if stats.total_requests != len(self._logs):
            logger.warning(
                f"Snapshot stats cover {stats.total_requests} requests but "
                f"{len(self._logs)} logs were stored, rebuilding stats from logs"
            )
            self.stats.rebuild(self._logs)
        else:
            self.stats.restore(stats, self._logs)

    def export_snapshot(self) -> WafSnapshot:
        return WafSnapshot(
            rules=self.rules.list(),
            logs=list(self._logs),
            blocklist=sorted(self.blocklist.list()),
            stats=self.stats.snapshot(),
        )

    # ==================== Requests ====================

    async def process_request(self, request: InspectRequest) -> InspectResponse:
        """Classify a request, record it and return its disposition"""
        async with self._lock:
            decision = self.classifier.classify(request)
            log = RequestLog(
                id=f"req-{self._next_log_id}",
                timestamp=request.timestamp or datetime.utcnow(),
                source_identifier=request.source_identifier,
                path=request.path,
                method=request.method,
                user_agent=request.user_agent,
                status=decision.status,
                attack_type=decision.attack_type,
                country=request.country,
                rule_id=decision.rule_id,
            )
            self._next_log_id += 1
            self._logs.insert(0, log)
            self.stats.record(log)
            self._schedule_save()

        if decision.rule_id:
            logger.debug(f"{log.id} {decision.status.value} by {decision.rule_id}")
        return InspectResponse(status=log.status, attack_type=log.attack_type, log_id=log.id)

    def list_logs(self, limit: Optional[int] = None) -> List[RequestLog]:
        """Newest first"""
        if limit is None:
            return list(self._logs)
        return self._logs[:limit]

    def get_stats(self) -> WafStats:
        return self.stats.snapshot()

    # ==================== Rules ====================

    async def add_rule(self, rule_data: FirewallRuleCreate) -> FirewallRule:
        async with self._lock:
            rule = self.rules.add(rule_data)
            self._schedule_save()
        return rule

    async def update_rule(self, rule_id: str, rule_data: FirewallRuleUpdate) -> FirewallRule:
        async with self._lock:
            rule = self.rules.update(rule_id, rule_data)
            self._schedule_save()
        return rule

    async def delete_rule(self, rule_id: str) -> bool:
        async with self._lock:
            deleted = self.rules.delete(rule_id)
            if deleted:
                self._schedule_save()
        return deleted

    def list_rules(self) -> List[FirewallRule]:
        return self.rules.list()

    # ==================== Blocklist ====================

    async def block(self, identifier: str) -> None:
        async with self._lock:
            self.blocklist.block(identifier)
            self._schedule_save()

    async def unblock(self, identifier: str) -> None:
        async with self._lock:
            self.blocklist.unblock(identifier)
            self._schedule_save()

    def is_blocked(self, identifier: str) -> bool:
        return self.blocklist.is_blocked(identifier)

    def list_blocked(self) -> Set[str]:
        return self.blocklist.list()

    # ==================== Threat analysis ====================

    async def analyze_threat(self, window: Optional[Sequence[RequestLog]] = None) -> ThreatAnalysis:
        """
        Score a window (default: the newest logs) without holding the
        request lock. When analyses overlap, the one started last is cached.
        """
        window = self._window(window)
        self._analysis_generation += 1
        generation = self._analysis_generation

        analysis = await asyncio.to_thread(self.scorer.analyze, window)

        if generation > self._published_generation:
            self._published_generation = generation
            self._latest_analysis = analysis
        return analysis

    async def generate_insights(self, window: Optional[Sequence[RequestLog]] = None) -> List[Insight]:
        window = self._window(window)
        analysis = await self.analyze_threat(window)
        return self.insights.generate(analysis, window)

    @property
    def latest_analysis(self) -> Optional[ThreatAnalysis]:
        return self._latest_analysis

    def _window(self, window: Optional[Sequence[RequestLog]]) -> List[RequestLog]:
        source = self._logs if window is None else window
        return list(source[: self.config.ANALYSIS_WINDOW_SIZE])

    # ==================== Persistence ====================

    def _schedule_save(self) -> None:
        """Mark state dirty and make sure a background writer is running"""
        if self.gateway is None:
            return
        self._save_pending = True
        if self._save_task is None or self._save_task.done():
            self._save_task = asyncio.get_running_loop().create_task(self._save_loop())

    async def _save_loop(self) -> None:
        while self._save_pending:
            self._save_pending = False
            snapshot = self.export_snapshot()
            saved = await self._save_with_retry(snapshot)
            if not saved:
                # Still dirty, the next mutation or flush() tries again
                self._save_pending = True
                logger.error("Giving up on WAF snapshot save after retries")
                return

    async def _save_with_retry(self, snapshot: WafSnapshot) -> bool:
        delay = self.config.SNAPSHOT_RETRY_BACKOFF
        attempts = max(1, self.config.SNAPSHOT_RETRY_ATTEMPTS)

        for attempt in range(1, attempts + 1):
            try:
                if await self.gateway.save_snapshot(snapshot):
                    return True
                logger.warning(f"WAF snapshot save failed (attempt {attempt}/{attempts})")
            except Exception as e:
                logger.warning(f"WAF snapshot save error (attempt {attempt}/{attempts}): {e}")

            if attempt < attempts:
                await asyncio.sleep(delay)
                delay *= 2
        return False

    async def flush(self) -> None:
        """Wait for the background writer, then save any state it gave up on"""
        while self._save_task is not None and not self._save_task.done():
            await asyncio.shield(self._save_task)

        if self.gateway is None or not self._save_pending:
            return
        self._save_pending = False
        if not await self._save_with_retry(self.export_snapshot()):
            self._save_pending = True
            logger.error("WAF snapshot is still unsaved after flush")
