"""Snapshot persistence for engine state"""
import logging
from typing import Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.waf import WAFRule, RequestLog, BlockedIdentifier, StatsSnapshot
from app.schemas.waf import FirewallRule, RequestLog as RequestLogSchema, WafSnapshot, WafStats

logger = logging.getLogger(__name__)


class PersistenceGateway(Protocol):
    """Load/save contract for engine snapshots"""

    async def load_snapshot(self) -> Optional[WafSnapshot]: ...

    async def save_snapshot(self, snapshot: WafSnapshot) -> bool: ...


class DatabaseSnapshotGateway:
    """Stores the whole snapshot through SQLAlchemy, replacing the previous one"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def load_snapshot(self) -> Optional[WafSnapshot]:
        try:
            async with self.session_factory() as db:
                return await self._read(db)
        except Exception as e:
            logger.error(f"Failed to load WAF snapshot, using defaults: {e}", exc_info=True)
            return None

    async def save_snapshot(self, snapshot: WafSnapshot) -> bool:
        try:
            async with self.session_factory() as db:
                await self._write(db, snapshot)
            return True
        except Exception as e:
            logger.warning(f"Failed to save WAF snapshot: {e}")
            return False

    @staticmethod
    async def _read(db: AsyncSession) -> Optional[WafSnapshot]:
        stats_row = (
            await db.execute(select(StatsSnapshot).order_by(StatsSnapshot.id.desc()).limit(1))
        ).scalar_one_or_none()
        if stats_row is None:
            logger.info("No WAF snapshot stored")
            return None

        rules = (await db.execute(select(WAFRule).order_by(WAFRule.position.asc()))).scalars().all()
        logs = (await db.execute(select(RequestLog).order_by(RequestLog.position.asc()))).scalars().all()
        blocked = (
            await db.execute(select(BlockedIdentifier.identifier).order_by(BlockedIdentifier.identifier))
        ).scalars().all()

        snapshot = WafSnapshot(
            rules=[FirewallRule.model_validate(rule) for rule in rules],
            logs=[RequestLogSchema.model_validate(log) for log in logs],
            blocklist=list(blocked),
            stats=WafStats.model_validate_json(stats_row.payload),
        )
        logger.info(
            f"Loaded WAF snapshot: {len(snapshot.rules)} rules, {len(snapshot.logs)} logs, "
            f"{len(snapshot.blocklist)} blocked"
        )
        return snapshot

    @staticmethod
    async def _write(db: AsyncSession, snapshot: WafSnapshot) -> None:
        for model in (WAFRule, RequestLog, BlockedIdentifier, StatsSnapshot):
            await db.execute(delete(model))

        db.add_all(
            WAFRule(position=position, **rule.model_dump())
            for position, rule in enumerate(snapshot.rules)
        )
        db.add_all(
            RequestLog(position=position, **log.model_dump())
            for position, log in enumerate(snapshot.logs)
        )
        db.add_all(BlockedIdentifier(identifier=identifier) for identifier in snapshot.blocklist)
        db.add(StatsSnapshot(payload=snapshot.stats.model_dump_json()))

        await db.commit()
