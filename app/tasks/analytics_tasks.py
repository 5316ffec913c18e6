"""Celery tasks for threat analysis and model training"""
import json
import logging
from typing import Any, Dict, Optional
from celery import shared_task

from app.core.config import settings
from app.core.init import load_threat_backend
from app.core.redis import RedisClient, LATEST_ANALYSIS_KEY, LATEST_INSIGHTS_KEY
from app.services.insight_service import InsightGenerator
from app.services.snapshot_service import PersistenceGateway, DatabaseSnapshotGateway
from app.services.threat_service import ThreatScorer
from app.tasks.utils import create_task_db_session

logger = logging.getLogger(__name__)


async def run_threat_analysis(
    gateway: PersistenceGateway,
    scorer: ThreatScorer,
    generator: InsightGenerator,
    cache: Optional[RedisClient] = None,
) -> Dict[str, Any]:
    """Analyze the newest persisted logs and cache the result"""
    snapshot = await gateway.load_snapshot()
    if snapshot is None:
        return {"status": "skipped", "reason": "no snapshot"}

    window = snapshot.logs[: scorer.window_size]
    analysis = scorer.analyze(window)
    insights = generator.generate(analysis, window)

    analysis_data = analysis.model_dump(mode="json")
    insights_data = [insight.model_dump(mode="json") for insight in insights]

    if cache is not None:
        ttl = settings.THREAT_ANALYSIS_INTERVAL_MINUTES * 60 * 2
        await cache.set(LATEST_ANALYSIS_KEY, json.dumps(analysis_data), expire=ttl)
        await cache.set(LATEST_INSIGHTS_KEY, json.dumps(insights_data), expire=ttl)

    logger.info(
        f"Threat analysis: score {analysis.threat_score}, {len(insights)} insights, "
        f"primary backend {analysis.is_primary_backend_used}"
    )
    return {
        "status": "success",
        "window": len(window),
        "analysis": analysis_data,
        "insights": insights_data,
    }


async def run_model_training(
    gateway: PersistenceGateway,
    backend,
    batch_size: int = 50,
) -> Dict[str, Any]:
    """Train the classifier backend on persisted logs and save it"""
    from app.services.ml_backend import build_training_data

    snapshot = await gateway.load_snapshot()
    if snapshot is None:
        return {"status": "skipped", "reason": "no snapshot"}

    features, labels = build_training_data(snapshot.logs, batch_size=batch_size)
    if len(features) == 0:
        return {"status": "skipped", "reason": "not enough logs"}

    backend.train(features, labels)
    backend.save()
    return {"status": "success", "samples": int(len(features))}


@shared_task(name="app.tasks.analytics.analyze_threats")
def analyze_threats():
    """
    Periodic threat analysis over the persisted request logs.
    Results are cached in Redis for dashboards.
    """
    import asyncio

    async def _run():
        task_engine, session_factory = create_task_db_session()
        cache = RedisClient()
        await cache.connect()
        try:
            return await run_threat_analysis(
                DatabaseSnapshotGateway(session_factory),
                ThreatScorer(load_threat_backend()),
                InsightGenerator(),
                cache,
            )
        except Exception as e:
            logger.error(f"Threat analysis failed: {e}", exc_info=True)
            return {"status": "error", "error": str(e)}
        finally:
            await cache.disconnect()
            await task_engine.dispose()

    return asyncio.run(_run())


@shared_task(name="app.tasks.analytics.train_threat_model")
def train_threat_model(batch_size: int = 50):
    """
    Train the threat model from persisted logs.
    Requires THREAT_MODEL_PATH; the API process picks the model up on restart.
    """
    import asyncio
    from app.services.ml_backend import SklearnThreatBackend

    if not settings.THREAT_MODEL_PATH:
        return {"status": "error", "error": "THREAT_MODEL_PATH is not configured"}

    async def _run():
        task_engine, session_factory = create_task_db_session()
        try:
            backend = SklearnThreatBackend(model_path=settings.THREAT_MODEL_PATH)
            return await run_model_training(
                DatabaseSnapshotGateway(session_factory), backend, batch_size
            )
        except Exception as e:
            logger.error(f"Threat model training failed: {e}", exc_info=True)
            return {"status": "error", "error": str(e)}
        finally:
            await task_engine.dispose()

    return asyncio.run(_run())
