"""Tests for the periodic analytics tasks"""
import json

from app.core.redis import LATEST_ANALYSIS_KEY, LATEST_INSIGHTS_KEY
from app.schemas.waf import ThreatAnalysis, WafSnapshot
from app.services.insight_service import InsightGenerator
from app.services.ml_backend import SklearnThreatBackend
from app.services.threat_service import ThreatScorer
from app.tasks.analytics_tasks import run_model_training, run_threat_analysis
from tests.factories import InMemoryGateway, StaticBackend, make_log, mixed_window


class FakeCache:
    def __init__(self):
        self.values = {}

    async def set(self, key, value, expire=None):
        self.values[key] = value


async def test_analysis_skipped_without_snapshot():
    result = await run_threat_analysis(InMemoryGateway(), ThreatScorer(window_size=50), InsightGenerator(0.2))
    assert result["status"] == "skipped"


async def test_analysis_caches_results():
    gateway = InMemoryGateway(WafSnapshot(logs=mixed_window()))
    cache = FakeCache()

    result = await run_threat_analysis(gateway, ThreatScorer(window_size=50), InsightGenerator(0.2), cache)

    assert result["status"] == "success"
    assert result["window"] == 10
    assert result["analysis"]["threat_score"] == 68
    assert json.loads(cache.values[LATEST_ANALYSIS_KEY]) == result["analysis"]
    assert json.loads(cache.values[LATEST_INSIGHTS_KEY])[0]["kind"] == "threat_level"


async def test_analysis_uses_backend():
    gateway = InMemoryGateway(WafSnapshot(logs=mixed_window()))
    scorer = ThreatScorer(StaticBackend(ThreatAnalysis(threat_score=12)), window_size=5)

    result = await run_threat_analysis(gateway, scorer, InsightGenerator(0.2))

    assert result["window"] == 5
    assert result["analysis"]["is_primary_backend_used"] is True
    assert result["insights"][0]["title"] == "ML-Powered Threat Analysis"


async def test_training_needs_enough_logs(tmp_path):
    backend = SklearnThreatBackend(model_path=str(tmp_path / "model.joblib"))
    gateway = InMemoryGateway(WafSnapshot(logs=mixed_window()[:5]))

    result = await run_model_training(gateway, backend, batch_size=10)

    assert result["status"] == "skipped"
    assert not backend.is_ready()


async def test_training_saves_model(tmp_path):
    path = tmp_path / "model.joblib"
    logs = mixed_window() + [make_log(offset_seconds=i) for i in range(10)] + mixed_window()
    backend = SklearnThreatBackend(model_path=str(path))

    result = await run_model_training(InMemoryGateway(WafSnapshot(logs=logs)), backend, batch_size=10)

    assert result == {"status": "success", "samples": 3}
    assert path.exists()
    assert backend.is_ready()
