"""Threat scoring over a window of recent requests"""
import logging
import math
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.schemas.waf import (
    AttackType,
    RequestLog,
    RequestStatus,
    ThreatAnalysis,
    empty_attack_likelihood,
)

logger = logging.getLogger(__name__)

FEATURE_NAMES = [
    "request_count",
    "blocked_count",
    "unique_identifiers",
    "distinct_attack_types",
    "sql_injection_count",
    "xss_count",
    "path_traversal_count",
    "attack_rate",
    "unique_countries",
    "mean_gap",
]


@runtime_checkable
class ClassifierBackend(Protocol):
    """Pluggable model producing a ThreatAnalysis from a window"""

    def is_ready(self) -> bool: ...

    def predict(self, window: Sequence[RequestLog]) -> ThreatAnalysis: ...

    def train(self, features: Any, labels: Any) -> None: ...

    def save(self) -> None: ...

    def load(self) -> None: ...


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def extract_features(window: Sequence[RequestLog]) -> List[float]:
    """
    Normalized feature vector for a window, in FEATURE_NAMES order.

    Counts are divided by the volume expected in a 50 entry window so that
    typical values fall in [0, 1]; the mean gap between requests is in
    minutes and capped at 1.
    """
    if not window:
        return [0.0] * len(FEATURE_NAMES)

    request_count = len(window)
    blocked_count = sum(1 for log in window if log.status == RequestStatus.BLOCKED)
    unique_identifiers = len({log.source_identifier for log in window})
    attack_types = [log.attack_type for log in window if log.attack_type is not None]

    def count_of(attack_type: AttackType) -> int:
        return sum(1 for t in attack_types if t == attack_type)

    unique_countries = len({log.country for log in window if log.country})

    mean_gap = 0.0
    if request_count > 1:
        ordered = sorted(log.timestamp for log in window)
        span = (ordered[-1] - ordered[0]).total_seconds()
        mean_gap = span / (request_count - 1)

    return [
        request_count / 100,
        blocked_count / 50,
        unique_identifiers / 20,
        len(set(attack_types)) / 5,
        count_of(AttackType.SQL_INJECTION) / 10,
        count_of(AttackType.XSS) / 10,
        count_of(AttackType.PATH_TRAVERSAL) / 10,
        len(attack_types) / request_count,
        unique_countries / 10,
        min(mean_gap / 60, 1.0),
    ]


def heuristic_analysis(window: Sequence[RequestLog]) -> ThreatAnalysis:
    """Deterministic fallback; identical windows give identical results"""
    if not window:
        return ThreatAnalysis(
            threat_score=0,
            attack_likelihood=empty_attack_likelihood(),
            anomaly_score=0,
            is_primary_backend_used=False,
        )

    total = len(window)
    blocked_fraction = sum(1 for log in window if log.status == RequestStatus.BLOCKED) / total
    distinct_types = len({log.attack_type for log in window if log.attack_type is not None})
    threat_score = min(100, round_half_up(blocked_fraction * 70 + distinct_types * 10))

    likelihood = empty_attack_likelihood()
    for log in window:
        if log.attack_type is not None:
            likelihood[log.attack_type] += 1
    likelihood = {attack_type: count / total for attack_type, count in likelihood.items()}

    return ThreatAnalysis(
        threat_score=threat_score,
        attack_likelihood=likelihood,
        anomaly_score=0,
        is_primary_backend_used=False,
    )


class ThreatScorer:
    """Primary classifier backend with heuristic fallback"""

    def __init__(
        self,
        backend: Optional[ClassifierBackend] = None,
        window_size: Optional[int] = None,
    ):
        self.backend = backend
        self.window_size = window_size or settings.ANALYSIS_WINDOW_SIZE

    def analyze(self, logs: Sequence[RequestLog]) -> ThreatAnalysis:
        """Analyze the newest `window_size` entries of a newest-first sequence"""
        window = list(logs[: self.window_size])

        primary = self._predict(window)
        if primary is not None:
            return primary
        return heuristic_analysis(window)

    def _predict(self, window: List[RequestLog]) -> Optional[ThreatAnalysis]:
        if self.backend is None:
            return None

        try:
            if not self.backend.is_ready():
                logger.debug("Classifier backend not ready, using heuristic analysis")
                return None
            result = self.backend.predict(window)
            if isinstance(result, ThreatAnalysis):
                result = result.model_dump()
            analysis = ThreatAnalysis.model_validate(result)
        except SchemaValidationError as e:
            logger.warning(f"Classifier backend returned invalid analysis: {e}")
            return None
        except Exception as e:
            logger.warning(f"Classifier backend failed, using heuristic analysis: {e}", exc_info=True)
            return None

        return analysis.model_copy(update={"is_primary_backend_used": True})
