"""scikit-learn classifier backend for threat analysis"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import joblib
import numpy as np
from numpy.typing import NDArray
from sklearn.neural_network import MLPClassifier

from app.schemas.waf import AttackType, RequestLog, RequestStatus, ThreatAnalysis
from app.services.threat_service import FEATURE_NAMES, extract_features, round_half_up

logger = logging.getLogger(__name__)
FloatArray = NDArray[np.float64]

# Threat level classes predicted by the model
MINIMAL, LOW, MEDIUM, HIGH = 0, 1, 2, 3
THREAT_LEVELS = [MINIMAL, LOW, MEDIUM, HIGH]


def label_batch(batch: Sequence[RequestLog]) -> int:
    """Threat level for a batch of logs, from blocked ratio and attack variety"""
    blocked_ratio = sum(1 for log in batch if log.status == RequestStatus.BLOCKED) / len(batch)
    attack_types = len({log.attack_type for log in batch if log.attack_type is not None})

    if blocked_ratio > 0.3 and attack_types >= 3:
        return HIGH
    if blocked_ratio > 0.2 or attack_types >= 2:
        return MEDIUM
    if blocked_ratio > 0.1 or attack_types >= 1:
        return LOW
    return MINIMAL


def build_training_data(
    logs: Sequence[RequestLog],
    batch_size: int = 50,
    min_batch: int = 10,
) -> Tuple[FloatArray, NDArray[np.int64]]:
    """Slice historical logs into batches and label each one"""
    features: List[List[float]] = []
    labels: List[int] = []

    for start in range(0, len(logs), batch_size):
        batch = logs[start:start + batch_size]
        if len(batch) < min_batch:
            continue
        features.append(extract_features(batch))
        labels.append(label_batch(batch))

    return (
        np.asarray(features, dtype=np.float64).reshape(-1, len(FEATURE_NAMES)),
        np.asarray(labels, dtype=np.int64),
    )


class SklearnThreatBackend:
    """
    Multi-layer perceptron over the window feature vector.

    The per-category likelihoods can be blended with random noise to model
    prediction uncertainty. The noise is off unless ``noise_scale`` is set,
    and it is drawn from a generator seeded with ``seed``, so repeated runs
    with the same seed are reproducible.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        noise_scale: float = 0.0,
        seed: Optional[int] = None,
    ):
        self.model_path = model_path
        self.model = MLPClassifier(
            hidden_layer_sizes=(16, 8),
            activation="relu",
            solver="adam",
            max_iter=500,
            random_state=42,
        )
        self.is_trained = False
        self.noise_scale = noise_scale
        self.rng = np.random.default_rng(seed)

    def is_ready(self) -> bool:
        return self.is_trained

    def train(self, features: Any, labels: Any) -> None:
        """Fit the model; labels may be class indices or one-hot rows"""
        x = np.asarray(features, dtype=np.float64)
        y = np.asarray(labels)
        if y.ndim == 2:
            y = y.argmax(axis=1)

        if len(x) == 0:
            raise ValueError("No training samples")

        self.model.fit(x, y)
        self.is_trained = True
        logger.info(
            "Trained threat model on %d samples, classes %s",
            len(x),
            list(self.model.classes_),
        )

    def predict(self, window: Sequence[RequestLog]) -> ThreatAnalysis:
        if not self.is_trained:
            raise RuntimeError("Threat model is not trained")

        features = extract_features(window)
        probabilities = self._class_probabilities(features)
        threat_score = round_half_up((probabilities[MEDIUM] * 0.6 + probabilities[HIGH] * 0.4) * 100)

        return ThreatAnalysis(
            threat_score=min(100, max(0, threat_score)),
            attack_likelihood=self._attack_likelihood(features, window),
            anomaly_score=self._anomaly_score(features),
            is_primary_backend_used=True,
        )

    def save(self, path: Optional[str] = None) -> None:
        path = path or self.model_path
        if not path:
            raise ValueError("No model path configured")
        if not self.is_trained:
            raise ValueError("No trained model to save")

        model_data = {
            "model": self.model,
            "feature_names": FEATURE_NAMES,
            "is_trained": self.is_trained,
        }
        joblib.dump(model_data, path)
        logger.info("Saved threat model to %s", path)

    def load(self, path: Optional[str] = None) -> None:
        path = path or self.model_path
        if not path:
            raise ValueError("No model path configured")

        model_data = joblib.load(path)
        if model_data.get("feature_names") != FEATURE_NAMES:
            raise ValueError("Threat model was trained on a different feature set")

        self.model = model_data["model"]
        self.is_trained = model_data["is_trained"]
        logger.info("Loaded threat model from %s", path)

    def _class_probabilities(self, features: List[float]) -> Dict[int, float]:
        raw = self.model.predict_proba(np.asarray([features], dtype=np.float64))[0]
        probabilities = {level: 0.0 for level in THREAT_LEVELS}
        for level, value in zip(self.model.classes_, raw):
            probabilities[int(level)] = float(value)
        return probabilities

    def _noise(self) -> float:
        if self.noise_scale <= 0:
            return 0.0
        return float(self.rng.random()) * self.noise_scale

    def _attack_likelihood(
        self, features: List[float], window: Sequence[RequestLog]
    ) -> Dict[AttackType, float]:
        total = len(window) or 1
        base = {
            attack_type: sum(1 for log in window if log.attack_type == attack_type) / total
            for attack_type in AttackType
        }
        base[AttackType.SQL_INJECTION] = features[4]
        base[AttackType.XSS] = features[5]
        base[AttackType.PATH_TRAVERSAL] = features[6]
        # Volume arriving in a tight burst
        base[AttackType.RATE_LIMIT] = features[0] * (1 - features[9])

        return {
            attack_type: min(1.0, max(0.0, value * 0.7 + self._noise() * 0.3))
            for attack_type, value in base.items()
        }

    @staticmethod
    def _anomaly_score(features: List[float]) -> float:
        attack_rate, mean_gap = features[7], features[9]
        return min((abs(attack_rate - 0.1) + abs(mean_gap - 0.5)) * 50, 100.0)
