"""Human-readable findings from a threat analysis"""
import logging
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Sequence, Set

from app.core.config import settings
from app.schemas.waf import (
    AttackType,
    Insight,
    InsightKind,
    InsightSeverity,
    RequestLog,
    RequestStatus,
    ThreatAnalysis,
)

logger = logging.getLogger(__name__)

ANOMALY_ALERT_THRESHOLD = 50
HIGH_THREAT_THRESHOLD = 70
STRONG_LIKELIHOOD_THRESHOLD = 0.3
ELEVATED_ATTACK_COUNT = 3

SENSITIVE_PATHS = {
    "admin": "Attempted admin access",
    "login": "Login attack attempt",
}


def severity_for(score: float) -> InsightSeverity:
    """Map a 0-100 score to a severity; used for every insight kind"""
    if score >= 75:
        return InsightSeverity.CRITICAL
    if score >= 50:
        return InsightSeverity.HIGH
    if score >= 25:
        return InsightSeverity.MEDIUM
    return InsightSeverity.LOW


def multi_vector_sources(logs: Sequence[RequestLog]) -> List[str]:
    """Source identifiers that used more than one attack type"""
    types_by_source: Dict[str, Set[AttackType]] = defaultdict(set)
    for log in logs:
        if log.attack_type is not None:
            types_by_source[log.source_identifier].add(log.attack_type)
    return sorted(source for source, types in types_by_source.items() if len(types) > 1)


class InsightGenerator:
    """Renders severity-tagged insights; never raises"""

    def __init__(self, likelihood_threshold: Optional[float] = None):
        self.likelihood_threshold = (
            settings.INSIGHT_LIKELIHOOD_THRESHOLD
            if likelihood_threshold is None
            else likelihood_threshold
        )

    def generate(self, analysis: ThreatAnalysis, recent_logs: Sequence[RequestLog]) -> List[Insight]:
        try:
            recommendations = self.recommendations(analysis, recent_logs)
            candidates = [
                self._threat_level(analysis, recommendations),
                self._anomaly_alert(analysis),
                self._attack_patterns(analysis, recent_logs, recommendations),
                self._access_patterns(analysis, recent_logs),
                self._recommendations(analysis, recommendations),
            ]
            return [insight for insight in candidates if insight is not None]
        except Exception as e:
            logger.error(f"Insight generation failed: {e}", exc_info=True)
            return []

    def recommendations(self, analysis: ThreatAnalysis, recent_logs: Sequence[RequestLog]) -> List[str]:
        """Aggregate recommendations for the analysis and the logs it covered"""
        likelihood = analysis.attack_likelihood
        items: List[str] = []

        if analysis.threat_score > HIGH_THREAT_THRESHOLD:
            items.append("Activate aggressive blocking rules for high-risk requests.")
            items.append("Enable rate limiting for all API endpoints.")
        if likelihood[AttackType.SQL_INJECTION] > STRONG_LIKELIHOOD_THRESHOLD:
            items.append("Implement parameterized queries and additional SQL injection safeguards.")
        if likelihood[AttackType.XSS] > STRONG_LIKELIHOOD_THRESHOLD:
            items.append("Review Content-Security-Policy settings and implement additional XSS filters.")

        traversals = sum(1 for log in recent_logs if log.attack_type == AttackType.PATH_TRAVERSAL)
        if traversals > 2:
            items.append("Review file access permissions and restrict directory listing.")
        if multi_vector_sources(recent_logs):
            items.append("Automatically block sources that attempt multiple attack types.")
        if analysis.anomaly_score > HIGH_THREAT_THRESHOLD:
            items.append("Review recent traffic patterns for new attack vectors not currently detected by rules.")

        return items

    @staticmethod
    def volume_findings(recent_logs: Sequence[RequestLog]) -> List[str]:
        """Observations from raw attack counts and sources in the window"""
        findings: List[str] = []
        counts = Counter(log.attack_type for log in recent_logs if log.attack_type is not None)
        if counts[AttackType.SQL_INJECTION] > ELEVATED_ATTACK_COUNT:
            findings.append("Elevated SQL injection attempts detected.")
        if counts[AttackType.XSS] > ELEVATED_ATTACK_COUNT:
            findings.append("Increased XSS attack activity observed.")

        sources = multi_vector_sources(recent_logs)
        if sources:
            noun = "source" if len(sources) == 1 else "sources"
            findings.append(f"{len(sources)} {noun} showing sophisticated attack patterns.")
        return findings

    def _threat_level(self, analysis: ThreatAnalysis, recommendations: List[str]) -> Insight:
        score = analysis.threat_score
        if analysis.is_primary_backend_used:
            title = "ML-Powered Threat Analysis"
            description = (
                f"The classifier model has identified a threat level of {score:.0f}% "
                f"based on recent traffic patterns."
            )
            confidence = 0.85
        else:
            title = "Threat Level Assessment"
            description = (
                f"Heuristic analysis of recent traffic puts the threat level at {score:.0f}%."
            )
            confidence = 0.75

        return Insight(
            kind=InsightKind.THREAT_LEVEL,
            title=title,
            description=description,
            severity=severity_for(score),
            recommendation=recommendations[0] if recommendations else None,
            confidence=confidence,
        )

    def _anomaly_alert(self, analysis: ThreatAnalysis) -> Optional[Insight]:
        if analysis.anomaly_score <= ANOMALY_ALERT_THRESHOLD:
            return None

        return Insight(
            kind=InsightKind.ANOMALY,
            title="Anomaly Detection Alert",
            description=(
                f"Unusual traffic patterns detected with an anomaly score of "
                f"{analysis.anomaly_score:.1f}%."
            ),
            severity=severity_for(analysis.anomaly_score),
            recommendation="Investigate recent traffic for patterns that differ from your site's baseline.",
            confidence=analysis.anomaly_score / 100,
        )

    def _attack_patterns(
        self,
        analysis: ThreatAnalysis,
        recent_logs: Sequence[RequestLog],
        recommendations: List[str],
    ) -> Optional[Insight]:
        detected = [
            (attack_type, value)
            for attack_type, value in analysis.attack_likelihood.items()
            if value > self.likelihood_threshold
        ]
        detected.sort(key=lambda item: (-item[1], item[0].value))
        findings = [
            f"{attack_type.label} activity detected with {round(value * 100)}% likelihood."
            for attack_type, value in detected
        ]
        findings += self.volume_findings(recent_logs)
        if not findings:
            return None

        description = " ".join(findings)
        return Insight(
            kind=InsightKind.ATTACK_PATTERNS,
            title="Attack Pattern Analysis",
            description=description,
            severity=severity_for(analysis.threat_score),
            recommendation=recommendations[0] if recommendations else None,
            confidence=0.92 if analysis.is_primary_backend_used else 0.78,
        )

    def _access_patterns(self, analysis: ThreatAnalysis, recent_logs: Sequence[RequestLog]) -> Optional[Insight]:
        patterns: List[str] = []
        for log in recent_logs:
            if log.status == RequestStatus.ALLOWED:
                continue
            path = log.path.lower()
            for marker, pattern in SENSITIVE_PATHS.items():
                if marker in path and pattern not in patterns:
                    patterns.append(pattern)

        if not patterns:
            return None

        return Insight(
            kind=InsightKind.ACCESS_PATTERNS,
            title="Suspicious Access Patterns",
            description=f"Detected unusual access patterns: {', '.join(patterns)}",
            severity=severity_for(analysis.threat_score),
            confidence=0.88 if analysis.is_primary_backend_used else 0.72,
        )

    def _recommendations(self, analysis: ThreatAnalysis, recommendations: List[str]) -> Optional[Insight]:
        if not recommendations:
            return None

        source = "model analysis" if analysis.is_primary_backend_used else "recent activity"
        return Insight(
            kind=InsightKind.RECOMMENDATIONS,
            title="Security Recommendations",
            description=f"Based on {source}, we recommend: {' '.join(recommendations)}",
            severity=severity_for(analysis.threat_score),
            confidence=0.89 if analysis.is_primary_backend_used else 0.75,
        )
