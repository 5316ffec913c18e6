"""Tests for insight generation"""
import pytest

from app.schemas.waf import AttackType, InsightKind, InsightSeverity, RequestStatus, ThreatAnalysis
from app.services.insight_service import InsightGenerator, multi_vector_sources, severity_for
from app.services.threat_service import heuristic_analysis
from tests.factories import make_log, mixed_window


@pytest.mark.parametrize(
    "score,expected",
    [
        (0, InsightSeverity.LOW),
        (24.9, InsightSeverity.LOW),
        (25, InsightSeverity.MEDIUM),
        (49.9, InsightSeverity.MEDIUM),
        (50, InsightSeverity.HIGH),
        (74.9, InsightSeverity.HIGH),
        (75, InsightSeverity.CRITICAL),
        (100, InsightSeverity.CRITICAL),
    ],
)
def test_severity_ladder(score, expected):
    assert severity_for(score) == expected


def test_multi_vector_sources():
    assert multi_vector_sources(mixed_window()) == ["1.1.1.1"]


def kinds(insights):
    return [insight.kind for insight in insights]


class TestInsightGenerator:

    def test_quiet_traffic_yields_threat_level_only(self):
        logs = [make_log() for _ in range(5)]
        insights = InsightGenerator(0.2).generate(heuristic_analysis(logs), logs)

        assert kinds(insights) == [InsightKind.THREAT_LEVEL]
        assert insights[0].severity == InsightSeverity.LOW
        assert insights[0].title == "Threat Level Assessment"
        assert insights[0].confidence == 0.75
        assert insights[0].recommendation is None

    def test_mixed_window(self):
        window = mixed_window()
        insights = InsightGenerator(0.2).generate(heuristic_analysis(window), window)

        assert kinds(insights) == [
            InsightKind.THREAT_LEVEL,
            InsightKind.ATTACK_PATTERNS,
            InsightKind.ACCESS_PATTERNS,
            InsightKind.RECOMMENDATIONS,
        ]
        threat, patterns, access, recommendations = insights
        assert patterns.description == "1 source showing sophisticated attack patterns."
        assert patterns.confidence == 0.78
        assert threat.severity == InsightSeverity.HIGH
        assert "multiple attack types" in threat.recommendation
        assert access.description == (
            "Detected unusual access patterns: Login attack attempt, Attempted admin access"
        )
        assert recommendations.confidence == 0.75

    def test_primary_backend_titles_and_confidence(self):
        analysis = ThreatAnalysis(
            threat_score=80,
            attack_likelihood={AttackType.SQL_INJECTION: 0.6, AttackType.XSS: 0.25},
            anomaly_score=90,
            is_primary_backend_used=True,
        )
        insights = InsightGenerator(0.2).generate(analysis, [])
        by_kind = {insight.kind: insight for insight in insights}

        assert by_kind[InsightKind.THREAT_LEVEL].title == "ML-Powered Threat Analysis"
        assert by_kind[InsightKind.THREAT_LEVEL].severity == InsightSeverity.CRITICAL
        assert by_kind[InsightKind.ANOMALY].confidence == pytest.approx(0.9)
        assert by_kind[InsightKind.ANOMALY].severity == InsightSeverity.CRITICAL
        assert by_kind[InsightKind.ATTACK_PATTERNS].confidence == 0.92
        assert by_kind[InsightKind.ATTACK_PATTERNS].description.startswith("SQL Injection activity")
        assert "Cross-Site Scripting" in by_kind[InsightKind.ATTACK_PATTERNS].description
        assert by_kind[InsightKind.RECOMMENDATIONS].confidence == 0.89

    def test_anomaly_alert_threshold(self):
        generator = InsightGenerator(0.2)
        at_threshold = ThreatAnalysis(threat_score=10, anomaly_score=50)
        above = ThreatAnalysis(threat_score=10, anomaly_score=60)

        assert InsightKind.ANOMALY not in kinds(generator.generate(at_threshold, []))
        anomaly = [i for i in generator.generate(above, []) if i.kind == InsightKind.ANOMALY][0]
        assert anomaly.severity == InsightSeverity.HIGH

    def test_likelihood_threshold_is_strict(self):
        analysis = ThreatAnalysis(threat_score=10, attack_likelihood={AttackType.XSS: 0.2})
        assert InsightKind.ATTACK_PATTERNS not in kinds(InsightGenerator(0.2).generate(analysis, []))
        assert InsightKind.ATTACK_PATTERNS in kinds(InsightGenerator(0.1).generate(analysis, []))

    def test_recommendations(self):
        generator = InsightGenerator(0.2)
        analysis = ThreatAnalysis(
            threat_score=71,
            attack_likelihood={AttackType.SQL_INJECTION: 0.31, AttackType.XSS: 0.31},
            anomaly_score=71,
        )
        logs = [make_log(RequestStatus.BLOCKED, AttackType.PATH_TRAVERSAL) for _ in range(3)]

        items = generator.recommendations(analysis, logs)

        assert len(items) == 6
        assert items[0].startswith("Activate aggressive blocking")

    def test_allowed_requests_to_admin_are_ignored(self):
        logs = [make_log(path="/admin/login")]
        insights = InsightGenerator(0.2).generate(heuristic_analysis(logs), logs)
        assert InsightKind.ACCESS_PATTERNS not in kinds(insights)

    def test_generate_never_raises(self):
        assert InsightGenerator(0.2).generate(None, []) == []

    def test_volume_findings(self):
        logs = [make_log(RequestStatus.BLOCKED, AttackType.SQL_INJECTION, "4.4.4.4") for _ in range(4)]
        logs += [make_log(RequestStatus.BLOCKED, AttackType.XSS, f"5.5.5.{i}") for i in range(4)]
        logs += [make_log(RequestStatus.BLOCKED, AttackType.XSS, "4.4.4.4")]
        logs += [
            make_log(RequestStatus.BLOCKED, AttackType.PATH_TRAVERSAL, "6.6.6.6"),
            make_log(RequestStatus.FLAGGED, AttackType.OTHER, "6.6.6.6"),
        ]

        assert InsightGenerator.volume_findings(logs) == [
            "Elevated SQL injection attempts detected.",
            "Increased XSS attack activity observed.",
            "2 sources showing sophisticated attack patterns.",
        ]

    def test_attack_patterns_without_likely_category(self):
        # No likelihood above the threshold, but one source mixes attack types
        logs = [
            make_log(RequestStatus.BLOCKED, AttackType.SQL_INJECTION, "1.1.1.1"),
            make_log(RequestStatus.BLOCKED, AttackType.XSS, "1.1.1.1"),
        ] + [make_log() for _ in range(18)]
        analysis = ThreatAnalysis(threat_score=20)

        insights = InsightGenerator(0.2).generate(analysis, logs)
        patterns = [i for i in insights if i.kind == InsightKind.ATTACK_PATTERNS]

        assert len(patterns) == 1
        assert patterns[0].description == "1 source showing sophisticated attack patterns."
        assert patterns[0].severity == InsightSeverity.LOW
