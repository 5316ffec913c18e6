"""Request disposition"""
from typing import NamedTuple, Optional

from app.schemas.waf import AttackType, InspectRequest, RequestStatus, RuleAction
from app.services.blocklist_service import BlocklistManager
from app.services.rule_service import RuleStore


class Decision(NamedTuple):
    status: RequestStatus
    attack_type: Optional[AttackType] = None
    rule_id: Optional[str] = None


ALLOW = Decision(RequestStatus.ALLOWED)


class RequestClassifier:
    """Decides ALLOWED / BLOCKED / FLAGGED for a single request"""

    def __init__(self, rules: RuleStore, blocklist: BlocklistManager):
        self.rules = rules
        self.blocklist = blocklist

    def classify(self, request: InspectRequest) -> Decision:
        # Blocklist takes precedence over every rule
        if self.blocklist.is_blocked(request.source_identifier):
            return Decision(RequestStatus.BLOCKED, AttackType.SUSPICIOUS_IP)

        for rule, matches in self.rules.iter_enabled():
            # Suspicious-IP rules are enforced through the blocklist
            if rule.type == AttackType.SUSPICIOUS_IP:
                continue
            if not matches(request.path):
                continue

            if rule.action == RuleAction.BLOCK:
                return Decision(RequestStatus.BLOCKED, rule.type, rule.id)
            if rule.action == RuleAction.FLAG:
                return Decision(RequestStatus.FLAGGED, rule.type, rule.id)
            return Decision(RequestStatus.ALLOWED, None, rule.id)

        return ALLOW
