"""WAF and security schemas"""
from datetime import datetime, timezone
from typing import Optional, Dict, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum


class AttackType(str, Enum):
    """Attack category attached to a rule or a decision"""
    SQL_INJECTION = "sql_injection"
    XSS = "xss"
    PATH_TRAVERSAL = "path_traversal"
    COMMAND_INJECTION = "command_injection"
    SUSPICIOUS_IP = "suspicious_ip"
    RATE_LIMIT = "rate_limit"
    OTHER = "other"

    @property
    def label(self) -> str:
        return ATTACK_TYPE_LABELS[self]


ATTACK_TYPE_LABELS = {
    AttackType.SQL_INJECTION: "SQL Injection",
    AttackType.XSS: "Cross-Site Scripting",
    AttackType.PATH_TRAVERSAL: "Path Traversal",
    AttackType.COMMAND_INJECTION: "Command Injection",
    AttackType.SUSPICIOUS_IP: "Suspicious IP",
    AttackType.RATE_LIMIT: "Rate Limit Exceeded",
    AttackType.OTHER: "Other Threat",
}


def empty_attack_counts() -> Dict[AttackType, int]:
    return {attack_type: 0 for attack_type in AttackType}


def empty_attack_likelihood() -> Dict[AttackType, float]:
    return {attack_type: 0.0 for attack_type in AttackType}


class RequestStatus(str, Enum):
    """Disposition of an inspected request"""
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    FLAGGED = "flagged"


class RuleAction(str, Enum):
    """WAF rule action"""
    BLOCK = "block"
    ALLOW = "allow"
    FLAG = "flag"


class PatternSyntax(str, Enum):
    """How a rule pattern is interpreted"""
    REGEX = "regex"
    LITERAL = "literal"


# ==================== Rules ====================

class FirewallRuleCreate(BaseModel):
    """Schema for firewall rule creation"""
    name: str = Field(..., min_length=1, max_length=255)
    pattern: str = Field(default="", max_length=2048)
    type: AttackType = Field(default=AttackType.OTHER)
    action: RuleAction = Field(default=RuleAction.BLOCK)
    syntax: PatternSyntax = Field(default=PatternSyntax.REGEX)
    case_sensitive: bool = Field(default=False)
    enabled: bool = Field(default=True)


class FirewallRuleUpdate(BaseModel):
    """Schema for firewall rule update"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    pattern: Optional[str] = Field(None, max_length=2048)
    type: Optional[AttackType] = None
    action: Optional[RuleAction] = None
    syntax: Optional[PatternSyntax] = None
    case_sensitive: Optional[bool] = None
    enabled: Optional[bool] = None


class FirewallRule(BaseModel):
    """Stored firewall rule"""
    id: str
    name: str
    pattern: str = ""
    type: AttackType
    action: RuleAction
    syntax: PatternSyntax = PatternSyntax.REGEX
    case_sensitive: bool = False
    enabled: bool = True
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== Requests ====================

class InspectRequest(BaseModel):
    """Structured request record submitted for inspection"""
    source_identifier: str = Field(default="0.0.0.0", min_length=1, max_length=255)
    path: str = Field(default="/", max_length=8192)
    method: str = Field(default="GET", max_length=16)
    user_agent: str = Field(default="Unknown", max_length=1024)
    country: Optional[str] = Field(None, max_length=8)
    timestamp: Optional[datetime] = None

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.upper()

    @field_validator("timestamp")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Logs and stats buckets are kept in naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class RequestLog(BaseModel):
    """Immutable record of one classified request"""
    id: str
    timestamp: datetime
    source_identifier: str
    path: str
    method: str
    user_agent: str
    status: RequestStatus
    attack_type: Optional[AttackType] = None
    country: Optional[str] = None
    rule_id: Optional[str] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)


class InspectResponse(BaseModel):
    """Result of request inspection"""
    status: RequestStatus
    attack_type: Optional[AttackType] = None
    log_id: str


# ==================== Stats ====================

class TopBlockedEntry(BaseModel):
    identifier: str
    count: int = Field(..., ge=0)


class TimeBucket(BaseModel):
    hour: datetime
    count: int = Field(default=0, ge=0)
    blocked: int = Field(default=0, ge=0)


class WafStats(BaseModel):
    """Aggregate security statistics"""
    total_requests: int = 0
    blocked_requests: int = 0
    allowed_requests: int = 0
    flagged_requests: int = 0
    attacks_by_type: Dict[AttackType, int] = Field(default_factory=empty_attack_counts)
    top_blocked: List[TopBlockedEntry] = Field(default_factory=list)
    requests_over_time: List[TimeBucket] = Field(default_factory=list)

    @field_validator("attacks_by_type")
    @classmethod
    def fill_attack_types(cls, v: Dict[AttackType, int]) -> Dict[AttackType, int]:
        counts = empty_attack_counts()
        counts.update(v)
        return counts


# ==================== Threat analysis ====================

class ThreatAnalysis(BaseModel):
    """Threat estimate for a window of recent requests"""
    threat_score: float = Field(..., ge=0, le=100)
    attack_likelihood: Dict[AttackType, float] = Field(default_factory=empty_attack_likelihood)
    anomaly_score: float = Field(default=0, ge=0, le=100)
    is_primary_backend_used: bool = False

    @field_validator("attack_likelihood")
    @classmethod
    def check_likelihood(cls, v: Dict[AttackType, float]) -> Dict[AttackType, float]:
        likelihood = empty_attack_likelihood()
        for attack_type, value in v.items():
            if not 0 <= value <= 1:
                raise ValueError(f"likelihood for {attack_type.value} out of range: {value}")
            likelihood[attack_type] = value
        return likelihood


class InsightSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class InsightKind(str, Enum):
    THREAT_LEVEL = "threat_level"
    ANOMALY = "anomaly"
    ATTACK_PATTERNS = "attack_patterns"
    ACCESS_PATTERNS = "access_patterns"
    RECOMMENDATIONS = "recommendations"


class Insight(BaseModel):
    """Human-readable finding derived from a threat analysis"""
    kind: InsightKind
    title: str
    description: str
    severity: InsightSeverity
    recommendation: Optional[str] = None
    confidence: float = Field(..., ge=0, le=1)


class AnalysisWindowRequest(BaseModel):
    """Optional explicit window supplied to analysis endpoints"""
    logs: Optional[List[RequestLog]] = None


# ==================== Persistence ====================

class WafSnapshot(BaseModel):
    """Everything needed to restore engine state"""
    rules: List[FirewallRule] = Field(default_factory=list)
    logs: List[RequestLog] = Field(default_factory=list)
    blocklist: List[str] = Field(default_factory=list)
    stats: WafStats = Field(default_factory=WafStats)
