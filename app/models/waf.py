"""WAF engine snapshot models"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Enum as SQLEnum

from app.core.database import Base
from app.schemas.waf import AttackType, RequestStatus, RuleAction, PatternSyntax


class WAFRule(Base):
    """Persisted firewall rule"""
    __tablename__ = "waf_rules"

    id = Column(String(64), primary_key=True)

    # Evaluation order, rules are matched by ascending position
    position = Column(Integer, nullable=False, index=True)

    name = Column(String(255), nullable=False)
    pattern = Column(Text, nullable=False, default="")
    type = Column(SQLEnum(AttackType), nullable=False)
    action = Column(SQLEnum(RuleAction), default=RuleAction.BLOCK, nullable=False)
    syntax = Column(SQLEnum(PatternSyntax), default=PatternSyntax.REGEX, nullable=False)
    case_sensitive = Column(Boolean, default=False, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class RequestLog(Base):
    """Persisted request decision"""
    __tablename__ = "waf_request_logs"

    id = Column(String(64), primary_key=True)

    # 0 is the newest entry
    position = Column(Integer, nullable=False, index=True)

    timestamp = Column(DateTime, nullable=False, index=True)
    source_identifier = Column(String(255), nullable=False, index=True)
    path = Column(Text, nullable=False)
    method = Column(String(16), nullable=False)
    user_agent = Column(String(1024), nullable=False)

    status = Column(SQLEnum(RequestStatus), nullable=False)
    attack_type = Column(SQLEnum(AttackType), nullable=True)
    rule_id = Column(String(64), nullable=True)

    country = Column(String(8), nullable=True)


class BlockedIdentifier(Base):
    """Blocklist membership"""
    __tablename__ = "waf_blocked_identifiers"

    identifier = Column(String(255), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class StatsSnapshot(Base):
    """Aggregate stats stored as a single JSON document"""
    __tablename__ = "waf_stats_snapshots"

    id = Column(Integer, primary_key=True)
    payload = Column(Text, nullable=False)  # WafStats JSON
    saved_at = Column(DateTime, default=datetime.utcnow, nullable=False)
