"""System initialization and setup utilities"""
import asyncio
import logging
import os
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url

from app.core.config import Settings, settings
from app.core.database import AsyncSessionLocal, create_tables, engine
from app.schemas.waf import AttackType, FirewallRuleCreate, RuleAction
from app.services.snapshot_service import DatabaseSnapshotGateway, PersistenceGateway
from app.services.threat_service import ClassifierBackend
from app.services.rule_service import RuleStore
from app.services.waf_service import WAFService

logger = logging.getLogger(__name__)


DEFAULT_RULES: List[FirewallRuleCreate] = [
    FirewallRuleCreate(
        name="SQL Injection Protection",
        pattern=r"('|--|;|drop\s+table|select\s+\*)",
        type=AttackType.SQL_INJECTION,
        action=RuleAction.BLOCK,
    ),
    FirewallRuleCreate(
        name="XSS Protection",
        pattern=r"(<script>|javascript:|onerror=|onload=)",
        type=AttackType.XSS,
        action=RuleAction.BLOCK,
    ),
    FirewallRuleCreate(
        name="Path Traversal Protection",
        pattern=r"(\.\.|%2e%2e|/etc/passwd)",
        type=AttackType.PATH_TRAVERSAL,
        action=RuleAction.BLOCK,
    ),
    FirewallRuleCreate(
        name="Command Injection Protection",
        pattern=r"(;\s*[a-z]+|`.*`|\|\s*[a-z]+)",
        type=AttackType.COMMAND_INJECTION,
        action=RuleAction.BLOCK,
    ),
    FirewallRuleCreate(
        name="Log Suspicious IPs",
        pattern="",
        type=AttackType.SUSPICIOUS_IP,
        action=RuleAction.FLAG,
    ),
]


def seed_rules(rules: RuleStore) -> None:
    """Install the default rule set into an empty rule store"""
    for rule_data in DEFAULT_RULES:
        rules.add(rule_data)
    logger.info(f"Seeded {len(DEFAULT_RULES)} default rules")


async def build_service(
    gateway: Optional[PersistenceGateway] = None,
    backend: Optional[ClassifierBackend] = None,
    config: Optional[Settings] = None,
) -> WAFService:
    """Create the service from the stored snapshot, or from defaults"""
    service = WAFService(gateway=gateway, backend=backend, config=config)

    snapshot = await gateway.load_snapshot() if gateway else None
    if snapshot is None:
        seed_rules(service.rules)
        return service

    try:
        service.restore(snapshot)
    except Exception as e:
        logger.error(f"Stored snapshot is unusable, starting from defaults: {e}", exc_info=True)
        service = WAFService(gateway=gateway, backend=backend, config=config)
        seed_rules(service.rules)
    return service


def load_threat_backend(config: Settings = settings) -> Optional[ClassifierBackend]:
    """Load the trained classifier backend if one is configured"""
    if not config.THREAT_MODEL_PATH:
        return None

    from app.services.ml_backend import SklearnThreatBackend

    backend = SklearnThreatBackend(
        model_path=config.THREAT_MODEL_PATH,
        noise_scale=config.THREAT_NOISE_SCALE,
        seed=config.THREAT_NOISE_SEED,
    )
    if not os.path.exists(config.THREAT_MODEL_PATH):
        logger.warning(f"Threat model {config.THREAT_MODEL_PATH} not found, using heuristic analysis")
        return backend

    try:
        backend.load()
    except Exception as e:
        logger.warning(f"Failed to load threat model, using heuristic analysis: {e}")
    return backend


def ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)


async def check_database_connection() -> bool:
    """Check database connection"""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        logger.info("Database connection successful")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


async def init_system() -> WAFService:
    """Initialize system on startup"""
    logger.info(f"Initializing {settings.APP_NAME}...")

    ensure_sqlite_directory(settings.DATABASE_URL)

    gateway: Optional[PersistenceGateway] = None
    if await check_database_connection():
        try:
            await create_tables(engine)
            gateway = DatabaseSnapshotGateway(AsyncSessionLocal)
        except Exception as e:
            logger.warning(f"Table creation failed, running without persistence: {e}")
    else:
        logger.warning("Running without persistence")

    service = await build_service(gateway=gateway, backend=load_threat_backend())
    logger.info(
        f"System initialized: {len(service.list_rules())} rules, "
        f"{len(service.list_blocked())} blocked identifiers"
    )
    return service


if __name__ == "__main__":
    asyncio.run(init_system())
