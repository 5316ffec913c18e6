"""Tests for database snapshot persistence"""
import pytest

from app.core.database import create_engine_and_sessionmaker, create_tables
from app.core.init import build_service
from app.schemas.waf import InspectRequest, WafSnapshot
from app.services.snapshot_service import DatabaseSnapshotGateway
from tests.factories import mixed_window


@pytest.fixture
async def db_gateway(tmp_path):
    engine, session_factory = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path}/waf.db")
    await create_tables(engine)
    yield DatabaseSnapshotGateway(session_factory)
    await engine.dispose()


async def test_empty_database_has_no_snapshot(db_gateway):
    assert await db_gateway.load_snapshot() is None


async def test_database_without_tables_fails_softly(tmp_path):
    engine, session_factory = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path}/bare.db")
    gateway = DatabaseSnapshotGateway(session_factory)

    assert await gateway.load_snapshot() is None
    assert await gateway.save_snapshot(WafSnapshot()) is False
    await engine.dispose()


async def test_round_trip_preserves_order(db_gateway, test_settings):
    service = await build_service(config=test_settings)
    await service.block("9.9.9.9")
    await service.block("1.1.1.1")
    for path in ["/", "/?q=<script>", "/../etc/passwd", "/home"]:
        await service.process_request(InspectRequest(path=path, source_identifier="4.4.4.4"))
    snapshot = service.export_snapshot()

    assert await db_gateway.save_snapshot(snapshot) is True
    loaded = await db_gateway.load_snapshot()

    assert loaded.rules == snapshot.rules
    assert loaded.logs == snapshot.logs
    assert loaded.blocklist == ["1.1.1.1", "9.9.9.9"]
    assert loaded.stats == snapshot.stats


async def test_save_replaces_previous_snapshot(db_gateway):
    logs = mixed_window()
    await db_gateway.save_snapshot(WafSnapshot(logs=logs, blocklist=["a"]))
    await db_gateway.save_snapshot(WafSnapshot(logs=logs[:2], blocklist=["b"]))

    loaded = await db_gateway.load_snapshot()

    assert [log.id for log in loaded.logs] == [log.id for log in logs[:2]]
    assert loaded.blocklist == ["b"]


async def test_service_restores_from_database(db_gateway, test_settings):
    original = await build_service(gateway=db_gateway, config=test_settings)
    await original.process_request(InspectRequest(path="/?q=<script>", source_identifier="3.3.3.3"))
    await original.flush()

    restored = await build_service(gateway=db_gateway, config=test_settings)

    assert restored.list_logs() == original.list_logs()
    assert restored.get_stats() == original.get_stats()
    assert [rule.id for rule in restored.list_rules()] == [rule.id for rule in original.list_rules()]
