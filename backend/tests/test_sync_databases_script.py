"""
sync_databases script — column remapping, upserts and dry runs between SQLite files.
"""

import json
import uuid

import pytest
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import create_async_engine

from db.models import Agent, Alert
from db.session import Base
from scripts.sync_databases import main, remap_row, sync_databases

ALERT_ID = "6f1c2a4e-8d3b-4c61-9a0e-2b7f5d1e9c33"


class TestRemapRow:
    def test_renames_and_drops(self):
        row = {"id": 1, "route_id": "LGW-BCN", "raw_data": {"a": 1}, "impact": 10.0, "feedback_count": 3}
        mapped = remap_row("alerts", row, {"id", "route", "metadata", "impact_score"})
        assert mapped == {"id": 1, "route": "LGW-BCN", "metadata": {"a": 1}, "impact_score": 10.0}

    def test_target_name_already_present_wins(self):
        mapped = remap_row("alerts", {"route": "STN-AMS", "route_id": "LGW-BCN"}, {"route"})
        assert mapped == {"route": "STN-AMS"}

    def test_unmapped_table_passes_through(self):
        assert remap_row("users", {"id": "x", "legacy": 1}, {"id"}) == {"id": "x"}


@pytest.fixture
async def databases(tmp_path):
    source_url = f"sqlite+aiosqlite:///{tmp_path / 'source.db'}"
    target_url = f"sqlite+aiosqlite:///{tmp_path / 'target.db'}"

    source = create_async_engine(source_url)
    async with source.begin() as conn:
        await conn.execute(
            text(
                "CREATE TABLE agents (id VARCHAR(50) PRIMARY KEY, name VARCHAR(255), status VARCHAR(20), "
                "accuracy FLOAT, totalAnalyses INTEGER, successfulPredictions INTEGER, updatedAt DATETIME)"
            )
        )
        await conn.execute(
            text(
                "INSERT INTO agents VALUES ('competitive', 'Competitive Intelligence', 'active', 91.0, 12, 7, "
                "'2025-01-01 00:00:00')"
            )
        )
        await conn.execute(
            text(
                "CREATE TABLE alerts (id VARCHAR(36) PRIMARY KEY, title TEXT, description TEXT, priority VARCHAR(20), "
                "category VARCHAR(20), status VARCHAR(20), route_id VARCHAR(50), agent_id VARCHAR(50), raw_data TEXT, "
                "feedback_count INTEGER, impact FLOAT, created_at DATETIME)"
            )
        )
        await conn.execute(
            text(
                "INSERT INTO alerts VALUES (:id, 'Ryanair fare cut', 'Imported', 'critical', 'competitive', 'active', "
                "'LGW-BCN', 'competitive', :raw, 4, 87500.0, '2025-01-02 09:30:00')"
            ),
            {"id": ALERT_ID, "raw": json.dumps({"competitor": "Ryanair", "priceChange": -25})},
        )
    await source.dispose()

    target = create_async_engine(target_url)
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await target.dispose()

    return source_url, target_url


async def _read_target(target_url):
    engine = create_async_engine(target_url)
    try:
        async with engine.connect() as conn:
            agents = (await conn.execute(select(Agent.__table__))).mappings().all()
            alerts = (await conn.execute(select(Alert.__table__))).mappings().all()
        return agents, alerts
    finally:
        await engine.dispose()


@pytest.mark.asyncio
class TestSyncDatabases:
    async def test_copies_and_remaps(self, databases):
        source_url, target_url = databases
        summary = await sync_databases(source_url, target_url, ["agents", "alerts"])

        assert summary["total_rows"] == 2
        by_table = {t["table"]: t for t in summary["tables"]}
        assert by_table["alerts"]["dropped_columns"] == ["feedback_count"]

        agents, alerts = await _read_target(target_url)
        assert agents[0]["total_analyses"] == 12
        assert agents[0]["successful_predictions"] == 7
        alert = alerts[0]
        assert alert["id"] == uuid.UUID(ALERT_ID)
        assert alert["route"] == "LGW-BCN"
        assert alert["impact_score"] == 87500.0
        assert alert["metadata"] == {"competitor": "Ryanair", "priceChange": -25}

    async def test_second_run_upserts(self, databases):
        source_url, target_url = databases
        await sync_databases(source_url, target_url, ["agents", "alerts"])
        await sync_databases(source_url, target_url, ["agents", "alerts"])

        agents, alerts = await _read_target(target_url)
        assert len(agents) == 1
        assert len(alerts) == 1

    async def test_dry_run_writes_nothing(self, databases):
        source_url, target_url = databases
        summary = await sync_databases(source_url, target_url, ["agents", "alerts"], dry_run=True)

        assert summary["dry_run"] is True
        assert summary["total_rows"] == 2
        agents, alerts = await _read_target(target_url)
        assert agents == [] and alerts == []

    async def test_table_missing_in_source_is_skipped(self, databases):
        source_url, target_url = databases
        summary = await sync_databases(source_url, target_url, ["activities"])
        assert summary["tables"][0]["status"] == "skipped"

    async def test_unknown_table_rejected(self, databases):
        source_url, target_url = databases
        with pytest.raises(ValueError, match="Unknown tables"):
            await sync_databases(source_url, target_url, ["bookings"])


def test_cli_reports_unknown_table(tmp_path, capsys):
    url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"
    code = main(["--source", url, "--target", url, "--tables", "bookings"])
    assert code == 1
    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["status"] == "failed"
