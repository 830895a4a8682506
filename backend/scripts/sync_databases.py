#!/usr/bin/env python3
"""Copy reference data between two Velociti databases.

The source may be an older deployment whose column names drifted; each table
has a rename map applied before rows are upserted (by primary key) into the
target. Columns the target does not have are dropped.

Examples:
  python backend/scripts/sync_databases.py --source postgresql+asyncpg://... --target postgresql+asyncpg://...
  python backend/scripts/sync_databases.py --source ... --target ... --tables alerts activities --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog
from sqlalchemy import JSON, MetaData, Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine

import db.models  # noqa: F401
from db.session import Base

logger = structlog.get_logger()

# Parents before children so foreign keys resolve.
DEFAULT_TABLES = ("agents", "alerts", "feedback", "route_performance", "activities")

# table -> {source column: target column}
COLUMN_MAPS: dict[str, dict[str, str]] = {
    "agents": {
        "totalAnalyses": "total_analyses",
        "successfulPredictions": "successful_predictions",
        "lastActive": "last_active",
        "updatedAt": "updated_at",
    },
    "alerts": {
        "route_id": "route",
        "raw_data": "metadata",
        "impact": "impact_score",
    },
    "route_performance": {
        "routeName": "route_name",
        "loadFactor": "load_factor",
        "competitorPrice": "competitor_price",
        "ourPrice": "our_price",
        "demandIndex": "demand_index",
    },
    "activities": {
        "agentId": "agent_id",
        "userId": "user_id",
        "createdAt": "created_at",
    },
}


def remap_row(table: str, row: dict[str, Any], target_columns: set[str]) -> dict[str, Any]:
    """Rename source columns for table and keep only those the target has."""
    renames = COLUMN_MAPS.get(table, {})
    mapped: dict[str, Any] = {}
    for column, value in row.items():
        name = renames.get(column, column)
        if name in target_columns and name not in mapped:
            mapped[name] = value
    return mapped


def _decode_json_columns(table: Table, row: dict[str, Any]) -> dict[str, Any]:
    for column in table.columns:
        value = row.get(column.name)
        if isinstance(column.type, JSON) and isinstance(value, str):
            try:
                row[column.name] = json.loads(value)
            except ValueError:
                row[column.name] = {"raw": value}
    return row


def _upsert(dialect_name: str, table: Table, rows: list[dict[str, Any]]):
    insert = postgresql.insert if dialect_name == "postgresql" else sqlite.insert
    stmt = insert(table).values(rows)
    keys = [c.name for c in table.primary_key.columns]
    updates = {c.name: stmt.excluded[c.name] for c in table.columns if c.name not in keys and c.name in rows[0]}
    if not updates:
        return stmt.on_conflict_do_nothing(index_elements=keys)
    return stmt.on_conflict_do_update(index_elements=keys, set_=updates)


async def _reflect(conn: AsyncConnection) -> MetaData:
    metadata = MetaData()
    await conn.run_sync(metadata.reflect)
    return metadata


async def sync_table(source: AsyncConnection, target: AsyncConnection, source_tables: MetaData, table_name: str, dry_run: bool) -> dict[str, Any]:
    target_table = Base.metadata.tables[table_name]
    source_table = source_tables.tables.get(table_name)
    if source_table is None:
        logger.warning("sync.table_missing_in_source", table=table_name)
        return {"table": table_name, "status": "skipped", "reason": "missing_in_source", "rows": 0}

    target_columns = {c.name for c in target_table.columns}
    result = await source.execute(select(source_table))
    rows = [
        _decode_json_columns(target_table, remap_row(table_name, dict(r._mapping), target_columns))
        for r in result.all()
    ]
    rows = [r for r in rows if all(r.get(k.name) is not None for k in target_table.primary_key.columns)]
    renames = COLUMN_MAPS.get(table_name, {})
    dropped = sorted(c.name for c in source_table.columns if renames.get(c.name, c.name) not in target_columns)

    if rows and not dry_run:
        # Rows can carry different column subsets; group so each statement is uniform.
        groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
        for row in rows:
            groups.setdefault(tuple(sorted(row)), []).append(row)
        for group in groups.values():
            await target.execute(_upsert(target.dialect.name, target_table, group))

    logger.info("sync.table_done", table=table_name, rows=len(rows), dropped_columns=dropped, dry_run=dry_run)
    return {
        "table": table_name,
        "status": "dry_run" if dry_run else "synced",
        "rows": len(rows),
        "dropped_columns": dropped,
    }


async def sync_databases(
    source_url: str,
    target_url: str,
    tables: list[str] | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    selected = list(tables or DEFAULT_TABLES)
    unknown = [t for t in selected if t not in Base.metadata.tables]
    if unknown:
        raise ValueError(f"Unknown tables: {', '.join(unknown)}")

    source_engine = create_async_engine(source_url)
    target_engine = create_async_engine(target_url)
    try:
        async with source_engine.connect() as source, target_engine.connect() as target:
            source_tables = await _reflect(source)
            results = [await sync_table(source, target, source_tables, t, dry_run) for t in selected]
            if not dry_run:
                await target.commit()
    finally:
        await source_engine.dispose()
        await target_engine.dispose()

    return {
        "status": "success",
        "dry_run": dry_run,
        "tables": results,
        "total_rows": sum(r["rows"] for r in results),
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Copy Velociti tables between databases")
    parser.add_argument("--source", default=os.environ.get("SOURCE_DATABASE_URL"), help="Source database URL")
    parser.add_argument("--target", default=os.environ.get("DATABASE_URL"), help="Target database URL")
    parser.add_argument("--tables", nargs="+", default=None, help=f"Tables to copy (default: {' '.join(DEFAULT_TABLES)})")
    parser.add_argument("--dry-run", action="store_true", help="Read and remap rows without writing")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON summary")
    args = parser.parse_args(argv)

    if not args.source or not args.target:
        parser.error("--source and --target are required (or SOURCE_DATABASE_URL / DATABASE_URL)")

    try:
        summary = asyncio.run(sync_databases(args.source, args.target, args.tables, args.dry_run))
    except ValueError as exc:
        print(json.dumps({"status": "failed", "error": str(exc)}))
        return 1

    print(json.dumps(summary, indent=2 if args.pretty else None, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
