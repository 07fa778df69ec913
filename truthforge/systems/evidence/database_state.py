"""
TruthForge — Database State Source

Observes the data layer the project actually has:
  - SQLite files: table list and ``PRAGMA integrity_check``
  - ``.env`` variables that point at remote databases (names only, never values)
  - ORM / migration config files

Any integrity problem is reported as an inconsistency entry; the
validation engine treats a non-empty inconsistency list as reality
contradicting a database claim.
"""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any

import structlog
from dotenv import dotenv_values

from truthforge.systems.evidence.base import EvidenceSource
from truthforge.systems.evidence.scanning import iter_files, relative
from truthforge.systems.evidence.types import (
    ERROR_STATUS,
    DatabaseInfo,
    DatabaseStateEvidence,
)

logger = structlog.get_logger().bind(system="evidence", component="database_state")

_SQLITE_PATTERNS: tuple[str, ...] = ("*.db", "*.sqlite", "*.sqlite3")

_DATABASE_URL_VARS: tuple[str, ...] = (
    "DATABASE_URL", "POSTGRES_URL", "MONGODB_URL", "MONGO_URL", "MYSQL_URL", "REDIS_URL",
)

_CONFIG_FILES: tuple[str, ...] = (
    "alembic.ini",
    "prisma/schema.prisma",
    "knexfile.js",
    "sequelize.config.js",
    "typeorm.config.ts",
)


class DatabaseStateSource(EvidenceSource[DatabaseStateEvidence]):
    def __init__(self, root: Path, excluded_dirs: list[str] | None = None) -> None:
        self._root = root
        self._excluded = excluded_dirs or []

    @property
    def source_name(self) -> str:
        return "database_state"

    async def collect(self) -> DatabaseStateEvidence:
        return await asyncio.to_thread(self._collect_sync)

    def degraded(self, error: str) -> DatabaseStateEvidence:
        return DatabaseStateEvidence(
            status=ERROR_STATUS,
            error=error,
            inconsistencies=[{"type": "validation_error", "error": error}],
        )

    def _collect_sync(self) -> DatabaseStateEvidence:
        evidence = DatabaseStateEvidence()

        for db_file in iter_files(self._root, _SQLITE_PATTERNS, self._excluded):
            self._inspect_sqlite(db_file, evidence)

        env_file = self._root / ".env"
        if env_file.exists():
            try:
                evidence.connections.extend(self._env_connections(env_file))
            except (OSError, ValueError) as exc:
                evidence.inconsistencies.append({"type": "env_file_error", "error": str(exc)})

        for name in _CONFIG_FILES:
            if (self._root / name).exists():
                evidence.connections.append({"type": "config_file", "file": name, "detected": True})

        logger.debug(
            "database_state_collected",
            databases=len(evidence.databases),
            inconsistencies=len(evidence.inconsistencies),
        )
        return evidence

    def _inspect_sqlite(self, db_file: Path, evidence: DatabaseStateEvidence) -> None:
        name = relative(db_file, self._root)
        try:
            # Read-only URI so probing never creates or mutates a database
            conn = sqlite3.connect(f"{db_file.resolve().as_uri()}?mode=ro", uri=True, timeout=5.0)
        except sqlite3.Error as exc:
            evidence.inconsistencies.append({"database": name, "type": "access_error", "error": str(exc)})
            return

        try:
            try:
                rows = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
                ).fetchall()
            except sqlite3.Error as exc:
                evidence.inconsistencies.append({"database": name, "type": "access_error", "error": str(exc)})
                return

            tables = [r[0] for r in rows]
            evidence.databases.append(
                DatabaseInfo(type="sqlite", file=name, tables=tables, table_count=len(tables))
            )

            try:
                result = [r[0] for r in conn.execute("PRAGMA integrity_check").fetchall()]
            except sqlite3.DatabaseError as exc:
                evidence.inconsistencies.append(
                    {"database": name, "type": "integrity_check_failed", "error": str(exc)}
                )
                return
            if result != ["ok"]:
                evidence.inconsistencies.append(
                    {"database": name, "type": "integrity_check", "issue": "; ".join(map(str, result))}
                )
        finally:
            conn.close()

    @staticmethod
    def _env_connections(env_file: Path) -> list[dict[str, Any]]:
        return [
            {"type": "environment_variable", "variable": var, "detected": True}
            for var in dotenv_values(env_file)
            if any(marker in var for marker in _DATABASE_URL_VARS)
        ]
