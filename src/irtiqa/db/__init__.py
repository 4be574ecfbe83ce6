"""
Database module for Irtiqa.
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from irtiqa.db.orm import (
    AlertStatus,
    AlertType,
    AuditLog,
    Base,
    Case,
    CaseStatus,
    CaseTeamMember,
    CrisisAlert,
    TeamRole,
    User,
    UserRole,
)


def create_engine(url: str, settings: Any = None, **kwargs: Any) -> AsyncEngine:
    """
    Create the async engine with storage timeouts applied.

    SQLite connections get explicit BEGIN handling so SAVEPOINTs behave like
    they do on PostgreSQL. SQLite has no row locks, so every transaction
    takes the database write lock when it begins (BEGIN IMMEDIATE); writers
    then run one at a time as they would behind SELECT ... FOR UPDATE.
    """
    if url.startswith("sqlite"):
        if settings is not None:
            # busy timeout while another transaction holds the write lock
            kwargs.setdefault("connect_args", {"timeout": settings.db_command_timeout_seconds})
        engine = create_async_engine(url, **kwargs)

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    if settings is not None:
        timeout_ms = int(settings.db_command_timeout_seconds * 1000)
        kwargs.setdefault("pool_timeout", settings.db_pool_timeout_seconds)
        kwargs.setdefault(
            "connect_args",
            {
                "command_timeout": settings.db_command_timeout_seconds,
                "server_settings": {"statement_timeout": str(timeout_ms)},
            },
        )
    kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


__all__ = [
    "Base",
    "User",
    "UserRole",
    "Case",
    "CaseStatus",
    "CaseTeamMember",
    "TeamRole",
    "CrisisAlert",
    "AlertStatus",
    "AlertType",
    "AuditLog",
    "create_engine",
    "create_session_factory",
]
