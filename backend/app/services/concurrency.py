# Overview: Storage transaction helpers for multi-statement writes.

from __future__ import annotations

from sqlalchemy import text

from ..extensions import db


def begin_write_transaction() -> None:
    """
    Open the storage transaction for a multi-statement write.

    On SQLite this takes the write lock up front (BEGIN IMMEDIATE) so two
    sales never interleave inside the same database file; a writer that
    cannot get the lock within the driver's busy timeout fails with
    OperationalError. Other dialects rely on the row locks taken by the
    UPDATE statements themselves.
    """
    if db.engine.dialect.name == "sqlite":
        # Close the implicit read transaction left by request auth lookups
        db.session.commit()
        db.session.execute(text("BEGIN IMMEDIATE"))
