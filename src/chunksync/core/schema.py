# src/chunksync/core/schema.py
"""SQLAlchemy table definitions.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Chunks ===

chunks_table = Table(
    "chunks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Back-reference to the runtime's job, set when the job starts
    Column("job_id", String(64)),
    Column("name", String(255), nullable=False),
    Column("group_name", String(255), nullable=False),
    Column("status", String(32), nullable=False),
    # JSON lines, immutable after insert
    Column("payload", Text, nullable=False),
    # Epoch seconds
    Column("start", Float),
    Column("end", Float),
    Column("created_at", Float, nullable=False),
)

Index("ix_chunks_status", chunks_table.c.status)
Index("ix_chunks_group_name", chunks_table.c.group_name)
Index("ix_chunks_start", chunks_table.c.start)
Index("ix_chunks_end", chunks_table.c.end)
Index("ix_chunks_job_id", chunks_table.c.job_id)
Index("ix_chunks_created_at", chunks_table.c.created_at)

# === Shared State ===

shared_state_table = Table(
    "shared_state",
    metadata,
    Column("key", String(255), primary_key=True),
    # JSON document
    Column("value", Text, nullable=False),
    # Epoch seconds; NULL never expires
    Column("expires_at", Float),
)
