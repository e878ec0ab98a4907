"""Initial schema: users, workers and tasks

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "tasks" in existing_tables:
        return

    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(100), nullable=False, unique=True),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="User"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # Create workers table
    op.create_table(
        "workers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("worker_id", sa.String(100), nullable=False, unique=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="Inactive"),
        sa.Column("host_address", sa.String(255)),
        sa.Column("port", sa.Integer, nullable=False, server_default="0"),
        sa.Column("registered_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("last_heartbeat", sa.DateTime),
        sa.Column("tasks_processed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tasks_failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("owner_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
    )
    op.create_index("idx_workers_status_heartbeat", "workers", ["status", "last_heartbeat"])

    # Create tasks table
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(100), nullable=False, unique=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="Pending"),
        sa.Column("task_type", sa.String(50), nullable=False, server_default="Default"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("result", sa.Text),
        sa.Column("error_message", sa.Text),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer, nullable=False, server_default="3"),
        sa.Column("owner_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("worker_ref", sa.Integer, sa.ForeignKey("workers.id", ondelete="SET NULL")),
        sa.Column("stream_entry_id", sa.String(100)),
    )
    op.create_index("idx_tasks_status_started_at", "tasks", ["status", "started_at"])
    op.create_index("idx_tasks_owner_created_at", "tasks", ["owner_id", "created_at"])
    op.create_index("idx_tasks_worker_ref", "tasks", ["worker_ref"])


def downgrade() -> None:
    op.drop_table("tasks")
    op.drop_table("workers")
    op.drop_table("users")
