"""operations_schema

Revision ID: 001_operations
Revises:
Create Date: 2026-10-18

Creates the operations tables:
- user_accounts (access role + home building/shift)
- workforce
- work_orders, containers (pay stored at save time, worker lines as JSONB)
- damage_reports, staffing_plans
- training_modules, training_completions

Each create is guarded by an existence check so the migration can be
stamped over a database that Base.metadata.create_all() already built.
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.dialects import postgresql

revision = '001_operations'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")

UUID = postgresql.UUID(as_uuid=False)


def _table_exists(conn, table_name: str) -> bool:
    result = conn.execute(
        text(
            "SELECT EXISTS("
            "  SELECT 1 FROM information_schema.tables"
            "  WHERE table_name = :tname"
            ")"
        ),
        {"tname": table_name},
    )
    return bool(result.scalar())


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    conn = op.get_bind()

    # ── user_accounts ─────────────────────────────────────────────────────────
    if not _table_exists(conn, 'user_accounts'):
        op.create_table(
            'user_accounts',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('email', sa.String(255), nullable=False, unique=True),
            sa.Column('hashed_password', sa.Text, nullable=False),
            sa.Column('name', sa.String(255), nullable=True),
            sa.Column('access_role', sa.String(50), nullable=False, server_default='Worker'),
            sa.Column('building', sa.String(20), nullable=True),
            sa.Column('shift', sa.String(10), nullable=True),
            sa.Column('active', sa.Boolean, server_default=sa.true()),
            _created_at(),
        )
        logger.info("Created table: user_accounts")

    # ── workforce ─────────────────────────────────────────────────────────────
    if not _table_exists(conn, 'workforce'):
        op.create_table(
            'workforce',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('full_name', sa.String(255), nullable=False),
            sa.Column('building', sa.String(20), nullable=True, index=True),
            sa.Column('shift', sa.String(10), nullable=True),
            sa.Column('role', sa.String(100), nullable=True),
            sa.Column('active', sa.Boolean, server_default=sa.true()),
            _created_at(),
        )
        logger.info("Created table: workforce")

    # ── work_orders ───────────────────────────────────────────────────────────
    if not _table_exists(conn, 'work_orders'):
        op.create_table(
            'work_orders',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('name', sa.String(255), nullable=True),
            sa.Column('building', sa.String(20), nullable=False, index=True),
            sa.Column('shift', sa.String(10), nullable=False, server_default='1st'),
            sa.Column('work_date', sa.Date, nullable=True),
            sa.Column('status', sa.String(20), nullable=False, server_default='Pending'),
            sa.Column('notes', sa.Text, nullable=True),
            sa.Column('created_by_user_id', UUID, sa.ForeignKey('user_accounts.id'), nullable=True),
            sa.Column('created_by_email', sa.String(255), nullable=True),
            _created_at(),
        )
        logger.info("Created table: work_orders")

    # ── containers ────────────────────────────────────────────────────────────
    if not _table_exists(conn, 'containers'):
        op.create_table(
            'containers',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('building', sa.String(20), nullable=False),
            sa.Column('shift', sa.String(10), nullable=False, server_default='1st'),
            sa.Column('work_date', sa.Date, nullable=True),
            sa.Column('container_no', sa.String(100), nullable=False),
            sa.Column('pieces_total', sa.Integer, nullable=False, server_default='0'),
            sa.Column('skus_total', sa.Integer, nullable=False, server_default='0'),
            sa.Column('palletized', sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column('pay_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('damage_pieces', sa.Integer, server_default='0'),
            sa.Column('rework_pieces', sa.Integer, server_default='0'),
            sa.Column('workers', postgresql.JSONB, nullable=False, server_default='[]'),
            sa.Column(
                'work_order_id', UUID,
                sa.ForeignKey('work_orders.id', ondelete='SET NULL'), nullable=True,
            ),
            sa.Column('created_by_user_id', UUID, sa.ForeignKey('user_accounts.id'), nullable=True),
            sa.Column('created_by_email', sa.String(255), nullable=True),
            _created_at(),
        )
        op.create_index('ix_containers_scope', 'containers', ['building', 'shift', 'work_date'])
        logger.info("Created table: containers")

    # ── damage_reports ────────────────────────────────────────────────────────
    if not _table_exists(conn, 'damage_reports'):
        op.create_table(
            'damage_reports',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('building', sa.String(20), nullable=False, index=True),
            sa.Column('shift', sa.String(10), nullable=True),
            sa.Column('container_no', sa.String(100), nullable=True),
            sa.Column('pieces_total', sa.Integer, server_default='0'),
            sa.Column('pieces_damaged', sa.Integer, server_default='0'),
            sa.Column('status', sa.String(20), server_default='Open'),
            sa.Column('notes', sa.Text, nullable=True),
            _created_at(),
        )
        logger.info("Created table: damage_reports")

    # ── staffing_plans ────────────────────────────────────────────────────────
    if not _table_exists(conn, 'staffing_plans'):
        op.create_table(
            'staffing_plans',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('building', sa.String(20), nullable=False),
            sa.Column('shift', sa.String(10), nullable=False),
            sa.Column('plan_date', sa.Date, nullable=False),
            sa.Column('required_total', sa.Integer, server_default='0'),
            sa.Column('required_lumpers', sa.Integer, server_default='0'),
            sa.Column('required_equipment', sa.Integer, server_default='0'),
            sa.Column('required_leads', sa.Integer, server_default='0'),
            sa.Column('notes', sa.Text, nullable=True),
            _created_at(),
            sa.UniqueConstraint('building', 'shift', 'plan_date', name='uq_staffing_plan_slot'),
        )
        logger.info("Created table: staffing_plans")

    # ── training ──────────────────────────────────────────────────────────────
    if not _table_exists(conn, 'training_modules'):
        op.create_table(
            'training_modules',
            sa.Column('id', UUID, primary_key=True),
            sa.Column('title', sa.String(255), nullable=False),
            sa.Column('building', sa.String(20), nullable=True),
            sa.Column('required', sa.Boolean, server_default=sa.true()),
            _created_at(),
        )
        logger.info("Created table: training_modules")

    if not _table_exists(conn, 'training_completions'):
        op.create_table(
            'training_completions',
            sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
            sa.Column(
                'module_id', UUID,
                sa.ForeignKey('training_modules.id', ondelete='CASCADE'), nullable=False,
            ),
            sa.Column(
                'workforce_id', UUID,
                sa.ForeignKey('workforce.id', ondelete='CASCADE'), nullable=False,
            ),
            sa.Column('completed_on', sa.Date, nullable=False),
            _created_at(),
            sa.UniqueConstraint('module_id', 'workforce_id', name='uq_training_completion'),
        )
        logger.info("Created table: training_completions")


def downgrade() -> None:
    conn = op.get_bind()
    for table in [
        'training_completions',
        'training_modules',
        'staffing_plans',
        'damage_reports',
        'containers',
        'work_orders',
        'workforce',
        'user_accounts',
    ]:
        if _table_exists(conn, table):
            op.drop_table(table)
