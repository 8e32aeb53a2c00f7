"""ORM Models for Precision Pulse — SQLAlchemy 2.0"""
import uuid
from datetime import datetime, date
from typing import Optional
from sqlalchemy import (
    String, Text, Boolean, Integer, Numeric, DateTime, Date,
    ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


def gen_uuid():
    return str(uuid.uuid4())


# ── USER ACCOUNTS ─────────────────────────────────────────────────────────────
class UserAccount(Base):
    __tablename__ = "user_accounts"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    # Worker | Lead | Supervisor | Building Manager | HR | HQ | Admin | Super Admin
    access_role: Mapped[str] = mapped_column(String(50), nullable=False, default="Worker")
    building: Mapped[Optional[str]] = mapped_column(String(20))
    shift: Mapped[Optional[str]] = mapped_column(String(10))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── WORKFORCE ─────────────────────────────────────────────────────────────────
class Workforce(Base):
    __tablename__ = "workforce"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    building: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    shift: Mapped[Optional[str]] = mapped_column(String(10))
    role: Mapped[Optional[str]] = mapped_column(String(100))   # "Lumper", "Lead", "Supervisor" ...
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── WORK ORDERS ───────────────────────────────────────────────────────────────
class WorkOrder(Base):
    __tablename__ = "work_orders"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    building: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    shift: Mapped[str] = mapped_column(String(10), nullable=False, default="1st")
    work_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by_user_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("user_accounts.id"))
    created_by_email: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    containers: Mapped[list["Container"]] = relationship("Container", back_populates="work_order", passive_deletes=True)


# ── CONTAINERS ────────────────────────────────────────────────────────────────
class Container(Base):
    __tablename__ = "containers"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    building: Mapped[str] = mapped_column(String(20), nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False, default="1st")
    work_date: Mapped[Optional[date]] = mapped_column(Date)
    container_no: Mapped[str] = mapped_column(String(100), nullable=False)
    pieces_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skus_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    palletized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Stored at save time; later pay-table changes must not touch history
    pay_total: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    damage_pieces: Mapped[int] = mapped_column(Integer, default=0)
    rework_pieces: Mapped[int] = mapped_column(Integer, default=0)
    # [{name, worker_id, minutes_worked, percent_contribution, payout}]
    workers: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    work_order_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("work_orders.id", ondelete="SET NULL"))
    created_by_user_id: Mapped[Optional[str]] = mapped_column(UUID(as_uuid=False), ForeignKey("user_accounts.id"))
    created_by_email: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    work_order: Mapped[Optional["WorkOrder"]] = relationship("WorkOrder", back_populates="containers")

    __table_args__ = (
        Index("ix_containers_scope", "building", "shift", "work_date"),
    )


# ── DAMAGE REPORTS ────────────────────────────────────────────────────────────
class DamageReport(Base):
    __tablename__ = "damage_reports"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    building: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    shift: Mapped[Optional[str]] = mapped_column(String(10))
    container_no: Mapped[Optional[str]] = mapped_column(String(100))
    pieces_total: Mapped[int] = mapped_column(Integer, default=0)
    pieces_damaged: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="Open")   # Open | In Review | Closed
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── STAFFING PLANS ────────────────────────────────────────────────────────────
class StaffingPlan(Base):
    __tablename__ = "staffing_plans"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    building: Mapped[str] = mapped_column(String(20), nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False)
    plan_date: Mapped[date] = mapped_column(Date, nullable=False)
    required_total: Mapped[int] = mapped_column(Integer, default=0)
    required_lumpers: Mapped[int] = mapped_column(Integer, default=0)
    required_equipment: Mapped[int] = mapped_column(Integer, default=0)
    required_leads: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("building", "shift", "plan_date", name="uq_staffing_plan_slot"),
    )


# ── TRAINING ──────────────────────────────────────────────────────────────────
class TrainingModule(Base):
    __tablename__ = "training_modules"
    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=gen_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    building: Mapped[Optional[str]] = mapped_column(String(20))   # NULL = every building
    required: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TrainingCompletion(Base):
    __tablename__ = "training_completions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("training_modules.id", ondelete="CASCADE"))
    workforce_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("workforce.id", ondelete="CASCADE"))
    completed_on: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("module_id", "workforce_id", name="uq_training_completion"),
    )
