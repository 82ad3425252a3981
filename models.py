# models.py
from __future__ import annotations

from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    create_engine,
    String,
    Integer,
    Float,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)

# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class Branch(Base):
    """
    A shop location ("sucursal"). Every contact field is optional; the PDF
    branch panel grows or shrinks with whatever is filled in.
    """
    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    razon_social: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)   # legal name
    address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    phone_country_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)


class WorkOrder(Base):
    """
    One repair order. Money columns are CLP amounts, tax-inclusive.
    checklist_data maps checklist item name -> status (ok/damaged/replaced/no_probado).
    """
    __tablename__ = "work_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)

    branch_id: Mapped[Optional[int]] = mapped_column(ForeignKey("branches.id"), nullable=True, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("customers.id"), nullable=True, index=True)

    device_type: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    device_model: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    device_serial_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    device_unlock_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    device_unlock_pattern: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    problem_description: Mapped[str] = mapped_column(String, nullable=False, default="")
    checklist_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    warranty_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    labor_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    replacement_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_repair_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="en_proceso")
    commitment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Stored standard-profile PDF (file path on disk)
    pdf_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    pdf_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    branch: Mapped[Optional["Branch"]] = relationship()
    customer: Mapped[Optional["Customer"]] = relationship()
    services: Mapped[list["OrderService"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderService.id",
    )
    notes: Mapped[list["OrderNote"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderNote.created_at",
    )


class OrderService(Base):
    __tablename__ = "order_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True)

    service_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Stored as entered; may legitimately differ from quantity * unit_price
    total_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    order: Mapped["WorkOrder"] = relationship(back_populates="services")

    def line_total(self) -> float:
        if self.total_price is not None:
            return float(self.total_price)
        return float(self.quantity or 1) * float(self.unit_price or 0.0)


class OrderNote(Base):
    __tablename__ = "order_notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    note: Mapped[str] = mapped_column(String, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    order: Mapped["WorkOrder"] = relationship(back_populates="notes")


class DeviceChecklistItem(Base):
    """Inspection items per device type, rendered in item_order."""
    __tablename__ = "device_checklist_items"
    __table_args__ = (UniqueConstraint("device_type", "item_name", name="uq_checklist_type_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    device_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    item_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SystemSetting(Base):
    """Key/JSON settings rows, e.g. pdf_logo and warranty_policies."""
    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    setting_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    setting_value: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# -----------------------------
# Engine / Session factory
# -----------------------------
def make_engine(db_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine.
    Note: SQLite path must exist (instance/ folder). db_init.py creates it.
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
