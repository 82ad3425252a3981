# documents.py
"""
Read-only inputs for the PDF engine.

Everything here is rebuilt per render from query results and never mutated
by the layout code, so two orders can be rendered side by side without
sharing anything.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from models import DeviceChecklistItem, WorkOrder
from settings import get_system_settings

logger = logging.getLogger(__name__)


class OrderNotFoundError(LookupError):
    pass


class ChecklistStatus(str, Enum):
    OK = "ok"
    DAMAGED = "damaged"
    REPLACED = "replaced"
    UNTESTED = "no_probado"

    @property
    def suffix(self) -> str:
        return {
            ChecklistStatus.OK: " (ok)",
            ChecklistStatus.DAMAGED: " (dañada)",
            ChecklistStatus.REPLACED: " (rep)",
            ChecklistStatus.UNTESTED: " (no probado)",
        }[self]

    @classmethod
    def parse(cls, value) -> Optional["ChecklistStatus"]:
        if isinstance(value, cls):
            return value
        raw = (str(value or "")).strip().lower()
        if not raw:
            return None
        if raw == "untested":
            return cls.UNTESTED
        try:
            return cls(raw)
        except ValueError:
            logger.debug("Ignoring unknown checklist status %r", value)
            return None


@dataclass(frozen=True)
class DeviceInfo:
    model: str = ""
    serial_number: str = ""
    unlock_code: str = ""
    unlock_pattern: tuple[int, ...] = ()

    def credential_lines(self) -> list[str]:
        lines = []
        if self.serial_number:
            lines.append(f"IMEI: {self.serial_number}")
        if self.unlock_code:
            lines.append(f"PASSCODE: {self.unlock_code}")
        if self.unlock_pattern:
            lines.append(f"PASSCODE: {''.join(str(p) for p in self.unlock_pattern)}")
        return lines

    @property
    def credential(self) -> str:
        if self.unlock_code:
            return self.unlock_code
        return "".join(str(p) for p in self.unlock_pattern)


@dataclass(frozen=True)
class BranchInfo:
    name: str = ""
    legal_name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""


@dataclass(frozen=True)
class CustomerInfo:
    name: str = ""
    phone: str = ""
    phone_country_code: str = ""
    email: str = ""
    address: str = ""


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    unit_price: float
    # Rendered as stored, never recomputed from quantity * unit_price
    total: float
    description: str = ""


@dataclass(frozen=True)
class ChecklistEntry:
    label: str
    status: Optional[ChecklistStatus] = None


@dataclass(frozen=True)
class LogoConfig:
    # bytes, a data: URL, an http(s) URL or a local path
    source: bytes | str | None = None
    width: float = 33
    height: float = 22


@dataclass(frozen=True)
class RenderConfig:
    logo: LogoConfig = field(default_factory=LogoConfig)
    warranty_policies: tuple[str, ...] = ()

    def policies_for(self, warranty_days: int) -> list[str]:
        return [p.replace("{warrantyDays}", str(warranty_days)) for p in self.warranty_policies]

    @classmethod
    def from_settings(cls, settings: dict) -> "RenderConfig":
        logo_cfg = settings.get("pdf_logo") or {}
        policies_cfg = settings.get("warranty_policies") or {}
        return cls(
            logo=LogoConfig(
                source=logo_cfg.get("url") or None,
                width=float(logo_cfg.get("width") or 33),
                height=float(logo_cfg.get("height") or 22),
            ),
            warranty_policies=tuple(str(p) for p in (policies_cfg.get("policies") or [])),
        )


@dataclass(frozen=True)
class OrderDocument:
    order_number: str
    created_at: datetime
    device: DeviceInfo = field(default_factory=DeviceInfo)
    problem_description: str = ""
    warranty_days: int = 0
    replacement_cost: float = 0.0
    line_items: tuple[LineItem, ...] = ()
    notes: tuple[str, ...] = ()
    checklist: tuple[ChecklistEntry, ...] = ()
    branch: Optional[BranchInfo] = None
    customer: Optional[CustomerInfo] = None
    commitment_date: Optional[date] = None

    def __post_init__(self):
        if self.warranty_days < 0:
            raise ValueError(f"warranty_days must be >= 0, got {self.warranty_days}")

    @property
    def services_value(self) -> float:
        return round(sum(li.total for li in self.line_items), 2)

    @property
    def total(self) -> float:
        return round(self.services_value + (self.replacement_cost or 0.0), 2)


# -----------------------------
# Builders from ORM rows
# -----------------------------
def _checklist_entries(session, order: WorkOrder) -> tuple[ChecklistEntry, ...]:
    statuses = order.checklist_data or {}
    if not statuses:
        return ()
    items = session.execute(
        select(DeviceChecklistItem)
        .where(DeviceChecklistItem.device_type == order.device_type)
        .order_by(DeviceChecklistItem.item_order, DeviceChecklistItem.id)
    ).scalars().all()
    return tuple(
        ChecklistEntry(label=item.item_name, status=ChecklistStatus.parse(statuses.get(item.item_name)))
        for item in items
    )


def order_document_from_model(session, order: WorkOrder) -> OrderDocument:
    branch = None
    if order.branch is not None:
        b = order.branch
        branch = BranchInfo(
            name=(b.name or "").strip(),
            legal_name=(b.razon_social or "").strip(),
            address=(b.address or "").strip(),
            phone=(b.phone or "").strip(),
            email=(b.email or "").strip(),
        )
    else:
        logger.debug("Order %s has no branch", order.order_number)

    customer = None
    if order.customer is not None:
        c = order.customer
        customer = CustomerInfo(
            name=(c.name or "").strip(),
            phone=(c.phone or "").strip(),
            phone_country_code=(c.phone_country_code or "").strip(),
            email=(c.email or "").strip(),
            address=(c.address or "").strip(),
        )
    else:
        logger.debug("Order %s has no customer", order.order_number)

    pattern = order.device_unlock_pattern if isinstance(order.device_unlock_pattern, list) else []
    device = DeviceInfo(
        model=(order.device_model or "").strip(),
        serial_number=(order.device_serial_number or "").strip(),
        unlock_code=(order.device_unlock_code or "").strip(),
        unlock_pattern=tuple(int(p) for p in pattern),
    )

    line_items = tuple(
        LineItem(
            name=(s.service_name or "").strip(),
            quantity=int(s.quantity or 1),
            unit_price=float(s.unit_price or 0.0),
            total=s.line_total(),
            description=(s.description or "").strip(),
        )
        for s in order.services
    )

    return OrderDocument(
        order_number=order.order_number,
        created_at=order.created_at,
        device=device,
        problem_description=(order.problem_description or "").strip(),
        warranty_days=int(order.warranty_days or 0),
        replacement_cost=float(order.replacement_cost or 0.0),
        line_items=line_items,
        notes=tuple(n.note.strip() for n in order.notes if (n.note or "").strip()),
        checklist=_checklist_entries(session, order),
        branch=branch,
        customer=customer,
        commitment_date=order.commitment_date,
    )


def load_order_document(session, order_id: int) -> tuple[OrderDocument, RenderConfig]:
    order = session.execute(
        select(WorkOrder)
        .options(
            selectinload(WorkOrder.services),
            selectinload(WorkOrder.notes),
            selectinload(WorkOrder.branch),
            selectinload(WorkOrder.customer),
        )
        .where(WorkOrder.id == order_id)
    ).scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError(f"Order not found: id={order_id}")

    config = RenderConfig.from_settings(get_system_settings(session))
    return order_document_from_model(session, order), config
