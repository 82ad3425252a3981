# pdf_service.py
import base64
import io
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

import qrcode
import requests
from reportlab.lib.units import mm

from config import Config
from documents import OrderDocument, RenderConfig, load_order_document
from formatting import format_clp, format_date, format_datetime, format_phone
from models import WorkOrder
from pdf_layout import (
    BLACK,
    WHITE,
    Box,
    Cursor,
    PanelPair,
    branch_fields,
    checklist_text,
    compose_policy_block,
    customer_fields,
    measure_equipment_panel,
    measure_info_panel,
    measure_width,
    policy_chrome_height,
    render_equipment_panel,
    render_panel_pair,
    render_policy_block,
    render_signature,
    signature_reserve,
    split_tax,
    tax_label,
    with_bullet,
)
from pdf_surface import PdfSurface

logger = logging.getLogger(__name__)


class Profile(str, Enum):
    STANDARD = "standard"
    TAPE = "tape"
    LABEL = "label"

    @classmethod
    def parse(cls, value) -> "Profile":
        if isinstance(value, cls):
            return value
        raw = (str(value or "")).strip().lower() or cls.STANDARD.value
        try:
            return cls(raw)
        except ValueError:
            raise ValueError(f"Unknown PDF profile: {value!r} (expected standard, tape or label)") from None


@dataclass(frozen=True)
class RenderResources:
    logo: Optional[bytes] = None
    qr: Optional[bytes] = None


@dataclass
class DocumentLayout:
    profile: Profile
    page_width: float
    page_height: float
    sections: dict = field(default_factory=dict)
    policy_font_size: Optional[float] = None
    end_y: float = 0.0


@dataclass
class RenderedDocument:
    profile: Profile
    content: bytes
    layout: DocumentLayout
    # Only kept for the standard profile, so callers can drive a print dialog
    surface: Optional[PdfSurface] = None


def _safe_filename(name: str) -> str:
    # strip characters not allowed on Windows/mac paths
    return re.sub(r'[\\/*?:"<>|]', "", (name or "")).strip() or "Orden"


# -----------------------------
# External resources (logo, QR)
# -----------------------------
def order_url(order_number: str) -> str:
    return f"{Config.ORDER_URL_BASE}/{order_number}"


def encode_qr(url: str, width: int = 60, margin: int = 1) -> bytes:
    qr = qrcode.QRCode(border=margin)
    qr.add_data(url)
    qr.make(fit=True)
    qr.box_size = max(1, width // (qr.modules_count + 2 * margin))
    image = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def load_logo(source, timeout: float | None = None) -> Optional[bytes]:
    """
    Accepts raw bytes, a data: URL, an http(s) URL or a file path.
    Web-root paths like "/logo.png" that don't exist locally fall back to
    Config.DEFAULT_LOGO_PATH. Raises on any fetch/decode problem.
    """
    if not source:
        return None
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)

    src = str(source).strip()
    if src.startswith("data:"):
        _, _, payload = src.partition(",")
        return base64.b64decode(payload)
    if src.startswith(("http://", "https://")):
        r = requests.get(src, timeout=timeout or Config.LOGO_FETCH_TIMEOUT)
        r.raise_for_status()
        return r.content

    path = Path(src)
    if not path.is_file():
        path = Path(Config.DEFAULT_LOGO_PATH)
    return path.read_bytes()


def fetch_resources(
    order: OrderDocument,
    config: RenderConfig,
    profile: Profile,
    logo_loader: Callable = load_logo,
    qr_encoder: Callable = encode_qr,
) -> RenderResources:
    """
    Everything a layout needs from the outside world, fetched up front.
    A failed fetch only drops that element from the document.
    """
    if profile is Profile.LABEL:
        return RenderResources()

    logo = None
    try:
        logo = logo_loader(config.logo.source)
    except Exception:
        logger.warning("Could not load PDF logo from %r", config.logo.source, exc_info=True)

    qr = None
    try:
        qr = qr_encoder(order_url(order.order_number), width=80 if profile is Profile.TAPE else 60, margin=1)
    except Exception:
        logger.warning("Could not generate QR for order %s", order.order_number, exc_info=True)

    return RenderResources(logo=logo, qr=qr)


# -----------------------------
# Standard profile (A4, mm)
# -----------------------------
A4_WIDTH = 210
A4_HEIGHT = 297
MARGIN = 15
HEADER_HEIGHT = 32
HEADER_BG = (200, 200, 200)
BADGE_BG = (80, 80, 80)
BADGE_TEXT = "N° Orden:"
QR_SIZE = 20
PANELS_TOP = HEADER_HEIGHT + 8
PANEL_GAP = 10
SECTION_GAP = 5


def _render_standard_header(surface, order: OrderDocument, config: RenderConfig, resources: RenderResources) -> Cursor:
    page_w = surface.page_width
    surface.set_fill_color(HEADER_BG)
    surface.rect(0, 0, page_w, HEADER_HEIGHT, "F")

    if resources.logo:
        logo_h = config.logo.height
        surface.image(resources.logo, MARGIN, (HEADER_HEIGHT - logo_h) / 2, config.logo.width, logo_h)

    # Order badge in the middle of the band, number and date below it
    badge_w = measure_width(surface, BADGE_TEXT, 8, bold=True) + 6
    badge_h = 7
    badge_x = (page_w - badge_w) / 2
    badge_y = 8
    surface.set_fill_color(BADGE_BG)
    surface.rect(badge_x, badge_y, badge_w, badge_h, "F")
    surface.set_text_color(WHITE)
    surface.text(BADGE_TEXT, badge_x + 3, badge_y + 5)

    surface.set_text_color(BLACK)
    surface.set_font(False, 8)
    number_y = badge_y + badge_h + 4
    surface.text_centered(order.order_number, number_y, x=badge_x, width=badge_w)
    surface.set_font(False, 7)
    surface.text_centered(format_datetime(order.created_at), number_y + 4, x=badge_x, width=badge_w)

    if resources.qr:
        surface.image(resources.qr, page_w - MARGIN - QR_SIZE, 6, QR_SIZE, QR_SIZE)

    return Cursor(PANELS_TOP)


def render_standard(order: OrderDocument, config: RenderConfig, resources: RenderResources,
                    surface_factory: Callable = PdfSurface, tax_rate: float = 0.19) -> RenderedDocument:
    surface = surface_factory(A4_WIDTH, A4_HEIGHT, unit="mm", title=f"Orden {order.order_number}")
    content_w = surface.page_width - 2 * MARGIN

    cursor = _render_standard_header(surface, order, config, resources)

    panel_w = (content_w - PANEL_GAP) / 2
    pair = PanelPair(
        left=measure_info_panel(surface, "SUCURSAL", branch_fields(order.branch), panel_w),
        right=measure_info_panel(surface, "CLIENTE", customer_fields(order.customer), panel_w),
    )
    cursor = render_panel_pair(surface, cursor, MARGIN, content_w, PANEL_GAP, pair)
    cursor = cursor.advance(SECTION_GAP)

    equipment = measure_equipment_panel(surface, order, content_w)
    cursor = render_equipment_panel(surface, Box(MARGIN, cursor.y, content_w, equipment.height), equipment, order, tax_rate)
    cursor = cursor.advance(SECTION_GAP)

    # The signature must still fit under the policies on this page
    budget = surface.page_height - cursor.y - signature_reserve() - MARGIN - policy_chrome_height()
    block = compose_policy_block(surface, config.policies_for(order.warranty_days), content_w, budget)
    cursor = render_policy_block(surface, Box(MARGIN, cursor.y, content_w, block.height), block)

    cursor = render_signature(surface, cursor)

    layout = DocumentLayout(
        profile=Profile.STANDARD,
        page_width=surface.page_width,
        page_height=surface.page_height,
        sections={
            "branch": pair.left.height,
            "customer": pair.right.height,
            "info_panels": pair.height,
            "equipment": equipment.height,
            "policies": block.height,
        },
        policy_font_size=block.font_size,
        end_y=cursor.y,
    )
    return RenderedDocument(Profile.STANDARD, surface.output(), layout, surface)


# -----------------------------
# Continuous tape profile (80 x 2000 mm roll, pt)
# -----------------------------
TAPE_WIDTH = 80 * mm
TAPE_HEIGHT = 2000 * mm
TAPE_MARGIN = 15
TAPE_HEADING_SIZE = 9
TAPE_HEADING_ADVANCE = 12
TAPE_TEXT_SIZE = 8
TAPE_LINE_HEIGHT = 10
TAPE_SECTION_GAP = 10
TAPE_BADGE_WIDTH = 60
TAPE_BADGE_HEIGHT = 14
TAPE_QR_SIZE = 60
TAPE_SIGNATURE_HEIGHT = 40
TAPE_POLICY_SIZE = 7
TAPE_POLICY_LINE_HEIGHT = 8
TAPE_DEFAULT_COUNTRY_CODE = "+56"


class _TapeWriter:
    """Single-column flow; every step returns the cursor for the next one."""

    def __init__(self, surface):
        self.surface = surface
        self.x = TAPE_MARGIN
        self.width = surface.page_width - 2 * TAPE_MARGIN

    def heading(self, cursor: Cursor, text: str) -> Cursor:
        self.surface.set_font(True, TAPE_HEADING_SIZE)
        self.surface.text(text, self.x, cursor.y)
        return cursor.advance(TAPE_HEADING_ADVANCE)

    def lines(self, cursor: Cursor, text: str, size: float = TAPE_TEXT_SIZE,
              line_height: float = TAPE_LINE_HEIGHT, bold: bool = False) -> Cursor:
        if not text:
            return cursor
        self.surface.set_font(bold, size)
        wrapped = self.surface.split_text(text, self.width) or [text]
        self.surface.text(wrapped, self.x, cursor.y, line_height=line_height)
        return cursor.advance(len(wrapped) * line_height)

    def centered(self, cursor: Cursor, text: str, size: float, bold: bool = False, advance: float = 0.0) -> Cursor:
        self.surface.set_font(bold, size)
        self.surface.text_centered(text, cursor.y)
        return cursor.advance(advance)

    def amount_line(self, cursor: Cursor, label: str, amount: str) -> Cursor:
        self.surface.set_font(False, TAPE_TEXT_SIZE)
        amount_w = self.surface.text_width(amount)
        wrapped = self.surface.split_text(label, self.width - amount_w - 6) or [label]
        self.surface.text(wrapped, self.x, cursor.y, line_height=TAPE_LINE_HEIGHT)
        self.surface.text_right(amount, self.x + self.width, cursor.y)
        return cursor.advance(len(wrapped) * TAPE_LINE_HEIGHT)


def render_tape(order: OrderDocument, config: RenderConfig, resources: RenderResources,
                surface_factory: Callable = PdfSurface, tax_rate: float = 0.19) -> RenderedDocument:
    surface = surface_factory(TAPE_WIDTH, TAPE_HEIGHT, unit="pt", title=f"Boleta {order.order_number}")
    w = _TapeWriter(surface)
    page_w = surface.page_width
    cursor = Cursor(TAPE_MARGIN)

    if resources.logo:
        logo_w, logo_h = config.logo.width * 2, config.logo.height * 2
        surface.image(resources.logo, (page_w - logo_w) / 2, cursor.y, logo_w, logo_h)
        cursor = cursor.advance(logo_h + 15)

    surface.set_draw_color((200, 200, 200))
    surface.line(w.x, cursor.y, w.x + w.width, cursor.y)
    cursor = cursor.advance(TAPE_SECTION_GAP + TAPE_HEADING_SIZE)
    sections = {"header": cursor.y}

    # Branch
    start = cursor.y
    cursor = w.heading(cursor, "DATOS DEL LOCAL")
    branch = order.branch
    if branch is not None:
        cursor = w.lines(cursor, f"Nombre: {branch.legal_name or branch.name}" if (branch.legal_name or branch.name) else "")
    cursor = w.lines(cursor, f"Fecha de Emisión: {format_datetime(order.created_at)}")
    if branch is not None:
        cursor = w.lines(cursor, f"Teléfono: {branch.phone}" if branch.phone else "")
        cursor = w.lines(cursor, f"Dirección: {branch.address}" if branch.address else "")
        cursor = w.lines(cursor, f"Email: {branch.email}" if branch.email else "")
    cursor = cursor.advance(TAPE_SECTION_GAP)
    sections["branch"] = cursor.y - start

    # Customer
    start = cursor.y
    cursor = w.heading(cursor, "DATOS DEL CLIENTE")
    customer = order.customer
    if customer is not None:
        cursor = w.lines(cursor, f"Nombre: {customer.name}" if customer.name else "")
        phone = format_phone(customer.phone, customer.phone_country_code, TAPE_DEFAULT_COUNTRY_CODE)
        cursor = w.lines(cursor, f"Teléfono: {phone}" if phone else "")
        cursor = w.lines(cursor, f"Email: {customer.email}" if customer.email else "")
    cursor = cursor.advance(TAPE_SECTION_GAP)
    sections["customer"] = cursor.y - start

    if order.commitment_date:
        cursor = w.lines(cursor, f"Fecha de Compromiso: {format_date(order.commitment_date)}", bold=True)
        cursor = cursor.advance(TAPE_SECTION_GAP)

    # Order badge, centered
    badge_x = (page_w - TAPE_BADGE_WIDTH) / 2
    surface.set_fill_color((80, 80, 80))
    surface.rect(badge_x, cursor.y, TAPE_BADGE_WIDTH, TAPE_BADGE_HEIGHT, "F")
    surface.set_text_color(WHITE)
    surface.set_font(True, TAPE_TEXT_SIZE)
    surface.text_centered(BADGE_TEXT, cursor.y + 10, x=badge_x, width=TAPE_BADGE_WIDTH)
    surface.set_text_color(BLACK)
    cursor = cursor.advance(TAPE_BADGE_HEIGHT + 14)
    cursor = w.centered(cursor, order.order_number, 10, bold=True, advance=TAPE_SECTION_GAP + TAPE_HEADING_ADVANCE)

    # Equipment
    start = cursor.y
    cursor = w.heading(cursor, "DATOS DEL EQUIPO")
    cursor = w.lines(cursor, f"Modelo: {order.device.model}" if order.device.model else "")
    cursor = w.lines(cursor, f"IMEI: {order.device.serial_number}" if order.device.serial_number else "")
    cursor = w.lines(cursor, f"Passcode: {order.device.credential}" if order.device.credential else "")
    cursor = w.lines(cursor, f"Problema: {order.problem_description}" if order.problem_description else "")
    for note in order.notes:
        cursor = w.lines(cursor, note)
    checklist = checklist_text(order.checklist)
    if checklist:
        cursor = w.lines(cursor, checklist, size=6, line_height=8)
    cursor = cursor.advance(TAPE_SECTION_GAP)
    sections["equipment"] = cursor.y - start

    # Services
    if order.line_items or order.replacement_cost > 0:
        start = cursor.y
        cursor = w.heading(cursor, "SERVICIOS")
        for item in order.line_items:
            cursor = w.amount_line(cursor, f"• {item.name} ({item.quantity} x {format_clp(item.unit_price)})", format_clp(item.total))
        if order.replacement_cost > 0:
            cursor = w.amount_line(cursor, "• Repuesto original", format_clp(order.replacement_cost))
        cursor = cursor.advance(TAPE_SECTION_GAP)
        sections["services"] = cursor.y - start

    # Totals, centered
    breakdown = split_tax(order.total, tax_rate)
    cursor = w.centered(cursor, "VALOR PRESUPUESTADO", TAPE_HEADING_SIZE, bold=True, advance=TAPE_HEADING_ADVANCE)
    cursor = w.centered(cursor, f"Subtotal: {format_clp(breakdown.subtotal)}", TAPE_TEXT_SIZE, advance=TAPE_LINE_HEIGHT)
    cursor = w.centered(cursor, f"{tax_label(tax_rate)} {format_clp(breakdown.tax)}", TAPE_TEXT_SIZE, advance=TAPE_LINE_HEIGHT)
    surface.set_draw_color((150, 150, 150))
    surface.line(w.x, cursor.y - 4, w.x + w.width, cursor.y - 4)
    cursor = cursor.advance(12)
    cursor = w.centered(cursor, f"TOTAL: {format_clp(breakdown.total, with_label=True)}", 12, bold=True, advance=15)

    if resources.qr:
        surface.image(resources.qr, (page_w - TAPE_QR_SIZE) / 2, cursor.y, TAPE_QR_SIZE, TAPE_QR_SIZE)
        cursor = cursor.advance(TAPE_QR_SIZE + 15)

    cursor = render_signature(surface, cursor, width=w.width, height=TAPE_SIGNATURE_HEIGHT, label_size=8)
    cursor = cursor.advance(TAPE_SECTION_GAP + TAPE_HEADING_SIZE)

    # Policies take whatever length they need
    start = cursor.y
    cursor = w.heading(cursor, "GARANTÍAS")
    for policy in config.policies_for(order.warranty_days):
        cursor = w.lines(cursor, with_bullet(policy), size=TAPE_POLICY_SIZE, line_height=TAPE_POLICY_LINE_HEIGHT)
        cursor = cursor.advance(2)
    sections["policies"] = cursor.y - start

    layout = DocumentLayout(
        profile=Profile.TAPE,
        page_width=surface.page_width,
        page_height=surface.page_height,
        sections=sections,
        end_y=cursor.y,
    )
    return RenderedDocument(Profile.TAPE, surface.output(), layout)


# -----------------------------
# Label profile (80 mm wide, height fitted to content, pt)
# -----------------------------
LABEL_WIDTH = 80 * mm
LABEL_MARGIN = 12
LABEL_TITLE = "ETIQUETA DE ORDEN"
LABEL_TITLE_SIZE = 12
LABEL_NUMBER_SIZE = 10
LABEL_TEXT_SIZE = 8
LABEL_LINE_HEIGHT = 10
LABEL_ROW_GAP = 4
LABEL_VALUE_OFFSET = 56


@dataclass(frozen=True)
class LabelRow:
    label: str
    lines: tuple[str, ...]


def label_fields(order: OrderDocument) -> list[tuple[str, str]]:
    """The only fields a label ever carries; no prices, QR or policies."""
    fields = []
    if order.customer is not None and order.customer.name:
        fields.append(("Cliente:", order.customer.name))
    fields.append(("Equipo:", order.device.model or "-"))
    fields.append(("Problema:", order.problem_description or "-"))
    if order.device.credential:
        fields.append(("Passcode:", order.device.credential))
    if order.branch is not None and order.branch.name:
        fields.append(("Local:", order.branch.name))
    if order.commitment_date:
        fields.append(("Compromiso:", format_date(order.commitment_date)))
    return fields


def measure_label(surface, order: OrderDocument) -> tuple[list[LabelRow], float]:
    value_w = surface.page_width - 2 * LABEL_MARGIN - LABEL_VALUE_OFFSET
    surface.set_font(False, LABEL_TEXT_SIZE)
    rows = []
    for label, value in label_fields(order):
        lines = surface.split_text(value, value_w) or [value]
        rows.append(LabelRow(label, tuple(lines)))
    height = (
        LABEL_MARGIN + LABEL_TITLE_SIZE
        + LABEL_NUMBER_SIZE + LABEL_ROW_GAP * 2 + LABEL_LINE_HEIGHT
        + sum(len(r.lines) * LABEL_LINE_HEIGHT + LABEL_ROW_GAP for r in rows)
        + LABEL_MARGIN
    )
    return rows, height


def render_label(order: OrderDocument, config: RenderConfig, resources: RenderResources,
                 surface_factory: Callable = PdfSurface, tax_rate: float = 0.19) -> RenderedDocument:
    surface = surface_factory(LABEL_WIDTH, LABEL_WIDTH, unit="pt", title=f"Etiqueta {order.order_number}")
    rows, height = measure_label(surface, order)
    surface.set_page_size(LABEL_WIDTH, height)

    cursor = Cursor(LABEL_MARGIN + LABEL_TITLE_SIZE)
    surface.set_text_color(BLACK)
    surface.set_font(True, LABEL_TITLE_SIZE)
    surface.text_centered(LABEL_TITLE, cursor.y)
    cursor = cursor.advance(LABEL_NUMBER_SIZE + LABEL_ROW_GAP)

    surface.set_font(True, LABEL_NUMBER_SIZE)
    surface.text(f"Orden: {order.order_number}", LABEL_MARGIN, cursor.y)
    cursor = cursor.advance(LABEL_ROW_GAP + LABEL_LINE_HEIGHT)

    for row in rows:
        surface.set_font(True, LABEL_TEXT_SIZE)
        surface.text(row.label, LABEL_MARGIN, cursor.y)
        surface.set_font(False, LABEL_TEXT_SIZE)
        surface.text(list(row.lines), LABEL_MARGIN + LABEL_VALUE_OFFSET, cursor.y, line_height=LABEL_LINE_HEIGHT)
        cursor = cursor.advance(len(row.lines) * LABEL_LINE_HEIGHT + LABEL_ROW_GAP)

    layout = DocumentLayout(
        profile=Profile.LABEL,
        page_width=surface.page_width,
        page_height=surface.page_height,
        sections={
            "fields": sum(len(r.lines) * LABEL_LINE_HEIGHT + LABEL_ROW_GAP for r in rows),
            "content": height - 2 * LABEL_MARGIN,
        },
        end_y=cursor.y,
    )
    return RenderedDocument(Profile.LABEL, surface.output(), layout)


_RENDERERS = {
    Profile.STANDARD: render_standard,
    Profile.TAPE: render_tape,
    Profile.LABEL: render_label,
}


def render_order_pdf(
    order: OrderDocument,
    config: RenderConfig,
    profile=Profile.STANDARD,
    *,
    resources: RenderResources | None = None,
    surface_factory: Callable = PdfSurface,
    tax_rate: float | None = None,
) -> RenderedDocument:
    """
    Renders one order in one profile. Each call builds its own surface, so
    concurrent renders share nothing. Resources are fetched before layout
    starts unless the caller passes them in.
    """
    profile = Profile.parse(profile)
    if resources is None:
        resources = fetch_resources(order, config, profile)
    rate = Config.TAX_RATE if tax_rate is None else tax_rate

    rendered = _RENDERERS[profile](order, config, resources, surface_factory=surface_factory, tax_rate=rate)
    logger.info("Rendered %s PDF for order %s (%d bytes)", profile.value, order.order_number, len(rendered.content))
    return rendered


def generate_and_store_pdf(session, order_id: int, profile=Profile.STANDARD) -> str:
    """
    Generates (or regenerates) a PDF for the given order and writes it under
    EXPORTS_DIR/<profile>/<year>/. For the standard profile the order row's
    pdf_path + pdf_generated_at are updated.

    Returns: absolute pdf path on disk.
    """
    profile = Profile.parse(profile)
    order_doc, config = load_order_document(session, order_id)
    rendered = render_order_pdf(order_doc, config, profile)

    generated_dt = datetime.utcnow()
    year = (order_doc.created_at or generated_dt).strftime("%Y")
    out_dir = os.path.join(Config.EXPORTS_DIR, profile.value, year)
    os.makedirs(out_dir, exist_ok=True)
    fname = _safe_filename(f"orden_{order_doc.order_number}_{profile.value}") + ".pdf"
    pdf_path = os.path.abspath(os.path.join(out_dir, fname))

    with open(pdf_path, "wb") as fh:
        fh.write(rendered.content)

    if profile is Profile.STANDARD:
        order = session.get(WorkOrder, order_id)
        order.pdf_path = pdf_path
        order.pdf_generated_at = generated_dt
        session.add(order)
        session.commit()

    logger.info("Stored %s PDF for order %s at %s", profile.value, order_doc.order_number, pdf_path)
    return pdf_path
