# pdf_layout.py
"""
Layout building blocks for the standard (A4, mm) order document.

Every block is handled in two steps: a measure_* function wraps the text and
returns a frozen value carrying the final height, then the matching render_*
function draws the background at that height first and the content on top.
Render functions take a Cursor and return the Cursor below what they drew.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from documents import ChecklistEntry, CustomerInfo, BranchInfo, OrderDocument
from formatting import format_clp, format_phone, round_clp

logger = logging.getLogger(__name__)

# -----------------------------
# Palette (RGB 0-255)
# -----------------------------
BLACK = (0, 0, 0)
WHITE = (255, 255, 255)
PANEL_BG = (250, 250, 250)
PANEL_BORDER = (200, 200, 200)
PANEL_TITLE_BG = (140, 140, 140)
TABLE_HEADER_BG = (230, 230, 230)
TOTALS_BG = (240, 240, 240)
TOTALS_BORDER = (150, 150, 150)
CAPTION_GRAY = (100, 100, 100)

# -----------------------------
# Panels
# -----------------------------
PANEL_TITLE_HEIGHT = 8
PANEL_TITLE_SIZE = 10
PANEL_PADDING = 2
PANEL_TEXT_INSET = 3

INFO_FONT_SIZE = 9
INFO_LINE_HEIGHT = 5
INFO_VALUE_INSET = 25
# value column ends 5 before the panel edge
INFO_VALUE_RIGHT_PAD = 5
# baseline sits this far above the bottom of its line slot
BASELINE_DROP = 1.5

# -----------------------------
# Item table
# -----------------------------
TABLE_COL_WIDTHS = (10, 32, 95, 37)
TABLE_HEADERS = ("#", "Modelo", "Nota [Descripción]", "Total")
TABLE_INSET = 3
TABLE_FONT_SIZE = 8
TABLE_LINE_HEIGHT = 4
TABLE_HEADER_HEIGHT = 7
TABLE_HEADER_GAP = 3
CELL_PADDING = 2
CAPTION_FONT_SIZE = 5
CAPTION_OFFSET = 3
# Priced rows keep two lines (about the 7 + 3 mm of amount plus caption) so the
# "qty x price" caption fits under the amount. Other rows floor at one line.
PRICED_ROW_MIN_HEIGHT = 2 * TABLE_LINE_HEIGHT

REPLACEMENT_ROW_NAME = "REPUESTO"
REPLACEMENT_ROW_NOTE = "Repuesto original"
DEFAULT_SERVICE_NOTE = "Servicio de reparación"

CHECKLIST_FONT_SIZE = 5
CHECKLIST_LINE_HEIGHT = 3
CHECKLIST_GAP = 5

# -----------------------------
# Totals box
# -----------------------------
TOTALS_BOX_WIDTH = 30
TOTALS_BOX_HEIGHT = 20
TOTALS_GAP = 5
EQUIPMENT_BOTTOM_PADDING = 5

# -----------------------------
# Warranty policies
# -----------------------------
POLICY_FONT_SIZES = (5, 4.5, 4, 3.5, 3)
# mm of line advance per point of font size
POLICY_LINE_FACTOR = 0.5
POLICY_COLUMN_GAP = 6
POLICY_TOP_PADDING = 2
POLICY_BOTTOM_PADDING = 3
POLICY_BULLET = "•"

# -----------------------------
# Signature
# -----------------------------
SIGNATURE_GAP = 6
SIGNATURE_BOX_WIDTH = 50
SIGNATURE_BOX_HEIGHT = 18
SIGNATURE_LABEL_GAP = 6
SIGNATURE_LABEL = "FIRMA DEL CLIENTE"
SIGNATURE_LINE_WIDTH = 0.5


# -----------------------------
# Geometry values
# -----------------------------
@dataclass(frozen=True)
class Cursor:
    """Vertical drawing position, threaded explicitly between blocks."""
    y: float

    def advance(self, dy: float) -> "Cursor":
        return Cursor(self.y + dy)


@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def right(self) -> float:
        return self.x + self.width


# -----------------------------
# Measurement primitives
# -----------------------------
def wrap_to_width(surface, text, max_width: float, font_size: float, bold: bool = False) -> list[str]:
    surface.set_font(bold, font_size)
    lines = surface.split_text(text, max_width)
    if not lines and str(text or "").strip():
        # Font metrics failed us; keep the text on a single full-width line.
        logger.warning("Wrap returned no lines for %r, using a single line", text)
        return [str(text).strip()]
    return lines


def measure_width(surface, text: str, font_size: float, bold: bool = False) -> float:
    surface.set_font(bold, font_size)
    return surface.text_width(text)


# -----------------------------
# Panel renderer
# -----------------------------
def panel_min_height() -> float:
    return PANEL_TITLE_HEIGHT + 2 * PANEL_PADDING


def render_panel(
    surface,
    box: Box,
    title: str,
    draw_content: Optional[Callable[[Cursor], object]] = None,
    title_band_height: float = PANEL_TITLE_HEIGHT,
) -> Cursor:
    surface.set_fill_color(PANEL_BG)
    surface.rect(box.x, box.y, box.width, box.height, "F")
    surface.set_draw_color(PANEL_BORDER)
    surface.rect(box.x, box.y, box.width, box.height, "S")

    surface.set_fill_color(PANEL_TITLE_BG)
    surface.rect(box.x, box.y, box.width, title_band_height, "F")
    surface.set_text_color(WHITE)
    surface.set_font(True, PANEL_TITLE_SIZE)
    surface.text(title, box.x + PANEL_TEXT_INSET, box.y + title_band_height * 0.75)
    surface.set_text_color(BLACK)

    if draw_content is not None:
        draw_content(Cursor(box.y + title_band_height + PANEL_PADDING))
    return Cursor(box.bottom)


# -----------------------------
# Info panels (branch / customer)
# -----------------------------
@dataclass(frozen=True)
class InfoRow:
    label: str
    lines: tuple[str, ...]


@dataclass(frozen=True)
class InfoPanel:
    title: str
    rows: tuple[InfoRow, ...]
    height: float

    @property
    def line_count(self) -> int:
        return sum(len(r.lines) for r in self.rows)


def info_value_width(panel_width: float) -> float:
    return panel_width - INFO_VALUE_INSET - INFO_VALUE_RIGHT_PAD


def measure_info_panel(surface, title: str, fields: Sequence[tuple[str, str]], panel_width: float) -> InfoPanel:
    """Pass 1: wraps each non-empty field and sums the line slots."""
    value_width = info_value_width(panel_width)
    rows = []
    for label, value in fields:
        value = (value or "").strip()
        if not value:
            continue
        lines = wrap_to_width(surface, value, value_width, INFO_FONT_SIZE)
        rows.append(InfoRow(label, tuple(lines)))
    line_count = sum(len(r.lines) for r in rows)
    height = panel_min_height() + line_count * INFO_LINE_HEIGHT
    return InfoPanel(title=title, rows=tuple(rows), height=height)


def branch_fields(branch: Optional[BranchInfo]) -> list[tuple[str, str]]:
    if branch is None:
        return []
    return [
        ("Sucursal:", branch.name),
        ("R. social:", branch.legal_name),
        ("Dirección:", branch.address),
        ("Teléfono:", branch.phone),
        ("Correo:", branch.email),
    ]


def customer_fields(customer: Optional[CustomerInfo]) -> list[tuple[str, str]]:
    if customer is None:
        return []
    return [
        ("Nombre:", customer.name),
        ("Teléfono:", format_phone(customer.phone, customer.phone_country_code)),
        ("Correo:", customer.email),
        ("Dirección:", customer.address),
    ]


def render_info_panel(surface, box: Box, panel: InfoPanel) -> Cursor:
    """Pass 2: box.height comes from pass 1 (or a taller sibling)."""

    def content(cursor: Cursor):
        y = cursor.y
        for row in panel.rows:
            baseline = y + INFO_LINE_HEIGHT - BASELINE_DROP
            surface.set_font(True, INFO_FONT_SIZE)
            surface.text(row.label, box.x + PANEL_TEXT_INSET, baseline)
            surface.set_font(False, INFO_FONT_SIZE)
            surface.text(list(row.lines), box.x + INFO_VALUE_INSET, baseline, line_height=INFO_LINE_HEIGHT)
            y += len(row.lines) * INFO_LINE_HEIGHT

    return render_panel(surface, box, panel.title, content)


@dataclass(frozen=True)
class PanelPair:
    left: InfoPanel
    right: InfoPanel

    @property
    def height(self) -> float:
        return max(self.left.height, self.right.height)


def render_panel_pair(surface, cursor: Cursor, x: float, width: float, gap: float, pair: PanelPair) -> Cursor:
    """Side-by-side panels share the taller height so their bottoms line up."""
    panel_w = (width - gap) / 2
    height = pair.height
    render_info_panel(surface, Box(x, cursor.y, panel_w, height), pair.left)
    render_info_panel(surface, Box(x + panel_w + gap, cursor.y, panel_w, height), pair.right)
    return cursor.advance(height)


# -----------------------------
# Item table
# -----------------------------
@dataclass(frozen=True)
class TableRow:
    marker: str
    name_lines: tuple[str, ...]
    note_lines: tuple[str, ...]
    amount: str
    caption: Optional[str]
    height: float


def row_height(name_lines: Sequence[str], note_lines: Sequence[str],
               line_height: float = TABLE_LINE_HEIGHT, min_height: float = 0.0) -> float:
    """Taller of the two wrapped columns, never less than one line."""
    tallest = max(len(name_lines), len(note_lines)) * line_height
    return max(tallest, line_height, min_height)


def _cell_width(index: int) -> float:
    return TABLE_COL_WIDTHS[index] - 2 * CELL_PADDING


def measure_row(surface, marker: str, name_parts: Sequence[str], note: str,
                amount: str, caption: Optional[str] = None) -> TableRow:
    name_lines = []
    for part in name_parts:
        name_lines.extend(wrap_to_width(surface, part, _cell_width(1), TABLE_FONT_SIZE))
    note_lines = wrap_to_width(surface, note, _cell_width(2), TABLE_FONT_SIZE)
    height = row_height(name_lines, note_lines, min_height=PRICED_ROW_MIN_HEIGHT if caption else 0.0)
    return TableRow(
        marker=marker,
        name_lines=tuple(name_lines),
        note_lines=tuple(note_lines),
        amount=amount,
        caption=caption,
        height=height,
    )


def device_note(order: OrderDocument) -> str:
    parts = []
    if order.problem_description:
        parts.append(order.problem_description)
    parts.extend(order.notes)
    return "\n".join(parts) or "-"


def measure_device_row(surface, order: OrderDocument) -> TableRow:
    name_parts = [order.device.model] + order.device.credential_lines()
    return measure_row(surface, "1", [p for p in name_parts if p], device_note(order), "-")


def measure_line_item_rows(surface, order: OrderDocument) -> list[TableRow]:
    rows = []
    for item in order.line_items:
        note = item.description or order.problem_description or DEFAULT_SERVICE_NOTE
        rows.append(measure_row(
            surface,
            "-",
            [item.name.upper()],
            note,
            format_clp(item.total),
            f"{item.quantity} x {format_clp(item.unit_price)}",
        ))
    if order.replacement_cost > 0:
        rows.append(measure_row(
            surface,
            "-",
            [REPLACEMENT_ROW_NAME],
            REPLACEMENT_ROW_NOTE,
            format_clp(order.replacement_cost),
            f"1 x {format_clp(order.replacement_cost)}",
        ))
    return rows


@dataclass(frozen=True)
class ItemTable:
    rows: tuple[TableRow, ...]
    width: float

    @property
    def height(self) -> float:
        return TABLE_HEADER_HEIGHT + TABLE_HEADER_GAP + sum(r.height for r in self.rows)


def measure_item_table(surface, order: OrderDocument, interior_width: float) -> ItemTable:
    table_w = sum(TABLE_COL_WIDTHS)
    if table_w > interior_width:
        raise ValueError(f"Table columns ({table_w}) exceed the panel interior ({interior_width})")
    rows = [measure_device_row(surface, order)] + measure_line_item_rows(surface, order)
    return ItemTable(rows=tuple(rows), width=table_w)


def render_item_table(surface, x: float, cursor: Cursor, table: ItemTable) -> Cursor:
    y = cursor.y
    surface.set_fill_color(TABLE_HEADER_BG)
    surface.rect(x, y, table.width, TABLE_HEADER_HEIGHT, "F")
    surface.set_text_color(BLACK)
    surface.set_font(True, TABLE_FONT_SIZE)

    col_x = x
    header_baseline = y + TABLE_HEADER_HEIGHT - 2
    for i, title in enumerate(TABLE_HEADERS):
        if i == len(TABLE_HEADERS) - 1:
            surface.text_right(title, col_x + TABLE_COL_WIDTHS[i] - CELL_PADDING, header_baseline)
        else:
            surface.text(title, col_x + CELL_PADDING, header_baseline)
        col_x += TABLE_COL_WIDTHS[i]

    row_y = y + TABLE_HEADER_HEIGHT + TABLE_HEADER_GAP
    amount_right = x + sum(TABLE_COL_WIDTHS) - CELL_PADDING
    for row in table.rows:
        surface.set_font(False, TABLE_FONT_SIZE)
        surface.set_text_color(BLACK)
        col_x = x
        surface.text(row.marker, col_x + CELL_PADDING, row_y)
        col_x += TABLE_COL_WIDTHS[0]
        surface.text(list(row.name_lines), col_x + CELL_PADDING, row_y, line_height=TABLE_LINE_HEIGHT)
        col_x += TABLE_COL_WIDTHS[1]
        surface.text(list(row.note_lines), col_x + CELL_PADDING, row_y, line_height=TABLE_LINE_HEIGHT)

        surface.text_right(row.amount, amount_right, row_y)
        if row.caption:
            surface.set_font(False, CAPTION_FONT_SIZE)
            surface.set_text_color(CAPTION_GRAY)
            surface.text_right(row.caption, amount_right, row_y + CAPTION_OFFSET)
            surface.set_text_color(BLACK)
        row_y += row.height

    return Cursor(y + table.height)


# -----------------------------
# Checklist
# -----------------------------
def checklist_text(entries: Sequence[ChecklistEntry]) -> str:
    """Entries without a recorded status are left out entirely."""
    return ", ".join(f"{e.label}{e.status.suffix}" for e in entries if e.status is not None)


@dataclass(frozen=True)
class ChecklistBlock:
    lines: tuple[str, ...]

    @property
    def height(self) -> float:
        return CHECKLIST_GAP + len(self.lines) * CHECKLIST_LINE_HEIGHT


def measure_checklist(surface, entries: Sequence[ChecklistEntry], width: float) -> Optional[ChecklistBlock]:
    text = checklist_text(entries)
    if not text:
        return None
    return ChecklistBlock(tuple(wrap_to_width(surface, text, width, CHECKLIST_FONT_SIZE)))


def render_checklist(surface, x: float, cursor: Cursor, block: Optional[ChecklistBlock]) -> Cursor:
    if block is None:
        return cursor
    surface.set_font(False, CHECKLIST_FONT_SIZE)
    surface.set_text_color(BLACK)
    surface.text(list(block.lines), x, cursor.y + CHECKLIST_GAP, line_height=CHECKLIST_LINE_HEIGHT)
    return cursor.advance(block.height)


# -----------------------------
# Totals
# -----------------------------
@dataclass(frozen=True)
class TaxBreakdown:
    subtotal: float
    tax: float
    total: float


def split_tax(total: float, rate: float = 0.19) -> TaxBreakdown:
    """
    Totals are tax-inclusive: subtotal = total / (1 + rate), tax is the rest.
    Both are whole pesos, so the printed subtotal and tax always add up to the total.
    """
    total = round_clp(total)
    subtotal = round_clp(total / (1.0 + rate))
    return TaxBreakdown(subtotal=float(subtotal), tax=float(total - subtotal), total=float(total))


def tax_label(rate: float) -> str:
    return f"IVA ({rate * 100:g}%):"


def render_totals_box(surface, panel: Box, cursor: Cursor, breakdown: TaxBreakdown,
                      warranty_days: int, rate: float = 0.19) -> Cursor:
    bx = panel.right - TOTALS_BOX_WIDTH - TABLE_INSET
    by = cursor.y + TOTALS_GAP
    surface.set_fill_color(TOTALS_BG)
    surface.rect(bx, by, TOTALS_BOX_WIDTH, TOTALS_BOX_HEIGHT, "F")
    surface.set_draw_color(TOTALS_BORDER)
    surface.rect(bx, by, TOTALS_BOX_WIDTH, TOTALS_BOX_HEIGHT, "S")

    surface.set_text_color(BLACK)
    surface.set_font(False, 5)
    surface.text("Subtotal:", bx + 2, by + 4)
    surface.text_right(format_clp(breakdown.subtotal), bx + TOTALS_BOX_WIDTH - 2, by + 4)
    surface.text(tax_label(rate), bx + 2, by + 8)
    surface.text_right(format_clp(breakdown.tax), bx + TOTALS_BOX_WIDTH - 2, by + 8)

    surface.line(bx, by + 12, bx + TOTALS_BOX_WIDTH, by + 12)
    surface.set_font(True, 7)
    surface.text("TOTAL:", bx + 2, by + 16)
    surface.set_font(True, 6)
    total_text = format_clp(breakdown.total)
    total_x = max(bx + 2, bx + TOTALS_BOX_WIDTH - surface.text_width(total_text) - 2)
    surface.text(total_text, total_x, by + 19)

    surface.set_font(False, 6)
    surface.text(f"Garantía {warranty_days} días", panel.x + TABLE_INSET, by + 6)
    return cursor.advance(TOTALS_GAP + TOTALS_BOX_HEIGHT)


# -----------------------------
# Equipment panel (table + checklist + totals)
# -----------------------------
@dataclass(frozen=True)
class EquipmentPanel:
    table: ItemTable
    checklist: Optional[ChecklistBlock]

    @property
    def height(self) -> float:
        checklist_h = self.checklist.height if self.checklist else 0.0
        return (
            PANEL_TITLE_HEIGHT + PANEL_PADDING * 2
            + self.table.height
            + checklist_h
            + TOTALS_GAP + TOTALS_BOX_HEIGHT
            + EQUIPMENT_BOTTOM_PADDING
        )


def measure_equipment_panel(surface, order: OrderDocument, panel_width: float) -> EquipmentPanel:
    interior = panel_width - 2 * TABLE_INSET
    table = measure_item_table(surface, order, interior)
    checklist = measure_checklist(surface, order.checklist, interior)
    return EquipmentPanel(table=table, checklist=checklist)


def render_equipment_panel(surface, box: Box, panel: EquipmentPanel, order: OrderDocument,
                           tax_rate: float = 0.19) -> Cursor:
    def content(cursor: Cursor):
        cursor = cursor.advance(PANEL_PADDING)
        cursor = render_item_table(surface, box.x + TABLE_INSET, cursor, panel.table)
        cursor = render_checklist(surface, box.x + TABLE_INSET, cursor, panel.checklist)
        render_totals_box(surface, box, cursor, split_tax(order.total, tax_rate), order.warranty_days, tax_rate)

    return render_panel(surface, box, "DATOS DEL EQUIPO", content)


# -----------------------------
# Adaptive warranty-policy block
# -----------------------------
def with_bullet(policy: str) -> str:
    text = policy.strip()
    if text.startswith(POLICY_BULLET):
        text = text[len(POLICY_BULLET):].strip()
    return f"{POLICY_BULLET} {text}"


def split_columns(policies: Sequence[str]) -> tuple[list[str], list[str]]:
    """Even indexes go left, odd indexes go right."""
    return list(policies[0::2]), list(policies[1::2])


def policy_line_height(font_size: float) -> float:
    return font_size * POLICY_LINE_FACTOR


@dataclass(frozen=True)
class PolicyColumns:
    font_size: float
    left: tuple[tuple[str, ...], ...]
    right: tuple[tuple[str, ...], ...]

    def _column_height(self, column) -> float:
        return sum(len(lines) for lines in column) * policy_line_height(self.font_size)

    @property
    def column_height(self) -> float:
        return max(self._column_height(self.left), self._column_height(self.right))


def measure_policy_columns(surface, policies: Sequence[str], column_width: float, font_size: float) -> PolicyColumns:
    left, right = split_columns([with_bullet(p) for p in policies])
    wrap_w = column_width - PANEL_TEXT_INSET
    return PolicyColumns(
        font_size=font_size,
        left=tuple(tuple(wrap_to_width(surface, p, wrap_w, font_size)) for p in left),
        right=tuple(tuple(wrap_to_width(surface, p, wrap_w, font_size)) for p in right),
    )


@dataclass(frozen=True)
class PolicyBlock:
    columns: PolicyColumns
    column_width: float
    overflow: bool

    @property
    def font_size(self) -> float:
        return self.columns.font_size

    @property
    def height(self) -> float:
        return PANEL_TITLE_HEIGHT + POLICY_TOP_PADDING + self.columns.column_height + POLICY_BOTTOM_PADDING


def policy_chrome_height() -> float:
    return PANEL_TITLE_HEIGHT + POLICY_TOP_PADDING + POLICY_BOTTOM_PADDING


def policy_column_width(panel_width: float) -> float:
    return (panel_width - 2 * PANEL_TEXT_INSET - POLICY_COLUMN_GAP) / 2


def compose_policy_block(surface, policies: Sequence[str], panel_width: float, budget: float,
                         font_sizes: Sequence[float] = POLICY_FONT_SIZES) -> PolicyBlock:
    """
    Picks the largest font size whose taller column fits in `budget`.
    When none fits the smallest size is used anyway and the block overflows;
    policy text is never dropped.
    """
    column_width = policy_column_width(panel_width)
    columns = None
    for size in font_sizes:
        columns = measure_policy_columns(surface, policies, column_width, size)
        if columns.column_height <= budget:
            return PolicyBlock(columns=columns, column_width=column_width, overflow=False)

    logger.warning(
        "Warranty policies overflow their space (%.1f > %.1f) at %.1fpt",
        columns.column_height, budget, columns.font_size,
    )
    return PolicyBlock(columns=columns, column_width=column_width, overflow=True)


def render_policy_block(surface, box: Box, block: PolicyBlock) -> Cursor:
    line_h = policy_line_height(block.font_size)

    def draw_column(x: float, y: float, column):
        for lines in column:
            surface.text(list(lines), x, y + line_h, line_height=line_h)
            y += len(lines) * line_h

    def content(cursor: Cursor):
        surface.set_font(False, block.font_size)
        surface.set_text_color(BLACK)
        draw_column(box.x + PANEL_TEXT_INSET, cursor.y, block.columns.left)
        draw_column(box.x + PANEL_TEXT_INSET + block.column_width + POLICY_COLUMN_GAP, cursor.y, block.columns.right)

    return render_panel(surface, box, "POLÍTICAS DE GARANTÍA", content)


# -----------------------------
# Signature
# -----------------------------
def signature_reserve() -> float:
    return SIGNATURE_GAP + SIGNATURE_BOX_HEIGHT + SIGNATURE_LABEL_GAP


def render_signature(surface, cursor: Cursor, width: float = SIGNATURE_BOX_WIDTH,
                     height: float = SIGNATURE_BOX_HEIGHT, label_size: float = 7) -> Cursor:
    y = cursor.y + SIGNATURE_GAP
    x = (surface.page_width - width) / 2
    surface.set_fill_color(TABLE_HEADER_BG)
    surface.set_draw_color(TOTALS_BORDER)
    surface.set_line_width(SIGNATURE_LINE_WIDTH)
    surface.rect(x, y, width, height, "FD")
    surface.set_font(True, label_size)
    surface.set_text_color(BLACK)
    surface.text_centered(SIGNATURE_LABEL, y + height + SIGNATURE_LABEL_GAP, x=x, width=width)
    return Cursor(y + height + SIGNATURE_LABEL_GAP)
