# pdf_surface.py
"""
A small drawing surface over a reportlab canvas.

Coordinates are top-left based (y grows downwards) and expressed in the
surface unit ("mm" or "pt"); font sizes are always points. Text is drawn on
its baseline, so a line at y occupies roughly [y - ascent, y].
"""
import io
import logging
import re

from reportlab.pdfgen import canvas
from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.lib.utils import ImageReader

logger = logging.getLogger(__name__)

UNITS = {"mm": mm, "pt": 1.0}

# Multi-line text without an explicit spacing uses size * factor
DEFAULT_LINE_HEIGHT_FACTOR = 1.15

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def _wrap_paragraph(text, font, size, max_width):
    words = str(text).split()
    lines = []
    current = ""

    def split_long_token(token: str):
        """Break a single long token (like an email) into width-safe chunks."""
        if stringWidth(token, font, size) <= max_width:
            return [token]
        chunks = []
        remaining = token
        while remaining:
            lo, hi = 1, len(remaining)
            fit = 1
            while lo <= hi:
                mid = (lo + hi) // 2
                piece = remaining[:mid]
                if stringWidth(piece, font, size) <= max_width:
                    fit = mid
                    lo = mid + 1
                else:
                    hi = mid - 1
            chunks.append(remaining[:fit])
            remaining = remaining[fit:]
        return chunks

    expanded_words = []
    for w in words:
        expanded_words.extend(split_long_token(w))

    for w in expanded_words:
        test = current + (" " if current else "") + w
        if stringWidth(test, font, size) <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            current = w
    if current:
        lines.append(current)
    return lines or [""]


def wrap_text(text, font, size, max_width) -> list[str]:
    """
    Greedy word wrap measured in points. Explicit newlines start a new
    line; blank lines inside the text are kept, trailing ones are not.
    Returns [] for empty text.
    """
    raw = str(text or "").rstrip()
    if not raw:
        return []
    if max_width <= 0:
        return raw.splitlines()

    out: list[str] = []
    for paragraph in re.split(r"\r?\n", raw):
        out.extend(_wrap_paragraph(paragraph, font, size, max_width))
    return out


def _to_color(rgb):
    if isinstance(rgb, colors.Color):
        return rgb
    r, g, b = rgb
    return colors.Color(r / 255.0, g / 255.0, b / 255.0)


class PdfSurface:
    """
    One page drawn top-down. Each instance owns its canvas and byte buffer;
    output() finalizes the document and returns the PDF bytes.
    """

    def __init__(self, width: float, height: float, unit: str = "mm", title: str | None = None):
        if unit not in UNITS:
            raise ValueError(f"Unknown unit: {unit!r}")
        self.unit = unit
        self.k = UNITS[unit]
        self.page_width = float(width)
        self.page_height = float(height)

        self._buffer = io.BytesIO()
        self._pdf = canvas.Canvas(self._buffer, pagesize=(self.page_width * self.k, self.page_height * self.k))
        if title:
            self._pdf.setTitle(title)

        self._font = FONT_REGULAR
        self._font_size = 10.0
        self._fill = (255, 255, 255)
        self._stroke = (0, 0, 0)
        self._text_color = (0, 0, 0)
        self._output: bytes | None = None

    # -----------------------------
    # Page
    # -----------------------------
    def set_page_size(self, width: float, height: float) -> None:
        """Only meaningful before anything has been drawn on the page."""
        self.page_width = float(width)
        self.page_height = float(height)
        self._pdf.setPageSize((self.page_width * self.k, self.page_height * self.k))

    def _x(self, x: float) -> float:
        return x * self.k

    def _y(self, y: float) -> float:
        return (self.page_height - y) * self.k

    # -----------------------------
    # State
    # -----------------------------
    def set_font(self, bold: bool = False, size: float | None = None) -> None:
        self._font = FONT_BOLD if bold else FONT_REGULAR
        if size is not None:
            self._font_size = float(size)

    def set_fill_color(self, rgb) -> None:
        self._fill = rgb

    def set_draw_color(self, rgb) -> None:
        self._stroke = rgb

    def set_text_color(self, rgb) -> None:
        self._text_color = rgb

    def set_line_width(self, width: float) -> None:
        self._pdf.setLineWidth(width * self.k)

    # -----------------------------
    # Measurement
    # -----------------------------
    def text_width(self, text: str) -> float:
        return stringWidth(str(text), self._font, self._font_size) / self.k

    def split_text(self, text: str, max_width: float) -> list[str]:
        return wrap_text(text, self._font, self._font_size, max_width * self.k)

    # -----------------------------
    # Drawing
    # -----------------------------
    def rect(self, x: float, y: float, w: float, h: float, style: str = "S") -> None:
        """style: "F" fill, "S" stroke, "FD" both (jsPDF-like)."""
        fill = "F" in style
        stroke = "S" in style or "D" in style
        if fill:
            self._pdf.setFillColor(_to_color(self._fill))
        if stroke:
            self._pdf.setStrokeColor(_to_color(self._stroke))
        self._pdf.rect(self._x(x), self._y(y + h), w * self.k, h * self.k, stroke=int(stroke), fill=int(fill))

    def line(self, x1: float, y1: float, x2: float, y2: float) -> None:
        self._pdf.setStrokeColor(_to_color(self._stroke))
        self._pdf.line(self._x(x1), self._y(y1), self._x(x2), self._y(y2))

    def text(self, text, x: float, y: float, line_height: float | None = None) -> None:
        lines = text if isinstance(text, (list, tuple)) else [text]
        if line_height is None:
            line_height = self._font_size * DEFAULT_LINE_HEIGHT_FACTOR / self.k
        self._pdf.setFont(self._font, self._font_size)
        self._pdf.setFillColor(_to_color(self._text_color))
        for i, line in enumerate(lines):
            self._pdf.drawString(self._x(x), self._y(y + i * line_height), str(line))

    def text_right(self, text: str, x_right: float, y: float) -> None:
        self.text(text, x_right - self.text_width(text), y)

    def text_centered(self, text: str, y: float, x: float = 0.0, width: float | None = None) -> None:
        span = self.page_width if width is None else width
        self.text(text, x + (span - self.text_width(text)) / 2, y)

    def image(self, data: bytes, x: float, y: float, w: float, h: float) -> bool:
        """Draws PNG/JPEG bytes; an undecodable image is logged and skipped."""
        try:
            img = ImageReader(io.BytesIO(data))
            self._pdf.drawImage(img, self._x(x), self._y(y + h), width=w * self.k, height=h * self.k, mask="auto")
        except Exception:
            logger.warning("Skipping image that could not be drawn", exc_info=True)
            return False
        return True

    # -----------------------------
    # Output
    # -----------------------------
    def output(self) -> bytes:
        if self._output is None:
            self._pdf.save()
            self._output = self._buffer.getvalue()
        return self._output
