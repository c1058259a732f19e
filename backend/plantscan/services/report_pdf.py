"""
Scan report PDF

Renders one scan as an A4 report: header with the scan date, the photo,
cards for the plant name, health condition and origin, and the care
recommendations as a bullet list. Long text wraps and flows onto new
pages.

Standard PDF fonts have no Cyrillic glyphs, so a TTF font is downloaded
once per process and registered with reportlab. Without it the report
falls back to Helvetica.
"""
import base64
import binascii
import io
import logging
import re
import threading
from typing import Any

import httpx
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen.canvas import Canvas

from plantscan.core.config import settings
from plantscan.models import Scan, as_utc

logger = logging.getLogger(__name__)

FALLBACK_FONT = "Helvetica"
REPORT_FONT = "PlantScanSans"

MARGIN = 32
GAP = 16
CARD_PAD = 14

PRIMARY = colors.Color(0.1, 0.55, 0.34)
MUTED = colors.Color(0.36, 0.39, 0.45)
BORDER = colors.Color(0.88, 0.92, 0.9)
CARD_BG = colors.Color(0.95, 0.98, 0.96)

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.*)$", re.DOTALL)
_BULLET_PREFIX_RE = re.compile(r"^\s*[•\-–—]\s*")

_font_lock = threading.Lock()
_font_name: str | None = None


def _download_font(url: str) -> bytes:
    with httpx.Client(timeout=20, follow_redirects=True) as client:
        r = client.get(url)
        r.raise_for_status()
        return r.content


def get_report_font() -> str:
    """
    Name of the font to render reports with

    The first call downloads and registers the TTF font; later calls reuse
    it. A failed download is not cached, the next report tries again.
    """
    global _font_name
    if _font_name is not None:
        return _font_name

    with _font_lock:
        if _font_name is not None:
            return _font_name
        if not settings.PDF_FONT_URL:
            return FALLBACK_FONT
        try:
            font_bytes = _download_font(settings.PDF_FONT_URL)
            pdfmetrics.registerFont(TTFont(REPORT_FONT, io.BytesIO(font_bytes)))
        except Exception as e:
            logger.warning("Report font unavailable, using %s: %s", FALLBACK_FONT, e)
            return FALLBACK_FONT
        _font_name = REPORT_FONT
        return _font_name


def safe_text(value: Any, fallback: str = "—") -> str:
    text = " ".join(str(value if value is not None else "").split())
    return text or fallback


def normalize_recommendations(value: Any) -> list[str]:
    """Accept a list, or a string with one item per line / per ``;``"""
    if isinstance(value, list):
        return [s for s in (safe_text(item, "") for item in value) if s]
    if isinstance(value, str):
        parts = re.split(r"\r?\n|;+", value)
        return [s for s in (_BULLET_PREFIX_RE.sub("", p).strip() for p in parts) if s]
    return []


def decode_data_url(url: str) -> bytes | None:
    match = _DATA_URL_RE.match(url.strip())
    if not match:
        return None
    try:
        return base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError):
        return None


class _ReportWriter:
    """Top-down cursor over a reportlab canvas with automatic page breaks"""

    def __init__(self, canvas: Canvas, font: str) -> None:
        self.canvas = canvas
        self.font = font
        self.width, self.height = A4
        self.content_width = self.width - MARGIN * 2
        self.y = self.height - MARGIN

    def wrap(self, text: str, size: float, max_width: float) -> list[str]:
        words = safe_text(text, "").split(" ")
        lines: list[str] = []
        current = ""
        for word in words:
            if not word:
                continue
            candidate = f"{current} {word}" if current else word
            if pdfmetrics.stringWidth(candidate, self.font, size) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            # A single word wider than the line is split by characters.
            current = ""
            for char in word:
                if current and pdfmetrics.stringWidth(current + char, self.font, size) > max_width:
                    lines.append(current)
                    current = char
                else:
                    current += char
        if current:
            lines.append(current)
        return lines or ["—"]

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.canvas.showPage()
            self.y = self.height - MARGIN

    def text(self, x: float, y: float, value: str, size: float, color: colors.Color) -> None:
        self.canvas.setFont(self.font, size)
        self.canvas.setFillColor(color)
        self.canvas.drawString(x, y, value)

    def divider(self) -> None:
        self.ensure_space(20)
        self.canvas.setFillColor(BORDER)
        self.canvas.rect(MARGIN, self.y - 10, self.content_width, 1, stroke=0, fill=1)
        self.y -= 20

    def card_height(self, value: Any, width: float, label_size: float, value_size: float) -> float:
        lines = self.wrap(safe_text(value), value_size, width - CARD_PAD * 2)
        content = label_size + 8 + len(lines) * value_size + max(0, len(lines) - 1) * 8
        return CARD_PAD * 2 + content

    def card(
        self,
        label: str,
        value: Any,
        x: float,
        width: float,
        height: float,
        label_size: float,
        value_size: float,
    ) -> None:
        c = self.canvas
        c.setFillColor(CARD_BG)
        c.setStrokeColor(BORDER)
        c.setLineWidth(1)
        c.rect(x, self.y - height, width, height, stroke=1, fill=1)
        self.text(x + CARD_PAD, self.y - CARD_PAD - label_size, label, label_size, PRIMARY)
        line_y = self.y - CARD_PAD - label_size - 10
        for line in self.wrap(safe_text(value), value_size, width - CARD_PAD * 2):
            self.text(x + CARD_PAD, line_y - value_size, line, value_size, colors.black)
            line_y -= value_size + 8

    def single_card(self, label: str, value: Any, value_size: float, min_height: float) -> None:
        height = max(min_height, self.card_height(value, self.content_width, 13, value_size))
        self.ensure_space(height + GAP)
        self.card(label, value, MARGIN, self.content_width, height, 13, value_size)
        self.y -= height + GAP

    def card_row(self, left: tuple[str, Any], right: tuple[str, Any]) -> None:
        gutter = 14
        col = (self.content_width - gutter) / 2
        height = max(
            self.card_height(left[1], col, 12, 18),
            self.card_height(right[1], col, 12, 18),
        )
        self.ensure_space(height + GAP)
        self.card(left[0], left[1], MARGIN, col, height, 12, 18)
        self.card(right[0], right[1], MARGIN + col + gutter, col, height, 12, 18)
        self.y -= height + GAP

    def bullets(self, title: str, items: list[str]) -> None:
        title_size, body_size, line_gap, bullet_gap = 18, 16, 7, 6
        self.ensure_space(32)
        self.text(MARGIN, self.y - title_size, title, title_size, PRIMARY)
        self.y -= 28

        if not items:
            self.ensure_space(body_size + 12)
            self.text(MARGIN, self.y - body_size, "Нет рекомендаций", body_size, MUTED)
            self.y -= body_size + 14
            return

        for item in items:
            lines = self.wrap(item, body_size, self.content_width - 22)
            self.ensure_space(len(lines) * body_size + (len(lines) - 1) * line_gap + bullet_gap)
            for index, line in enumerate(lines):
                if index == 0:
                    self.text(MARGIN, self.y - body_size, "•", body_size, PRIMARY)
                self.text(MARGIN + 18, self.y - body_size, line, body_size, colors.black)
                self.y -= body_size + line_gap
            self.y -= bullet_gap

    def image(self, data: bytes) -> None:
        reader = ImageReader(io.BytesIO(data))
        img_w, img_h = reader.getSize()
        max_w = self.content_width - CARD_PAD * 2
        scale = min(1.5, max_w / img_w, 520 / img_h)
        draw_w, draw_h = img_w * scale, img_h * scale
        card_h = draw_h + CARD_PAD * 2 + 12

        self.ensure_space(card_h + GAP)
        c = self.canvas
        c.setFillColor(CARD_BG)
        c.setStrokeColor(BORDER)
        c.rect(MARGIN, self.y - card_h, self.content_width, card_h, stroke=1, fill=1)
        c.drawImage(
            reader,
            MARGIN + CARD_PAD + (max_w - draw_w) / 2,
            self.y - CARD_PAD - draw_h,
            width=draw_w,
            height=draw_h,
        )
        self.text(MARGIN + CARD_PAD, self.y - card_h + 8, "Фото растения", 11, MUTED)
        self.y -= card_h + GAP


def render_scan_report(scan: Scan) -> bytes:
    """
    Render the scan report

    Returns:
        the PDF document bytes
    """
    buffer = io.BytesIO()
    canvas = Canvas(buffer, pagesize=A4)
    canvas.setTitle(f"Scan {scan.id}")
    writer = _ReportWriter(canvas, get_report_font())
    result: dict[str, Any] = scan.result or {}

    created_at = as_utc(scan.created_at)
    stamp = created_at.strftime("%d.%m.%Y %H:%M UTC") if created_at else ""
    writer.text(MARGIN, writer.y, settings.PROJECT_NAME, 12, MUTED)
    stamp_width = pdfmetrics.stringWidth(stamp, writer.font, 12)
    writer.text(MARGIN + writer.content_width - stamp_width, writer.y, stamp, 12, MUTED)
    writer.y -= 22

    writer.ensure_space(44)
    writer.text(MARGIN, writer.y - 26, "Результат сканирования растения", 26, PRIMARY)
    writer.y -= 44
    writer.divider()

    image_bytes = decode_data_url(scan.image_url) if scan.image_url else None
    if image_bytes:
        try:
            writer.image(image_bytes)
        except Exception as e:
            logger.warning("Could not embed the photo of scan %s: %s", scan.id, e)

    writer.single_card(
        "Название растения",
        result.get("plantName") or result.get("name") or "Неизвестно",
        value_size=26,
        min_height=96,
    )
    writer.card_row(
        ("Состояние здоровья", result.get("healthCondition") or result.get("condition") or "—"),
        ("Место происхождения", result.get("origin") or result.get("originContinent") or "Неизвестно"),
    )
    writer.divider()
    writer.bullets("Рекомендации по уходу", normalize_recommendations(result.get("recommendations")))

    writer.text(writer.width - MARGIN - 120, MARGIN / 2, f"Scan ID: {scan.id}", 10, MUTED)
    canvas.showPage()
    canvas.save()
    return buffer.getvalue()
