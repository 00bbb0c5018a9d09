from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from threading import Lock
from typing import Any, Iterator
from urllib.parse import urlparse
from urllib.request import url2pathname
from xml.sax.saxutils import escape
import logging

from PIL import Image as PILImage
import requests
from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import (
    BaseDocTemplate,
    Frame,
    PageBreak,
    PageTemplate,
    Paragraph,
    Spacer,
)
from reportlab.platypus import Image as PdfImage
from reportlab.platypus import Table as PdfTable
from reportlab.platypus import TableStyle

from config import Config
from document_model import (
    LIGHT,
    REGULAR,
    SEMIBOLD,
    DocumentModel,
    Image,
    Page,
    Section,
    SignatureBlock,
    Span,
    Table,
    TextBlock,
    TotalLine,
)
from errors import RenderFailure

logger = logging.getLogger(__name__)

PAGE_SIZES = {"A4": A4}
MARGIN_X = 26
MARGIN_Y = 20
IMAGE_TIMEOUT_SECONDS = 10

TEXT_COLOR = colors.HexColor("#111827")
BORDER_COLOR = colors.HexColor("#cbd5e1")
ROW_RULE_COLOR = colors.HexColor("#e5e7eb")
HEADER_FILL = colors.HexColor("#eef2f7")

_WEIGHT_SUFFIX = {LIGHT: "Light", REGULAR: "Regular", SEMIBOLD: "SemiBold"}


@dataclass(frozen=True)
class FontSet:
    """Three weights of one TrueType family. All of them must load."""

    family: str
    light: Path
    regular: Path
    semibold: Path

    @classmethod
    def from_config(cls, config: Config) -> "FontSet":
        return cls(
            family=config.font_family,
            light=config.fonts_dir / config.font_light,
            regular=config.fonts_dir / config.font_regular,
            semibold=config.fonts_dir / config.font_semibold,
        )

    def name(self, weight: str) -> str:
        return f"{self.family}-{_WEIGHT_SUFFIX[weight]}"

    def paths(self) -> dict[str, Path]:
        return {LIGHT: self.light, REGULAR: self.regular, SEMIBOLD: self.semibold}


_REGISTERED_FONTS: set[FontSet] = set()
_FONT_LOCK = Lock()


def register_fonts(fonts: FontSet) -> None:
    """Register the font weights with reportlab once per process."""
    with _FONT_LOCK:
        if fonts in _REGISTERED_FONTS:
            return
        for weight, path in fonts.paths().items():
            if not Path(path).is_file():
                raise RenderFailure(f"Font file for weight '{weight}' not found: {path}")
            try:
                pdfmetrics.registerFont(TTFont(fonts.name(weight), str(path)))
            except Exception as exc:  # noqa: BLE001
                raise RenderFailure(f"Font file for weight '{weight}' could not be loaded: {path}: {exc}") from exc
        _REGISTERED_FONTS.add(fonts)
        logger.info("Registered font family %s", fonts.family)


def load_image_bytes(ref: str) -> bytes:
    parsed = urlparse(ref)
    if parsed.scheme in ("http", "https"):
        resp = requests.get(ref, timeout=IMAGE_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return resp.content
    if parsed.scheme == "file":
        return Path(url2pathname(parsed.path)).read_bytes()
    return Path(ref).read_bytes()


@dataclass
class _ImageAssets:
    logo: bytes | None = None
    watermark: ImageReader | None = None


def _faded_reader(image_bytes: bytes, opacity: float) -> ImageReader:
    with PILImage.open(BytesIO(image_bytes)) as img:
        rgba = img.convert("RGBA")
    alpha = rgba.getchannel("A").point(lambda value: round(value * opacity))
    rgba.putalpha(alpha)
    return ImageReader(rgba)


def _load_assets(model: DocumentModel) -> _ImageAssets:
    assets = _ImageAssets()
    refs = {
        block.ref
        for page in model.pages
        for section in page.sections
        for block in section.blocks
        if isinstance(block, Image) and block.ref
    }
    watermark = _watermark_of(model)
    if watermark is not None and watermark.ref:
        refs.add(watermark.ref)
    if not refs:
        return assets

    # Every image in this layout is the company logo.
    ref = sorted(refs)[0]
    try:
        data = load_image_bytes(ref)
        with PILImage.open(BytesIO(data)) as img:
            img.verify()
    except (requests.RequestException, OSError, ValueError) as exc:
        logger.warning("Logo %s could not be loaded, rendering without it: %s", ref, exc)
        return assets

    assets.logo = data
    if watermark is not None:
        assets.watermark = _faded_reader(data, watermark.opacity)
    return assets


def _watermark_of(model: DocumentModel) -> Image | None:
    return next((page.watermark for page in model.pages if page.watermark is not None), None)


def _styles(fonts: FontSet) -> dict[str, ParagraphStyle]:
    light = fonts.name(LIGHT)
    semibold = fonts.name(SEMIBOLD)
    base = ParagraphStyle("base", fontName=light, fontSize=8.6, leading=9.6, textColor=TEXT_COLOR)
    return {
        "company": ParagraphStyle("company", parent=base, leading=10.4),
        "company_name": ParagraphStyle("company_name", parent=base, fontName=semibold, fontSize=11, leading=13, spaceAfter=4),
        "title": ParagraphStyle("title", parent=base, fontName=semibold, fontSize=15, leading=18, alignment=TA_RIGHT),
        "section_title": ParagraphStyle(
            "section_title", parent=base, fontName=semibold, fontSize=9.6, leading=11.5, spaceBefore=8, spaceAfter=5
        ),
        "paragraph": ParagraphStyle("paragraph", parent=base, leading=11.2),
        "meta_head": ParagraphStyle("meta_head", parent=base, fontName=semibold, fontSize=8.1, leading=9.7),
        "meta_body": ParagraphStyle("meta_body", parent=base, fontName=fonts.name(REGULAR), fontSize=8.4, leading=10),
        "cell": ParagraphStyle("cell", parent=base, alignment=TA_LEFT),
        "cell_right": ParagraphStyle("cell_right", parent=base, alignment=TA_RIGHT),
        "cell_head": ParagraphStyle("cell_head", parent=base, fontName=semibold),
        "cell_head_right": ParagraphStyle("cell_head_right", parent=base, fontName=semibold, alignment=TA_RIGHT),
        "total": ParagraphStyle("total", parent=base, fontName=semibold, alignment=TA_RIGHT),
        "signature": ParagraphStyle("signature", parent=base, fontName=semibold, fontSize=9, leading=11),
    }


def _markup(spans: tuple[Span, ...], fonts: FontSet) -> str:
    parts = []
    for span in spans:
        text = escape(span.text)
        if span.bold:
            text = f'<font name="{fonts.name(SEMIBOLD)}">{text}</font>'
        parts.append(text)
    return "".join(parts)


def _text_flowables(block: TextBlock, fonts: FontSet, styles: dict[str, ParagraphStyle]) -> list[Any]:
    if block.role == "company":
        flowables = []
        for index, line in enumerate(block.lines):
            style = styles["company_name"] if index == 0 else styles["company"]
            flowables.append(Paragraph(_markup(line, fonts), style))
        return flowables
    style = styles.get(block.role, styles["paragraph"])
    markup = "<br/>".join(_markup(line, fonts) for line in block.lines)
    return [Paragraph(markup, style)]


def _header_flowable(section: Section, fonts: FontSet, styles, assets: _ImageAssets, width: float) -> PdfTable:
    left: list[Any] = []
    right: list[Any] = []
    for block in section.blocks:
        if isinstance(block, TextBlock) and block.role == "company":
            left.extend(_text_flowables(block, fonts, styles))
        elif isinstance(block, Image):
            if assets.logo is not None:
                logo = PdfImage(BytesIO(assets.logo), width=block.width, height=block.height, kind="proportional")
                logo.hAlign = "RIGHT"
                right.append(logo)
                right.append(Spacer(1, 5))
        elif isinstance(block, TextBlock):
            right.extend(_text_flowables(block, fonts, styles))

    table = PdfTable([[left, right]], colWidths=[width * 0.6, width * 0.4])
    table.setStyle(
        TableStyle(
            [
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 0),
                ("RIGHTPADDING", (0, 0), (-1, -1), 0),
                ("TOPPADDING", (0, 0), (-1, -1), 0),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 0),
            ]
        )
    )
    return table


def column_widths(table: Table, width: float) -> list[float]:
    """Split ``width`` across the columns in proportion to their percentages.

    The item columns are 5/40/15/8/22/19, which adds up to 109,
    so percentages are treated as relative weights and always fill the frame.
    """
    pcts = [column.width_pct for column in table.columns]
    if not pcts:
        raise RenderFailure(f"Table '{table.role}' has no columns")
    if all(pct is None for pct in pcts):
        return [width / len(pcts)] * len(pcts)
    if any(pct is None or pct <= 0 for pct in pcts):
        raise RenderFailure(f"Column widths of table '{table.role}' must all be positive, got {pcts}")
    total = sum(pcts)
    return [width * pct / total for pct in pcts]


def _meta_table(table: Table, styles, width: float) -> PdfTable:
    data = [[Paragraph(escape(label), styles["meta_head"]) for label in table.header]]
    for row in table.rows:
        data.append([Paragraph(escape(cell), styles["meta_body"]) for cell in row.cells])
    pdf_table = PdfTable(data, colWidths=column_widths(table, width))
    pdf_table.setStyle(
        TableStyle(
            [
                ("BOX", (0, 0), (-1, -1), 1, BORDER_COLOR),
                ("LINEAFTER", (0, 0), (-2, -1), 1, BORDER_COLOR),
                ("LINEBELOW", (0, 0), (-1, 0), 1, BORDER_COLOR),
                ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("TOPPADDING", (0, 0), (-1, -1), 3.5),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3.5),
                ("LEFTPADDING", (0, 0), (-1, -1), 5),
                ("RIGHTPADDING", (0, 0), (-1, -1), 5),
            ]
        )
    )
    return pdf_table


def _items_table(table: Table, styles, width: float) -> PdfTable:
    head = []
    for column in table.columns:
        style = styles["cell_head_right"] if column.align == "right" else styles["cell_head"]
        head.append(Paragraph(escape(column.label), style))
    data = [head]
    commands: list[tuple] = [
        ("BOX", (0, 0), (-1, -1), 1, BORDER_COLOR),
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_FILL),
        ("LINEBELOW", (0, 0), (-1, 0), 1, BORDER_COLOR),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("TOPPADDING", (0, 0), (-1, -1), 3.5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3.5),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
    ]
    for index, row in enumerate(table.rows, start=1):
        if row.full_width:
            cells = [Paragraph(escape(row.cells[0]), styles["cell"])]
            cells.extend("" for _ in table.columns[1:])
            commands.append(("SPAN", (0, index), (-1, index)))
        else:
            cells = []
            for column, value in zip(table.columns, row.cells):
                style = styles["cell_right"] if column.align == "right" else styles["cell"]
                cells.append(Paragraph(escape(value), style))
        data.append(cells)
        if index < len(table.rows):
            commands.append(("LINEBELOW", (0, index), (-1, index), 1, ROW_RULE_COLOR))

    pdf_table = PdfTable(data, colWidths=column_widths(table, width), repeatRows=1)
    pdf_table.setStyle(TableStyle(commands))
    return pdf_table


def _signature_flowables(block: SignatureBlock, styles, width: float) -> list[Any]:
    # Two 42% wide blocks pushed to the page edges.
    gap = width * (1 - 0.42 * len(block.labels)) / max(1, len(block.labels) - 1)
    cells: list[Any] = []
    widths: list[float] = []
    commands: list[tuple] = [
        ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ("RIGHTPADDING", (0, 0), (-1, -1), 0),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
    ]
    for index, label in enumerate(block.labels):
        if index:
            cells.append("")
            widths.append(gap)
        column = len(cells)
        cells.append(Paragraph(escape(label), styles["signature"]))
        widths.append(width * 0.42)
        commands.append(("LINEABOVE", (column, 0), (column, 0), 1, TEXT_COLOR))
    table = PdfTable([cells], colWidths=widths)
    table.setStyle(TableStyle(commands))
    return [Spacer(1, 70), table]


def _section_flowables(section: Section, fonts: FontSet, styles, assets: _ImageAssets, width: float) -> list[Any]:
    if section.name == "header":
        return [_header_flowable(section, fonts, styles, assets, width), Spacer(1, 15)]

    flowables: list[Any] = []
    for block in section.blocks:
        if isinstance(block, TextBlock):
            flowables.extend(_text_flowables(block, fonts, styles))
        elif isinstance(block, Table) and block.role == "meta":
            flowables.extend([Spacer(1, 10), _meta_table(block, styles, width)])
        elif isinstance(block, Table):
            flowables.extend([Spacer(1, 7), _items_table(block, styles, width)])
        elif isinstance(block, TotalLine):
            text = f"{escape(block.label)} {escape(block.value)}"
            flowables.extend([Spacer(1, 6), Paragraph(text, styles["total"])])
        elif isinstance(block, SignatureBlock):
            flowables.extend(_signature_flowables(block, styles, width))
        elif isinstance(block, Image):
            logger.debug("Skipping inline image %s outside the header", block.ref)
    return flowables


def _page_size(page: Page) -> tuple[float, float]:
    try:
        return PAGE_SIZES[page.size]
    except KeyError:
        raise RenderFailure(f"Unsupported page size: {page.size}") from None


def _build(model: DocumentModel, fonts: FontSet, output: BytesIO) -> None:
    if not model.pages:
        raise RenderFailure(f"Document {model.filename} has no pages")

    pagesize = _page_size(model.pages[0])
    assets = _load_assets(model)
    watermark = _watermark_of(model)
    styles = _styles(fonts)

    doc = BaseDocTemplate(
        output,
        pagesize=pagesize,
        leftMargin=MARGIN_X,
        rightMargin=MARGIN_X,
        topMargin=MARGIN_Y,
        bottomMargin=MARGIN_Y,
        title=model.title,
    )
    frame = Frame(
        doc.leftMargin,
        doc.bottomMargin,
        doc.width,
        doc.height,
        leftPadding=0,
        rightPadding=0,
        topPadding=0,
        bottomPadding=0,
        id="content",
    )

    def draw_watermark(canvas, _doc) -> None:
        if watermark is None or assets.watermark is None:
            return
        page_width, page_height = pagesize
        canvas.saveState()
        canvas.drawImage(
            assets.watermark,
            (page_width - watermark.width) / 2,
            (page_height - watermark.height) / 2,
            width=watermark.width,
            height=watermark.height,
            mask="auto",
            preserveAspectRatio=True,
            anchor="c",
        )
        canvas.restoreState()

    doc.addPageTemplates([PageTemplate(id="lieferschein", frames=[frame], onPage=draw_watermark)])

    story: list[Any] = []
    for index, page in enumerate(model.pages):
        if index:
            story.append(PageBreak())
        for section in page.sections:
            story.extend(_section_flowables(section, fonts, styles, assets, doc.width))
    doc.build(story)


def render_pdf(model: DocumentModel, fonts: FontSet) -> bytes:
    """Lay out the document on A4 pages and return the PDF bytes.

    An items table longer than one page continues on the next page with its
    header row repeated.
    """
    register_fonts(fonts)
    buffer = BytesIO()
    try:
        _build(model, fonts, buffer)
    except RenderFailure:
        raise
    except Exception as exc:  # noqa: BLE001
        raise RenderFailure(f"PDF layout failed for {model.filename}: {exc}") from exc
    return buffer.getvalue()


def _iter_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    view = memoryview(data)
    for start in range(0, len(data), chunk_size):
        yield bytes(view[start:start + chunk_size])


def stream_pdf(model: DocumentModel, fonts: FontSet, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
    """Render the whole document into memory, then hand it out in chunks.

    This is not incremental output: the complete PDF is held in memory
    before the first chunk is sent. In exchange a layout failure always
    surfaces as an error response and never as a truncated download.
    """
    data = render_pdf(model, fonts)
    return _iter_chunks(data, max(1, chunk_size))
