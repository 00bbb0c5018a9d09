"""Render-target independent description of a printable document.

The builders in ``lieferschein`` produce these objects, the PDF and HTML
renderers consume them. Everything is frozen; a model is built once per
request and only read afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

LIGHT = "light"
REGULAR = "regular"
SEMIBOLD = "semibold"


@dataclass(frozen=True)
class Span:
    text: str
    bold: bool = False


@dataclass(frozen=True)
class TextBlock:
    """Lines of text sharing one role ("company", "title", "section_title", "paragraph")."""

    role: str
    lines: tuple[tuple[Span, ...], ...]

    @property
    def plain_lines(self) -> list[str]:
        return ["".join(span.text for span in line) for line in self.lines]


@dataclass(frozen=True)
class Column:
    label: str
    width_pct: float | None = None
    align: str = "left"


@dataclass(frozen=True)
class Row:
    cells: tuple[str, ...]
    full_width: bool = False


@dataclass(frozen=True)
class Table:
    role: str
    columns: tuple[Column, ...]
    rows: tuple[Row, ...]

    @property
    def header(self) -> tuple[str, ...]:
        return tuple(column.label for column in self.columns)


@dataclass(frozen=True)
class Image:
    ref: str | None
    role: str
    width: float
    height: float
    opacity: float = 1.0


@dataclass(frozen=True)
class TotalLine:
    label: str
    value: str


@dataclass(frozen=True)
class SignatureBlock:
    labels: tuple[str, ...]


Block = Union[TextBlock, Table, Image, TotalLine, SignatureBlock]


@dataclass(frozen=True)
class Section:
    name: str
    blocks: tuple[Block, ...]


@dataclass(frozen=True)
class Page:
    sections: tuple[Section, ...]
    size: str = "A4"
    watermark: Image | None = None

    def section(self, name: str) -> Section:
        for section in self.sections:
            if section.name == name:
                return section
        raise KeyError(name)


@dataclass(frozen=True)
class DocumentModel:
    title: str
    filename: str
    pages: tuple[Page, ...] = field(default_factory=tuple)
