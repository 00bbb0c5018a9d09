from __future__ import annotations

from flask import render_template

from document_model import DocumentModel, Image, SignatureBlock, Table, TextBlock, TotalLine


def block_kind(block: object) -> str:
    if isinstance(block, TextBlock):
        return "text"
    if isinstance(block, Table):
        return "table"
    if isinstance(block, Image):
        return "image"
    if isinstance(block, TotalLine):
        return "total"
    if isinstance(block, SignatureBlock):
        return "signature"
    return "unknown"


def render_html(model: DocumentModel, pdf_url: str = "") -> str:
    """Printable HTML view of the same document model the PDF is built from.

    Needs an active Flask application context.
    """
    return render_template(
        "lieferschein.html",
        model=model,
        pages=model.pages,
        block_kind=block_kind,
        pdf_url=pdf_url,
    )
