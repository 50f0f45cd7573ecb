from __future__ import annotations

import asyncio
import logging
from typing import Any

import pymupdf

from doclens.errors import DocumentEncryptedError, DocumentExtractionError
from doclens.schemas.documents import (
    BoundingBox,
    ExtractedDocument,
    ExtractedPage,
    ExtractedParagraph,
)

logger = logging.getLogger(__name__)

_PARAGRAPH_SEPARATOR = "\n"


def _open_pdf(pdf_bytes: bytes) -> Any:
    # PyMuPDF typing is partial.
    pymupdf_module: Any = pymupdf
    return pymupdf_module.open(stream=pdf_bytes, filetype="pdf")


def _to_bottom_left(
    x0: float, y0: float, x1: float, y1: float, *, page_height: float
) -> BoundingBox:
    # PyMuPDF measures y from the top of the page.
    return BoundingBox(
        x=max(0.0, float(x0)),
        y=max(0.0, page_height - float(y1)),
        width=max(0.0, float(x1) - float(x0)),
        height=max(0.0, float(y1) - float(y0)),
    )


def _extract_page(page: Any, *, sort: bool) -> ExtractedPage:
    rect = page.rect
    width = float(rect.width)
    height = float(rect.height)

    paragraphs: list[ExtractedParagraph] = []
    offset = 0
    for x0, y0, x1, y1, text, _block_no, block_type in page.get_text("blocks", sort=sort):
        # Text blocks use type 0.
        if block_type != 0:
            continue

        cleaned = " ".join(str(text).split())
        if not cleaned:
            continue

        if paragraphs:
            offset += len(_PARAGRAPH_SEPARATOR)
        paragraphs.append(
            ExtractedParagraph(
                content=cleaned,
                char_offset=offset,
                char_length=len(cleaned),
                bounding_box=_to_bottom_left(x0, y0, x1, y1, page_height=height),
            )
        )
        offset += len(cleaned)

    return ExtractedPage(
        page_number=int(getattr(page, "number", 0)) + 1,
        content=_PARAGRAPH_SEPARATOR.join(paragraph.content for paragraph in paragraphs),
        width=width,
        height=height,
        paragraphs=tuple(paragraphs),
    )


def extract_pdf_document(
    pdf_bytes: bytes, document_id: str, *, sort: bool = True
) -> ExtractedDocument:
    """Extract pages and paragraph geometry from a PDF.

    Notes
    -----
    * Pages are 1-based.
    * Each text block becomes one paragraph; page content is the paragraphs
      joined by newlines, so paragraph offsets index straight into it.
    * Bounding boxes use a bottom-left origin.
    """

    try:
        with _open_pdf(pdf_bytes) as doc:
            # Both flags are present across PyMuPDF versions.
            if getattr(doc, "is_encrypted", False) or getattr(doc, "needs_pass", False):
                raise DocumentEncryptedError("PDF is encrypted or requires a password")

            pages = tuple(_extract_page(page, sort=sort) for page in doc)
    except DocumentExtractionError:
        raise
    except Exception as exc:
        raise DocumentExtractionError("Failed to parse PDF") from exc

    return ExtractedDocument(document_id=document_id, pages=pages)


class PdfExtractor:
    """Extraction capability backed by PyMuPDF; parsing runs off the event loop."""

    def __init__(self, *, sort: bool = True) -> None:
        self._sort = sort

    async def extract(self, data: bytes, document_id: str) -> ExtractedDocument:
        document = await asyncio.to_thread(
            extract_pdf_document, data, document_id, sort=self._sort
        )
        logger.info(
            "Extracted %d pages (%d paragraphs) from document_id=%s",
            len(document.pages),
            sum(len(page.paragraphs) for page in document.pages),
            document_id,
        )
        return document
