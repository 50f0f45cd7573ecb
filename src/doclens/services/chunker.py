from __future__ import annotations

from collections.abc import Iterator

from doclens.schemas.documents import ExtractedDocument, ExtractedPage, TextChunk, TextPosition

DEFAULT_MAX_CHUNK_SIZE = 2000
DEFAULT_OVERLAP_SIZE = 200


def _split_text(text: str, *, max_chunk_size: int, overlap_size: int) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` windows over already-trimmed page text."""

    length = len(text)
    if length <= max_chunk_size:
        yield 0, length
        return

    start = 0
    while start < length:
        end = min(start + max_chunk_size, length)

        if end < length:
            # Snap to a space so words are not split.
            lookback = min(end - start, max_chunk_size // 4)
            last_space = text.rfind(" ", end - lookback, end)
            if last_space > start:
                end = last_space

        yield start, end

        if end >= length:
            break

        step = end - start - overlap_size
        if step <= 0:
            step = end - start
        start += step

        while start < length and text[start].isspace():
            start += 1


def _positions_for_range(
    page: ExtractedPage, *, start: int, end: int
) -> tuple[TextPosition, ...] | None:
    if not page.paragraphs:
        return None

    positions = tuple(
        TextPosition(
            page_number=page.page_number,
            bounding_box=paragraph.bounding_box,
            char_offset=paragraph.char_offset,
            char_length=paragraph.char_length,
            page_width=page.width,
            page_height=page.height,
        )
        for paragraph in page.paragraphs
        if paragraph.char_offset + paragraph.char_length > start and paragraph.char_offset < end
    )
    return positions or None


def chunk_document(
    document: ExtractedDocument,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    overlap_size: int = DEFAULT_OVERLAP_SIZE,
) -> list[TextChunk]:
    """Split extracted pages into overlapping, position-tagged chunks.

    Parameters
    ----------
    document:
        Output of the extraction step.
    max_chunk_size:
        Upper bound on characters per chunk.
    overlap_size:
        Characters shared between consecutive chunks of the same page.

    Notes
    -----
    * ``chunk_index`` counts across the whole document, not per page.
    * Offsets refer to the page's original ``content``, so they line up with
      paragraph ``char_offset`` values.
    * Whitespace-only pages produce no chunks.
    """

    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be greater than zero")
    if overlap_size < 0:
        raise ValueError("overlap_size must not be negative")

    chunks: list[TextChunk] = []
    chunk_index = 0

    for page in document.pages:
        content = page.content or ""
        trimmed = content.strip()
        if not trimmed:
            continue

        lead = len(content) - len(content.lstrip())
        for start, end in _split_text(
            trimmed, max_chunk_size=max_chunk_size, overlap_size=overlap_size
        ):
            piece = trimmed[start:end].strip()
            if not piece:
                continue

            chunk_start = lead + start
            chunk_end = lead + end
            chunks.append(
                TextChunk(
                    content=piece,
                    chunk_index=chunk_index,
                    page_number=page.page_number,
                    start_offset=chunk_start,
                    end_offset=chunk_end,
                    positions=_positions_for_range(page, start=chunk_start, end=chunk_end),
                )
            )
            chunk_index += 1

    return chunks
