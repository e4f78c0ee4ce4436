from __future__ import annotations

from typing import List, Union

import fitz  # PyMuPDF

from ..errors import ParseError
from ..logging import get_logger

LOG = get_logger("receipts-text")


def extract_text(source: Union[str, bytes]) -> str:
    """Return the text of every page, one line per text line, pages separated by a blank line.

    ``source`` is either a filesystem path or the raw PDF bytes of an upload.
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            doc = fitz.open(stream=bytes(source), filetype="pdf")
        else:
            doc = fitz.open(source)
    except (RuntimeError, ValueError) as e:
        raise ParseError(f"Receipt is not a readable PDF: {e}") from e

    pages: List[str] = []
    with doc:
        LOG.info(f"Opened receipt PDF with {doc.page_count} page(s)")
        for page_index in range(doc.page_count):
            page = doc.load_page(page_index)
            text = page.get_text("text") or ""
            pages.append("\n".join(ln.rstrip("\r") for ln in text.splitlines()))
    return "\n\n".join(pages)
