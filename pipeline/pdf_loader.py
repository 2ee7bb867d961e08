"""
PDF to page-image conversion using PyMuPDF.
"""

import base64
from pathlib import Path
from typing import Generator, List, Optional, Tuple, Union

import fitz  # PyMuPDF

from config import PDF_DIR, PDF_DPI, PDF_IMAGE_FORMAT


class RenderError(RuntimeError):
    """Raised when a PDF cannot be opened or rasterised."""


class PDFLoader:
    """Renders PDF pages to base64-encoded PNG images."""

    def __init__(self, dpi: int = PDF_DPI):
        self.dpi = dpi
        self.zoom = dpi / 72  # PDF standard is 72 DPI

    def load_pdf(self, pdf_path: Union[Path, str, bytes]) -> fitz.Document:
        """Load a PDF document from a path or raw bytes."""
        try:
            if isinstance(pdf_path, (bytes, bytearray)):
                return fitz.open(stream=bytes(pdf_path), filetype="pdf")
            return fitz.open(pdf_path)
        except Exception as e:
            raise RenderError(f"Could not open PDF {pdf_path!r:.80}: {e}") from e

    def page_to_png(self, doc: fitz.Document, page_num: int) -> bytes:
        """Render a single (0-based) page to PNG bytes."""
        page = doc[page_num]
        mat = fitz.Matrix(self.zoom, self.zoom)
        pix = page.get_pixmap(matrix=mat)
        return pix.tobytes(PDF_IMAGE_FORMAT)

    def iterate_pages(
        self, doc: fitz.Document, start: int = 0, end: Optional[int] = None
    ) -> Generator[Tuple[int, str], None, None]:
        """
        Generator that yields (page_num, base64_png) tuples, page_num 1-based.
        """
        if end is None:
            end = len(doc)

        for page_idx in range(start, end):
            png = self.page_to_png(doc, page_idx)
            yield page_idx + 1, base64.b64encode(png).decode("ascii")

    def render_pages_to_base64(
        self,
        pdf_path: Union[Path, str, bytes],
        page_range: Optional[Tuple[int, int]] = None,
    ) -> List[str]:
        """
        Render every page (or an inclusive 1-based range) in page order.

        Raises:
            RenderError: if the PDF cannot be opened or a page fails to render.
        """
        doc = self.load_pdf(pdf_path)
        try:
            total = len(doc)
            if page_range:
                start_idx = max(0, page_range[0] - 1)
                end_idx = min(page_range[1], total)
            else:
                start_idx, end_idx = 0, total

            try:
                return [image for _, image in self.iterate_pages(doc, start_idx, end_idx)]
            except Exception as e:
                raise RenderError(f"Failed to render PDF pages: {e}") from e
        finally:
            doc.close()


def render_pages_to_images(pdf_path: Union[Path, str, bytes], dpi: int = PDF_DPI) -> List[str]:
    """Rasterise a PDF into base64 PNG strings, one per page."""
    return PDFLoader(dpi=dpi).render_pages_to_base64(pdf_path)


def list_pdfs(directory: Path = PDF_DIR) -> List[Path]:
    """List all PDF files in a directory."""
    return sorted(directory.glob("*.pdf"))
