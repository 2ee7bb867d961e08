"""
Tests for PDF rasterisation. PDFs are built on the fly with PyMuPDF.
"""
import base64
import io

import fitz
import pytest
from PIL import Image

from pipeline.pdf_loader import PDFLoader, RenderError, list_pdfs, render_pages_to_images

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


@pytest.fixture
def sample_pdf(tmp_path):
    path = tmp_path / "paper.pdf"
    doc = fitz.open()
    for n in range(1, 4):
        page = doc.new_page(width=200, height=200)
        page.insert_text((20, 40), f"Question page {n}")
    doc.save(str(path))
    doc.close()
    return path


class TestRender:
    def test_one_png_per_page(self, sample_pdf):
        images = render_pages_to_images(sample_pdf, dpi=72)
        assert len(images) == 3
        for image in images:
            assert base64.b64decode(image).startswith(PNG_SIGNATURE)

    def test_page_range_inclusive(self, sample_pdf):
        loader = PDFLoader(dpi=72)
        assert len(loader.render_pages_to_base64(sample_pdf, (2, 3))) == 2

    def test_page_range_clamped_to_document(self, sample_pdf):
        loader = PDFLoader(dpi=72)
        assert len(loader.render_pages_to_base64(sample_pdf, (3, 10))) == 1

    def test_from_bytes(self, sample_pdf):
        images = PDFLoader(dpi=72).render_pages_to_base64(sample_pdf.read_bytes())
        assert len(images) == 3

    def test_dpi_scales_output(self, sample_pdf):
        loader = PDFLoader(dpi=144)
        doc = loader.load_pdf(sample_pdf)
        try:
            png = loader.page_to_png(doc, 0)
        finally:
            doc.close()
        assert Image.open(io.BytesIO(png)).size == (400, 400)

    def test_iterate_pages_is_one_based(self, sample_pdf):
        loader = PDFLoader(dpi=72)
        doc = loader.load_pdf(sample_pdf)
        try:
            assert [n for n, _ in loader.iterate_pages(doc)] == [1, 2, 3]
        finally:
            doc.close()


class TestErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(RenderError):
            PDFLoader().render_pages_to_base64(tmp_path / "missing.pdf")

    def test_not_a_pdf(self):
        with pytest.raises(RenderError):
            PDFLoader().render_pages_to_base64(b"definitely not a pdf")


class TestListPdfs:
    def test_sorted_pdf_files(self, tmp_path):
        for name in ("b.pdf", "a.pdf", "notes.txt"):
            (tmp_path / name).write_bytes(b"")
        assert [p.name for p in list_pdfs(tmp_path)] == ["a.pdf", "b.pdf"]
