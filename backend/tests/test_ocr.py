"""Tests for the OCR service."""

import fitz  # PyMuPDF
import pytest
from PIL import Image
from unittest.mock import patch

from careform.services import ocr
from careform.services.ocr import OCRService, UnsupportedFileTypeError, is_supported_mime_type

TEXT_LAYER_LINES = [
    "Monthly Care Coordination Monitoring Contact",
    "Name: Bob Smith",
    "Date: 03/15/2024",
    "SIH checked",
    "Review of Services: services reviewed with client, all in place.",
]


def _write_pdf(path, lines=None, pages=1):
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page()
        if lines:
            page.insert_text((72, 72), "\n".join(lines), fontsize=10)
    doc.save(str(path))
    doc.close()
    return path


class TestMimeTypes:
    @pytest.mark.parametrize("mime_type,expected", [
        ("application/pdf", True),
        ("image/png", True),
        ("image/jpeg", True),
        ("text/plain", False),
        ("", False),
        (None, False),
    ])
    def test_is_supported(self, mime_type, expected):
        assert is_supported_mime_type(mime_type) is expected

    @pytest.mark.asyncio
    async def test_unsupported_type_raises(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        with pytest.raises(UnsupportedFileTypeError):
            await OCRService().extract_text(path, "text/plain")


class TestPDFExtraction:
    @pytest.mark.asyncio
    async def test_text_layer(self, tmp_path):
        """PDFs with a usable text layer skip OCR entirely."""
        path = _write_pdf(tmp_path / "typed.pdf", TEXT_LAYER_LINES)

        with patch.object(ocr, "_ocr_image") as mock_ocr:
            result = await OCRService().extract_text(path, "application/pdf")

        mock_ocr.assert_not_called()
        assert result.method == "pdf-text"
        assert result.confidence == 95.0
        assert result.page_count == 1
        assert "Bob Smith" in result.text

    @pytest.mark.asyncio
    async def test_scanned_pdf_uses_ocr(self, tmp_path):
        """Pages without text are rendered and OCR'd; confidence is the page average."""
        path = _write_pdf(tmp_path / "scanned.pdf", pages=2)

        with patch.object(ocr, "_ocr_image", side_effect=[("page one", 80.0), ("page two", 40.0)]) as mock_ocr:
            result = await OCRService(dpi=72).extract_text(path, "application/pdf")

        assert mock_ocr.call_count == 2
        assert result.method == "pdf-ocr"
        assert result.page_count == 2
        assert result.confidence == pytest.approx(60.0)
        assert result.text == "page one" + ocr.PAGE_BREAK + "page two"


class TestImageExtraction:
    @pytest.mark.asyncio
    async def test_image_ocr(self, tmp_path):
        path = tmp_path / "scan.png"
        Image.new("RGB", (40, 20), "white").save(path)

        with patch.object(ocr, "_ocr_image", return_value=("Name: Bob", 42.5)):
            result = await OCRService().extract_text(path, "image/png")

        assert result.method == "image-ocr"
        assert result.text == "Name: Bob"
        assert result.confidence == 42.5
        assert result.page_count == 1


class TestWordConfidence:
    def test_mean_of_recognized_words(self):
        """Non-word boxes (conf -1) and blank words are ignored."""
        data = {"text": ["", "Bob", "Smith", " ", "SIH"], "conf": ["-1", "90", "70", "-1", "50"]}
        img = Image.new("RGB", (10, 10), "white")

        with patch.object(ocr.pytesseract, "image_to_string", return_value="Bob Smith\nSIH"), \
                patch.object(ocr.pytesseract, "image_to_data", return_value=data):
            text, confidence = ocr._ocr_image(img)

        assert text == "Bob Smith\nSIH"
        assert confidence == pytest.approx(70.0)

    def test_no_words(self):
        img = Image.new("RGB", (10, 10), "white")

        with patch.object(ocr.pytesseract, "image_to_string", return_value=""), \
                patch.object(ocr.pytesseract, "image_to_data", return_value={"text": [""], "conf": [-1]}):
            assert ocr._ocr_image(img) == ("", 0.0)
