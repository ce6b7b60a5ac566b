# finance_extractor/extract.py
import io
import logging
from itertools import zip_longest
from typing import List

import pdfplumber
import pytesseract
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .config import OCR_LANGUAGE, PDF_OCR_DPI, PDF_OCR_FALLBACK
from .errors import OCRError, PDFParseError

logger = logging.getLogger(__name__)

# Share of text-less pages above which the PDF is treated as a scan
SCANNED_PAGE_RATIO = 0.6


def _check_readable(raw_bytes: bytes) -> None:
    """
    Reject corrupt PDFs and encrypted ones that an empty password does not open.
    """
    try:
        reader = PdfReader(io.BytesIO(raw_bytes))
        if reader.is_encrypted and reader.decrypt("") in (0, False, None):
            raise PDFParseError("PDF is password-protected.")
    except PDFParseError:
        raise
    except (PyPdfError, ValueError, OSError, NotImplementedError) as e:
        raise PDFParseError(f"Could not read PDF: {e}") from e


def extract_text_by_page(raw_bytes: bytes) -> List[str]:
    pages_text: List[str] = []
    try:
        with pdfplumber.open(io.BytesIO(raw_bytes), password="") as pdf:
            for p in pdf.pages:
                pages_text.append((p.extract_text() or "").strip())
    except Exception as e:
        # Fallback: pypdf (robust but less table-aware)
        logger.info("pdfplumber failed (%s); retrying with pypdf", type(e).__name__)
        pages_text = []
        try:
            reader = PdfReader(io.BytesIO(raw_bytes))
            if reader.is_encrypted:
                reader.decrypt("")
            for page in reader.pages:
                pages_text.append((page.extract_text() or "").strip())
        except (PyPdfError, ValueError, OSError, NotImplementedError) as e2:
            raise PDFParseError(f"Could not extract PDF text: {e2}") from e2
    return pages_text


def is_mostly_scanned(pages_text: List[str]) -> bool:
    """True when more than SCANNED_PAGE_RATIO of the pages have no text layer."""
    if not pages_text:
        return False
    blank = sum(1 for page in pages_text if not page)
    return blank / len(pages_text) > SCANNED_PAGE_RATIO


def ocr_pdf_pages(raw_bytes: bytes) -> List[str]:
    """Rasterise every page and run Tesseract on it. Raises OCRError."""
    try:
        images = convert_from_bytes(raw_bytes, dpi=PDF_OCR_DPI)
        return [(pytesseract.image_to_string(image, lang=OCR_LANGUAGE) or "").strip() for image in images]
    except pytesseract.TesseractNotFoundError as e:
        raise OCRError("Tesseract OCR binary is not installed") from e
    except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as e:
        raise OCRError(f"Could not rasterise PDF: {e}") from e
    except (pytesseract.TesseractError, RuntimeError, OSError) as e:
        raise OCRError(f"OCR failed: {e}") from e


def fill_blank_pages(text_pages: List[str], ocr_pages: List[str]) -> List[str]:
    """Embedded text wherever a page has it, the OCR text for the rest."""
    return [embedded or scanned for embedded, scanned in zip_longest(text_pages, ocr_pages, fillvalue="")]


def get_pages_text(raw_bytes: bytes, ocr_fallback: bool = PDF_OCR_FALLBACK) -> List[str]:
    _check_readable(raw_bytes)
    pages_text = extract_text_by_page(raw_bytes)
    if not (ocr_fallback and is_mostly_scanned(pages_text)):
        return pages_text

    try:
        ocr_pages = ocr_pdf_pages(raw_bytes)
    except OCRError as e:
        logger.warning("Scanned PDF kept without OCR: %s", e)
        return pages_text
    return fill_blank_pages(pages_text, ocr_pages)


def extract_pdf_text(raw_bytes: bytes, ocr_fallback: bool = PDF_OCR_FALLBACK) -> str:
    """All pages' text, in page order, one page per block."""
    text = "\n".join(get_pages_text(raw_bytes, ocr_fallback=ocr_fallback))
    logger.info("PDF text extracted, length: %d", len(text))
    return text
