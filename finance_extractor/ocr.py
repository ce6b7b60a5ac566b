# finance_extractor/ocr.py
import logging

import pytesseract

from .config import OCR_LANGUAGE, TESSERACT_CMD
from .errors import OCRError
from .preprocess import optimized_image_file

logger = logging.getLogger(__name__)

if TESSERACT_CMD:
    pytesseract.pytesseract.tesseract_cmd = TESSERACT_CMD


def recognize_receipt(raw_bytes: bytes, lang: str = OCR_LANGUAGE) -> str:
    """
    Preprocess a receipt image and run Tesseract on it.
    ImageProcessingError propagates untouched; Tesseract problems become OCRError.
    """
    with optimized_image_file(raw_bytes) as path:
        try:
            text = pytesseract.image_to_string(path, lang=lang)
        except pytesseract.TesseractNotFoundError as e:
            raise OCRError("Tesseract OCR binary is not installed") from e
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            raise OCRError(f"OCR failed: {e}") from e

    text = text or ""
    logger.debug("OCR extracted %d characters", len(text))
    return text
