# finance_extractor/config.py
import os

# Gemini generateContent endpoint
GEMINI_API_URL = os.getenv(
    "GEMINI_API_URL",
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.0-flash:generateContent",
)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

# Expiry counts as an LLM failure and sends the pipeline down the fallback path
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

# Tesseract
TESSERACT_CMD = os.getenv("TESSERACT_CMD")
OCR_LANGUAGE = "eng"
MAX_IMAGE_WIDTH = 1200

# Scanned statements: OCR the pages when the text layer is mostly empty
PDF_OCR_FALLBACK = os.getenv("PDF_OCR_FALLBACK", "true").lower() == "true"
PDF_OCR_DPI = 300

# Uploads
UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join(os.getcwd(), "uploads"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# "random" (uniform pick) or "hash" (stable per category name)
CATEGORY_VISUAL_POLICY = os.getenv("CATEGORY_VISUAL_POLICY", "random")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
