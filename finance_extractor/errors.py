# finance_extractor/errors.py


class ExtractionError(Exception):
    """Base class for every failure raised by the extraction pipeline."""


class ImageProcessingError(ExtractionError):
    pass


class OCRError(ExtractionError):
    pass


class PDFParseError(ExtractionError):
    pass


class LLMError(ExtractionError):
    """Network failure, bad HTTP status, timeout or a response without candidates."""


class CategoryResolutionFailure(ExtractionError):
    """The resolver could not produce a category id. Indicates a bug: "Other" is always available."""


class PersistenceError(ExtractionError):
    pass
