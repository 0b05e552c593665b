from __future__ import annotations

import io
import logging
import re
from collections.abc import Callable

import pytesseract
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from cvgrab.errors import ExtractionFailure

TextExtractor = Callable[[bytes], str]

WHITESPACE = re.compile(r"\s+")

logger = logging.getLogger(__name__)


def extract_text_layer(data: bytes) -> str:
    """Text embedded in the PDF content streams (no OCR)."""
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError, KeyError, TypeError) as exc:
        raise ExtractionFailure(f"pypdf could not read document: {exc}") from exc
    return "\n".join(pages)


class TesseractOcr:
    """Renders PDF pages with Poppler (pdf2image) and recognizes them with Tesseract."""

    def __init__(self, lang: str = "eng", dpi: int = 200):
        self.lang = lang
        self.dpi = dpi

    def __call__(self, data: bytes) -> str:
        try:
            images = convert_from_bytes(data, dpi=self.dpi, thread_count=1)
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as exc:
            raise ExtractionFailure(f"Could not render PDF pages: {exc}") from exc

        parts: list[str] = []
        for page_num, image in enumerate(images, 1):
            try:
                page_text = pytesseract.image_to_string(image, lang=self.lang)
            except pytesseract.TesseractError as exc:
                logger.warning("OCR failed on page %s: %s", page_num, exc)
                continue
            if page_text and page_text.strip():
                parts.append(page_text)
            logger.info("OCR progress: %s/%s pages", page_num, len(images))
        return "\n".join(parts)


def count_visible_chars(text: str) -> int:
    return len(WHITESPACE.sub("", text))


class DocumentTextResolver:
    """Best-effort PDF text: text layer first, OCR when the layer is missing or nearly empty."""

    def __init__(
        self,
        *,
        min_text_chars: int = 50,
        text_extractor: TextExtractor = extract_text_layer,
        ocr_engine: TextExtractor | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.min_text_chars = min_text_chars
        self.text_extractor = text_extractor
        self.ocr_engine = ocr_engine if ocr_engine is not None else TesseractOcr()
        self.logger = logger or logging.getLogger(__name__)

    def _run_stage(self, stage: str, engine: TextExtractor, data: bytes) -> str:
        try:
            return engine(data) or ""
        except ExtractionFailure as exc:
            self.logger.warning("%s produced no text: %s", stage, exc)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("%s failed: %s: %s", stage, exc.__class__.__name__, exc)
        return ""

    def needs_ocr(self, text: str) -> bool:
        return count_visible_chars(text) < self.min_text_chars

    def resolve(self, data: bytes) -> str:
        text = self._run_stage("Text-layer extraction", self.text_extractor, data)
        self.logger.info("Text layer yielded %s characters", len(text))

        if self.needs_ocr(text):
            self.logger.info("PDF looks scanned (< %s visible chars), running OCR", self.min_text_chars)
            ocr_text = self._run_stage("OCR", self.ocr_engine, data)
            if ocr_text.strip():
                self.logger.info("OCR yielded %s characters", len(ocr_text))
                return ocr_text
            self.logger.warning("OCR produced no text")

        if not text.strip():
            self.logger.warning("No text could be recovered from PDF")
            return ""
        return text
