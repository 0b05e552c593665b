from .message import decode_message
from .pdf_text import DocumentTextResolver, TesseractOcr, extract_text_layer
from .resume_parser import extract_resume_fields

__all__ = [
    "decode_message",
    "DocumentTextResolver",
    "TesseractOcr",
    "extract_text_layer",
    "extract_resume_fields",
]
