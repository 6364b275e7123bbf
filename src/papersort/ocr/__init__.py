"""OCR collaborators: image sources and text recognizers."""

from papersort.ocr.tesseract import (
    ImageSource,
    Recognizer,
    StaticRecognizer,
    TesseractRecognizer,
    images_from_paths,
)

__all__ = [
    "ImageSource",
    "Recognizer",
    "StaticRecognizer",
    "TesseractRecognizer",
    "images_from_paths",
]
