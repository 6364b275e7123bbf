"""Text recognizers that turn document images into raw text.

The classification engine only needs `await recognizer.recognize(image_ref)`.
TesseractRecognizer wraps pytesseract + Pillow and runs the blocking OCR
call in a worker thread, one image at a time. StaticRecognizer serves
canned text for demos and tests.

Usage:
    from papersort.ocr.tesseract import TesseractRecognizer, images_from_paths

    recognizer = TesseractRecognizer(lang="eng")
    images = images_from_paths([Path("scans")])
    text = await recognizer.recognize(images[0].image_ref)
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import pytesseract
from PIL import Image, UnidentifiedImageError

from papersort.core.errors import OcrFailure, RecognizerError
from papersort.core.logging import get_logger

if TYPE_CHECKING:
    from papersort.config_schema import OcrConfig

logger = get_logger(__name__)

IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".gif", ".webp"})

# Resize very large scans before OCR to bound memory use
MAX_DIMENSION = 10000


@dataclass(frozen=True, slots=True)
class ImageSource:
    """One input image: an opaque reference plus a label for display."""

    image_ref: str
    display_name: str


class Recognizer(Protocol):
    """Anything that can turn an image reference into recognized text."""

    async def recognize(self, image_ref: str) -> str: ...


def images_from_paths(paths: Iterable[Path]) -> list[ImageSource]:
    """Expand files and directories into ImageSources, in a stable order.

    Directories contribute their image files sorted by name; non-image
    files are skipped.
    """
    sources: list[ImageSource] = []
    for path in paths:
        if path.is_dir():
            candidates = sorted(p for p in path.iterdir() if p.is_file())
        else:
            candidates = [path]
        for candidate in candidates:
            if candidate.suffix.lower() not in IMAGE_SUFFIXES:
                logger.debug("skipping_non_image", path=str(candidate))
                continue
            sources.append(ImageSource(image_ref=str(candidate), display_name=candidate.name))
    return sources


class TesseractRecognizer:
    """OCR via the tesseract binary.

    Attributes:
        _lang: Tesseract language code(s)
        _extra_args: Extra tesseract configuration string
        _lock: Keeps a single OCR call in flight
    """

    def __init__(
        self,
        lang: str = "eng",
        extra_args: str = "--oem 1 --psm 3",
        tesseract_cmd: str | None = None,
        max_image_pixels: int | None = None,
    ):
        self._lang = lang
        self._extra_args = extra_args
        self._lock = asyncio.Lock()
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        if max_image_pixels:
            Image.MAX_IMAGE_PIXELS = max_image_pixels

    @classmethod
    def from_config(cls, config: OcrConfig) -> TesseractRecognizer:
        return cls(
            lang=config.lang,
            extra_args=config.extra_args,
            tesseract_cmd=config.tesseract_cmd,
            max_image_pixels=config.max_image_pixels,
        )

    def check_available(self) -> str:
        """Return the tesseract version string.

        Raises:
            RecognizerError: If the tesseract binary cannot be run
        """
        try:
            return str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise RecognizerError(
                f"Tesseract is not available: {e}\n"
                "Install tesseract-ocr or set ocr.tesseract_cmd in config.yaml."
            ) from e

    async def recognize(self, image_ref: str) -> str:
        async with self._lock:
            return await asyncio.to_thread(self._recognize_sync, image_ref)

    def _recognize_sync(self, image_ref: str) -> str:
        try:
            with Image.open(image_ref) as img:
                if max(img.size) > MAX_DIMENSION:
                    ratio = MAX_DIMENSION / max(img.size)
                    new_size = (int(img.size[0] * ratio), int(img.size[1] * ratio))
                    resized = img.resize(new_size, Image.Resampling.LANCZOS)
                    try:
                        text = self._image_to_string(resized)
                    finally:
                        resized.close()
                else:
                    text = self._image_to_string(img)
        except (
            OSError,
            UnidentifiedImageError,
            Image.DecompressionBombError,
            pytesseract.TesseractError,
            ValueError,
        ) as e:
            raise OcrFailure(
                f"OCR failed for {image_ref}: {e}",
                image_ref=image_ref,
            ) from e

        logger.debug("ocr_complete", image_ref=image_ref, text_length=len(text))
        return text

    def _image_to_string(self, img: Image.Image) -> str:
        return pytesseract.image_to_string(img, lang=self._lang, config=self._extra_args)


class StaticRecognizer:
    """Recognizer backed by a mapping of image reference to text.

    Unknown references raise OcrFailure, like an unreadable image would.
    """

    def __init__(self, texts: Mapping[str, str]):
        self._texts = dict(texts)

    async def recognize(self, image_ref: str) -> str:
        try:
            return self._texts[image_ref]
        except KeyError:
            raise OcrFailure(f"No text available for {image_ref}", image_ref=image_ref) from None
