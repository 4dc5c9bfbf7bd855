from __future__ import annotations

import logging
from typing import List, Sequence

# Looked up through the module so tests can monkeypatch run_ocr.
from bayad.services import ocr_service
from bayad.services.receipt_parser import (
    ParsedItem,
    ReceiptParseError,
    extract_items_from_ocr_text,
)

logger = logging.getLogger(__name__)


class ScanFailure(RuntimeError):
    """The receipt could not be turned into items. Nothing was added."""


def scan_receipt(image_bytes: bytes, *, languages: Sequence[str] = ("en",)) -> List[ParsedItem]:
    """
    Image in, ordered [ParsedItem(name, price)] out.

    Raises ScanFailure when OCR fails, its output can't be parsed, or no
    items were found; callers never get a partial list.
    """
    try:
        ocr_text = ocr_service.run_ocr(image_bytes, languages=languages)
    except ocr_service.OcrError as e:
        logger.warning("Receipt OCR failed: %s", e)
        raise ScanFailure("Scanning failed. Please try again or enter items manually.") from e

    try:
        items = extract_items_from_ocr_text(ocr_text)
    except ReceiptParseError as e:
        logger.warning("Receipt text could not be parsed: %s", e)
        raise ScanFailure("Failed to parse receipt text.") from e

    if not items:
        logger.info("Receipt scan found no items")
        raise ScanFailure("No items found on the receipt.")

    return items
