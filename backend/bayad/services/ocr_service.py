from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)


class OcrError(RuntimeError):
    pass


_READERS: Dict[Tuple[str, ...], "easyocr.Reader"] = {}


def _get_reader(languages: Sequence[str]) -> "easyocr.Reader":
    key = tuple(languages)
    if key not in _READERS:
        # pulls in torch
        import easyocr

        logger.info("Loading easyocr reader for %s", ", ".join(key))
        _READERS[key] = easyocr.Reader(list(key), gpu=False)
    return _READERS[key]


@dataclass(frozen=True)
class _Box:
    x1: float
    y1: float
    x2: float
    y2: float
    text: str
    conf: float

    @property
    def cy(self) -> float:
        return (self.y1 + self.y2) / 2.0

    @property
    def h(self) -> float:
        return max(1.0, self.y2 - self.y1)


def _to_boxes(results) -> List[_Box]:
    boxes: List[_Box] = []
    for (bbox, text, conf) in results:
        # bbox = [[x,y],[x,y],[x,y],[x,y]]
        xs = [p[0] for p in bbox]
        ys = [p[1] for p in bbox]
        t = str(text).strip()
        if not t:
            continue
        boxes.append(_Box(min(xs), min(ys), max(xs), max(ys), t, float(conf)))
    return boxes


def group_into_lines(boxes: List[_Box], *, min_conf: float = 0.2) -> List[str]:
    """
    Join OCR boxes that share a baseline into receipt lines, top to bottom.
    """
    boxes = [b for b in boxes if b.conf >= min_conf]
    if not boxes:
        return []

    boxes.sort(key=lambda b: (b.cy, b.x1))

    lines: List[List[_Box]] = []
    current: List[_Box] = [boxes[0]]
    current_y = boxes[0].cy
    current_h = boxes[0].h

    for b in boxes[1:]:
        thresh = max(10.0, 0.6 * max(current_h, b.h))
        if abs(b.cy - current_y) <= thresh:
            current.append(b)
            current_y = sum(x.cy for x in current) / len(current)
            current_h = max(current_h, b.h)
        else:
            lines.append(current)
            current = [b]
            current_y = b.cy
            current_h = b.h

    lines.append(current)

    out: List[str] = []
    for line_boxes in lines:
        line_boxes.sort(key=lambda b: b.x1)
        text = " ".join(" ".join(b.text for b in line_boxes).split())
        if text:
            out.append(text)

    return out


def run_ocr(image_bytes: bytes, *, languages: Sequence[str] = ("en",)) -> str:
    """
    Read a receipt photo and return its text, one receipt line per row.
    """
    if not isinstance(image_bytes, (bytes, bytearray)) or len(image_bytes) == 0:
        raise OcrError("image_bytes must be non-empty bytes")

    try:
        img = Image.open(io.BytesIO(image_bytes))
        img = ImageOps.exif_transpose(img)
        img = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise OcrError("Could not decode image bytes") from e

    gray = ImageOps.grayscale(img)
    np_img = np.array(gray)

    try:
        results = _get_reader(languages).readtext(np_img, detail=1, paragraph=False)
    except Exception as e:  # easyocr surfaces torch/cv2 errors untyped
        logger.exception("easyocr failed")
        raise OcrError("OCR engine failed") from e

    return "\n".join(group_into_lines(_to_boxes(results)))
