from __future__ import annotations

import os


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
    BAYAD_KEY_PREFIX = os.getenv("BAYAD_KEY_PREFIX", "bayad").strip() or "bayad"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    OCR_LANGUAGES = tuple(
        lang.strip() for lang in os.getenv("OCR_LANGUAGES", "en").split(",") if lang.strip()
    ) or ("en",)
    CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₱")
