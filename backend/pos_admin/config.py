from __future__ import annotations

import os


class Config:
    DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
    ALLOCATION_STRATEGY = os.getenv("ALLOCATION_STRATEGY", "ordered").strip() or "ordered"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
