from __future__ import annotations

import os


class Config:
    DEFAULT_DURATION_SECONDS = int(os.getenv("LOADSKETCH_DEFAULT_DURATION", "10"))
    DEFAULT_REQUESTS_PER_SECOND = float(os.getenv("LOADSKETCH_DEFAULT_RPS", "100"))
    MAX_DURATION_SECONDS = int(os.getenv("LOADSKETCH_MAX_DURATION", "3600"))
    MAX_REQUESTS_PER_SECOND = float(os.getenv("LOADSKETCH_MAX_RPS", "100000"))
    INCLUDE_TIMELINE = os.getenv("LOADSKETCH_INCLUDE_TIMELINE", "0") == "1"
