from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    max_workers: int = 4
    cut_step_budget: int = 200_000
    advance_chunk_steps: int = 500
    log_level: str = "INFO"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def load_settings() -> Settings:
    return Settings(
        max_workers=_env_int("TM_MAX_WORKERS", 4),
        cut_step_budget=_env_int("TM_CUT_STEP_BUDGET", 200_000),
        advance_chunk_steps=_env_int("TM_ADVANCE_CHUNK_STEPS", 500),
        log_level=os.environ.get("TM_LOG_LEVEL", "INFO").upper(),
    )
