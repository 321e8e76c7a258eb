from __future__ import annotations

import time


def monotonic_s() -> float:
    return time.monotonic()


def elapsed_ms(started_at: float) -> float:
    return max(0.0, (time.monotonic() - started_at) * 1000.0)
