from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from ..core.timeutil import now_ns
from .models import SignalSpec, TimeseriesReading

logger = logging.getLogger(__name__)


def normalize(
    identifier: str,
    raw_value: Any,
    clock: Callable[[], int] = now_ns,
) -> TimeseriesReading:
    """Stamp a raw value with the current wall-clock time."""
    return TimeseriesReading(uuid=identifier, time=clock(), value=raw_value)


def expand(
    result: Any,
    signals: Sequence[SignalSpec],
    identifiers: dict[str, str],
    clock: Callable[[], int] = now_ns,
) -> list[tuple[str, TimeseriesReading]]:
    """Map one poll result to one reading per tracked signal, in signal order."""
    out: list[tuple[str, TimeseriesReading]] = []
    for spec in signals:
        try:
            raw = spec.extract(result)
        except Exception as e:
            logger.warning("Signal %s: cannot extract value from %r: %s", spec.name, result, e)
            continue
        out.append((spec.name, normalize(identifiers[spec.name], raw, clock)))
    return out
