from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class TimeseriesReading:
    uuid: str
    time: int  # wall-clock ns since epoch
    value: Any

    def to_wire(self) -> dict:
        return {"UUID": self.uuid, "Time": self.time, "Value": self.value}


@dataclass(frozen=True)
class LightInfo:
    time: int
    state: bool
    brightness: int

    def to_wire(self) -> dict:
        return {"Time": self.time, "State": self.state, "Brightness": self.brightness}


@dataclass(frozen=True)
class Command:
    state: bool
    brightness: int


@dataclass(frozen=True)
class EnergySummary:
    current_power: int
    energy_lifetime: int
    energy_today: int
    system_id: Optional[int] = None
    status: Optional[str] = None
    last_report_at: Optional[int] = None


@dataclass(frozen=True)
class LightStatus:
    state: bool
    brightness: int


@dataclass(frozen=True)
class SignalSpec:
    name: str
    unit: Optional[str]
    extract: Callable[[Any], Any]
