"""
Exception hierarchy for devicebridge drivers.

Fatal errors (configuration, adapter construction, bus connect) stop the
process at startup. Everything raised in steady state is caught and logged
by the loop that triggered it.
"""

from __future__ import annotations

from typing import Optional


class DeviceBridgeError(Exception):
    """Base exception for all driver errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(DeviceBridgeError):
    """Missing or malformed startup configuration"""

    def __init__(self, message: str):
        super().__init__(f"Config Error: {message}", recoverable=False)


class AdapterError(DeviceBridgeError):
    """Device or vendor API call failed"""

    def __init__(self, message: str, adapter: Optional[str] = None, recoverable: bool = True):
        self.adapter = adapter
        prefix = f"Adapter Error [{adapter}]" if adapter else "Adapter Error"
        super().__init__(f"{prefix}: {message}", recoverable)


class PartialApplyError(AdapterError):
    """Only part of an actuation command reached the device"""

    def __init__(self, applied: list[str], failed: str, cause: Exception, adapter: Optional[str] = None):
        self.applied = applied
        self.failed = failed
        self.cause = cause
        super().__init__(
            f"applied {', '.join(applied) or 'nothing'} but {failed} failed: {cause}",
            adapter=adapter,
        )


class PayloadError(DeviceBridgeError):
    """Payload object could not be encoded or decoded"""

    def __init__(self, message: str, ponum: Optional[str] = None):
        self.ponum = ponum
        prefix = f"Payload Error [{ponum}]" if ponum else "Payload Error"
        super().__init__(f"{prefix}: {message}")


class BusError(DeviceBridgeError):
    """Bus transport errors"""

    def __init__(self, message: str, uri: Optional[str] = None, recoverable: bool = True):
        self.uri = uri
        super().__init__(f"Bus Error: {message}", recoverable)
