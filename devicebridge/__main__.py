"""
Run one driver process.

Usage:
    DEVICEBRIDGE_DRIVER=vlight DEVICEBRIDGE_SVC_BASE_URI=lab/lights \
    DEVICEBRIDGE_POLL_INTERVAL=5s python -m devicebridge

All settings come from DEVICEBRIDGE_* environment variables or a .env
file. Configuration and startup errors exit with status 1, and so does a
poll loop that dies; a push stream that simply ends exits with status 0.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import uvicorn

from .core.config import Settings, load_settings
from .core.errors import ConfigError, DeviceBridgeError
from .core.log import configure_logging
from .main import create_app
from .services.runtime import build_runtime


async def serve(settings: Settings) -> int:
    try:
        runtime = await build_runtime(settings)
    except DeviceBridgeError as e:
        print(f"Failed to initialize {settings.driver} driver: {e.message}")
        return 1

    server = uvicorn.Server(
        uvicorn.Config(
            create_app(runtime),
            host=settings.status_host,
            port=settings.status_port,
            log_config=None,
        )
    )

    exit_code = 0

    def _finished(error: Optional[BaseException]) -> None:
        nonlocal exit_code
        if error is not None:
            exit_code = 1
        server.should_exit = True

    runtime.on_finished(_finished)
    await server.serve()
    return exit_code


def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Invalid configuration: {e.message}")
        return 1

    configure_logging(settings.log_level, settings.log_file)
    return asyncio.run(serve(settings))


if __name__ == "__main__":
    sys.exit(main())
