from __future__ import annotations

import pytest

import devicebridge.__main__ as entry
from devicebridge.core.errors import AdapterError


@pytest.mark.asyncio
async def test_adapter_init_failure_prints_and_exits_1(monkeypatch, capsys, enphase_settings):
    async def broken(settings):
        raise AdapterError("unexpected systems payload [1, 2]", adapter="enphase", recoverable=False)

    monkeypatch.setattr(entry, "build_runtime", broken)

    assert await entry.serve(enphase_settings) == 1
    out = capsys.readouterr().out
    assert out.startswith("Failed to initialize enphase driver:")
    assert "unexpected systems payload" in out


def test_invalid_configuration_prints_and_exits_1(monkeypatch, capsys, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("DEVICEBRIDGE_DRIVER", "DEVICEBRIDGE_SVC_BASE_URI"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DEVICEBRIDGE_POLL_INTERVAL", "often")

    assert entry.main() == 1
    out = capsys.readouterr().out
    assert out.startswith("Invalid configuration:")
    assert "poll_interval" in out
