"""
Ingest Script Tests

The operator script must release the engine pool however it exits.
"""

import argparse
import importlib.util
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "ingest_site.py"


@pytest.fixture
def script(monkeypatch):
    spec = importlib.util.spec_from_file_location("ingest_site_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    engine = AsyncMock()
    monkeypatch.setattr(module, "async_engine", engine)
    return module


def make_args(**overrides):
    values = {"url": None, "max_pages": 5, "regenerate": False, "init_db": False}
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.mark.asyncio
async def test_missing_url_exits_with_usage_code_and_disposes(script):
    assert await script.main(make_args()) == 2
    script.async_engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_failure_still_disposes(script, monkeypatch):
    monkeypatch.setattr(script, "run", AsyncMock(side_effect=RuntimeError("db down")))

    with pytest.raises(RuntimeError):
        await script.main(make_args(url="https://example.com/"))

    script.async_engine.dispose.assert_awaited_once()
