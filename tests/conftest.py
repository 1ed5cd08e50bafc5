"""pytest configuration for devportal tests."""

import json

import pytest


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def manifest():
    return {
        "id": "4a3f0e5c-plugin",
        "name": "Example Source",
        "version": 3,
        "scriptUrl": "./script.js",
    }


@pytest.fixture
def dist_dir(tmp_path, manifest):
    """Build output directory holding config.json and script.js."""
    dist = tmp_path / "dist"
    dist.mkdir()
    (dist / "config.json").write_text(json.dumps(manifest))
    (dist / "script.js").write_text("source.enable = function(conf) { return true; };\n")
    return dist
