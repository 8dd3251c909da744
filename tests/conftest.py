"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path


def _v8_available() -> bool:
    try:
        from py_mini_racer import MiniRacer

        ctx = MiniRacer()
        ctx.eval("1")
        ctx.close()
    except Exception:
        return False
    return True


V8_AVAILABLE = _v8_available()


def pytest_collection_modifyitems(config, items):
    if V8_AVAILABLE:
        return
    skip_v8 = pytest.mark.skip(reason="py_mini_racer cannot start a V8 isolate")
    for item in items:
        if "v8" in item.keywords:
            item.add_marker(skip_v8)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def obfuscated_sample(fixtures_dir: Path) -> str:
    """Return contents of obfuscated sample file.

    The table holds reversed strings and the decoder reverses them back. The
    shuffle stops after two rotations, when index 0x100 decodes to '42':
    0x100 -> '42', 0x101 -> 'log', 0x102 -> 'greet', 0x103 -> 'Hello',
    0x104 -> 'world'.
    """
    return (fixtures_dir / "obfuscated_sample.js").read_text()


@pytest.fixture
def partial_sample(obfuscated_sample: str) -> str:
    """Sample plus one call through an alias that is reassigned later."""
    return obfuscated_sample + (
        "var _0x77aa = _0x4b2f;\n"
        "_0x77aa = String;\n"
        "var partial = _0x77aa(0x103, 'Zx1q');\n"
    )


@pytest.fixture
def ambiguous_sample(obfuscated_sample: str) -> str:
    """Sample plus a second function shaped like a string table."""
    return obfuscated_sample + (
        "function _0x9f00() {\n"
        "    var _0x1a = ['a', 'b'];\n"
        "    return _0x1a;\n"
        "}\n"
    )


@pytest.fixture
def endless_sample(obfuscated_sample: str) -> str:
    """Sample whose shuffle loop never finds its checksum."""
    return obfuscated_sample.replace("}(_0x3a1c, 0x2a));", "}(_0x3a1c, -0x1));")


@pytest.fixture
def hostile_sample(obfuscated_sample: str) -> str:
    """Sample whose shuffle routine reaches for a host capability."""
    return obfuscated_sample.replace(
        "    while (!![]) {",
        "    require('child_process');\n    while (!![]) {",
    )


@pytest.fixture
def double_shuffle_sample(obfuscated_sample: str) -> str:
    """Sample followed by a second copy of its shuffle IIFE."""
    lines = obfuscated_sample.splitlines(keepends=True)
    return obfuscated_sample + "".join(lines[16:28])


@pytest.fixture
def decoder_host_sample(obfuscated_sample: str) -> str:
    """Sample whose decoder reads a browser global for every index but 0x100.

    The shuffle only decodes 0x100, so the unit evaluates cleanly and the
    failure surfaces at the first rewritten call site.
    """
    return obfuscated_sample.replace(
        "        _0x4e1f = _0x4e1f - 0x100;",
        "        if (_0x4e1f !== 0x100) window.location.href;\n        _0x4e1f = _0x4e1f - 0x100;",
    )


@pytest.fixture
def simple_code() -> str:
    """Return simple JavaScript code for testing."""
    return """
var a = 1;
var b = 2;
function add(x, y) {
    return x + y;
}
var result = add(a, b);
"""
