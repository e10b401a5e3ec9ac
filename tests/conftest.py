from __future__ import annotations

import sys
from pathlib import Path

import pytest

_POSIX_ONLY_FILES = {
    "test_pty_roundtrip.py",
    "test_pty_session.py",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _POSIX_ONLY_FILES and sys.platform == "win32":
            item.add_marker(pytest.mark.skip(reason="pseudo-terminals require a POSIX platform"))
