import asyncio
import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` / `state.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def store(tmp_path):
    from state.store import BoardStore

    s = BoardStore(tmp_path / "board.db")
    yield s
    asyncio.run(s.close())
