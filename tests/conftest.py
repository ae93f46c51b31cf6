from pathlib import Path

import pytest

from store import Store


@pytest.fixture
def store(tmp_path: Path):
    s = Store(f"sqlite:///{tmp_path / 'ingest.db'}")
    s.create_schema()
    yield s
    s.dispose()
