from __future__ import annotations

import pytest

from browser_state.models import SessionConfig

from .fakes import RecordingObserver


@pytest.fixture
def config(tmp_path) -> SessionConfig:  # noqa: ANN001
    return SessionConfig(output_dir=str(tmp_path / "out"), timeout_ms=1000)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
