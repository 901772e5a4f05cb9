import pytest

from nestegg.templates import build_sample_snapshot


@pytest.fixture
def sample_snapshot_dict() -> dict:
    return build_sample_snapshot()
