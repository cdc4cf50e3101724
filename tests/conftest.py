import numpy as np
import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow",
        action="store_true",
        help="Run full-resolution simulation tests",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "slow: full-resolution simulation tests",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip)


# ---------------------------------------------------------------------------
# Helpers for smoke tests
# ---------------------------------------------------------------------------


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture(params=[1, 3])
def workers(request):
    """Run a test inline and with a threaded sweep pool."""
    return request.param
