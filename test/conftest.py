import numpy as np
import pytest

from radixsort import HardwareClass, get_device


def pytest_addoption(parser):
    parser.addoption("--run-gpu", action="store_true", default=False,
                     help="run the slangpy backend tests on a real device")


def pytest_configure(config):
    config.addinivalue_line("markers", "gpu: needs a GPU reachable through slangpy")


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-gpu"):
        return
    skip_gpu = pytest.mark.skip(reason="needs --run-gpu")
    for item in items:
        if "gpu" in item.keywords:
            item.add_marker(skip_gpu)


@pytest.fixture
def rng():
    return np.random.default_rng(20251101)


@pytest.fixture
def device():
    return get_device("emulated", hardware_class=HardwareClass.SM35)
