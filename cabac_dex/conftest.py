import copy

import pytest

import cabac_dex.core.config as cabac_config
from cabac_dex.testing.fake_chain import fake_chain  # noqa: F401


def pytest_configure(config):
    config.addinivalue_line("markers", "chain: test drives the in-memory fake chain")
    config.addinivalue_line("markers", "config: test mutates the global config")


def pytest_collection_modifyitems(config, items):
    for item in items:
        fixtures = getattr(item, "fixturenames", ())
        if "fake_chain" in fixtures:
            item.add_marker(pytest.mark.chain)
        if "restore_global_config" in fixtures:
            item.add_marker(pytest.mark.config)


@pytest.fixture
def restore_global_config():
    original = copy.deepcopy(cabac_config.CONFIG)
    yield
    cabac_config.set_config(original)
