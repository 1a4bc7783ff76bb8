"""Module with shared test fakes and a flag to enable tests against a real host."""

from typing import Dict, List, Optional, Tuple

import pytest

from tsfs.settings import Settings, UsernamePrompt


def pytest_addoption(parser):
    parser.addoption(
        "--tailnet-uri",
        action="store",
        default=None,
        help="Run integration tests in a scratch directory at this ts:// URI",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "tailnet: mark test as requiring a reachable host to run"
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--tailnet-uri"):
        skip_tailnet = pytest.mark.skip(reason="only runs with --tailnet-uri option")

        for item in items:
            if "tailnet" in item.keywords:
                item.add_marker(skip_tailnet)


class FakeSettings(Settings):
    def __init__(self):
        self.overrides: Dict[str, str] = {}
        self.default_user: Optional[str] = "alice"
        self.timeout_ms = 1000

    def get_username_override(self, host: str) -> Optional[str]:
        return self.overrides.get(host)

    def set_username_override(self, host: str, username: str) -> None:
        self.overrides[host] = username

    def get_default_username(self) -> Optional[str]:
        return self.default_user

    def get_connection_timeout_ms(self) -> int:
        return self.timeout_ms


class FakePrompt(UsernamePrompt):
    def __init__(self):
        self.answers: List[Optional[str]] = []
        self.calls: List[Tuple[str, str]] = []

    async def prompt_for_username(self, host: str, level: str) -> Optional[str]:
        self.calls.append((host, level))

        if self.answers:
            return self.answers.pop(0)
        else:
            return None


@pytest.fixture
def settings():
    return FakeSettings()


@pytest.fixture
def prompt():
    return FakePrompt()
