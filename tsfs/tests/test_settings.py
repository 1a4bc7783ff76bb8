import json
from unittest import mock

import pytest

from tsfs.config import Config
from tsfs.settings import ConsolePrompt, FileSettings, resolve_username


def test_resolve_username_override(settings):
    settings.overrides["foo"] = "bob"

    assert resolve_username(settings, "foo") == "bob"
    assert resolve_username(settings, "bar") == "alice"


def test_resolve_username_strips(settings):
    settings.overrides["foo"] = "  bob "

    assert resolve_username(settings, "foo") == "bob"


def test_resolve_username_ignores_blank(settings):
    settings.overrides["foo"] = "   "

    assert resolve_username(settings, "foo") == "alice"


def test_resolve_username_local_user(settings):
    settings.default_user = None

    with mock.patch("getpass.getuser", return_value="localuser"):
        assert resolve_username(settings, "foo") == "localuser"


@pytest.fixture
def file_settings(tmp_path):
    config = Config()
    config.hosts.path = str(tmp_path / "tsfs" / "hosts.json")
    config.ssh.default_user = "amalie"
    config.ssh.connection_timeout_ms = 1234

    return FileSettings(config)


def test_file_settings_defaults(file_settings):
    assert file_settings.get_username_override("foo") is None
    assert file_settings.get_default_username() == "amalie"
    assert file_settings.get_connection_timeout_ms() == 1234


def test_file_settings_persist(file_settings, tmp_path):
    file_settings.set_username_override("foo", "bob")
    file_settings.set_username_override("bar", "carol")

    assert file_settings.get_username_override("foo") == "bob"
    assert file_settings.get_username_override("bar") == "carol"

    with open(tmp_path / "tsfs" / "hosts.json") as f:
        data = json.load(f)

    assert data == {"hosts": {"foo": {"user": "bob"}, "bar": {"user": "carol"}}}


def test_file_settings_shared_between_instances(file_settings, tmp_path):
    config = Config()
    config.hosts.path = str(tmp_path / "tsfs" / "hosts.json")
    other = FileSettings(config)

    file_settings.set_username_override("foo", "bob")

    assert other.get_username_override("foo") == "bob"


def test_file_settings_preserves_other_keys(tmp_path):
    path = tmp_path / "hosts.json"
    path.write_text(json.dumps({"hosts": {"foo": {"user": "bob", "color": "red"}}}))

    config = Config()
    config.hosts.path = str(path)
    file_settings = FileSettings(config)

    file_settings.set_username_override("foo", "carol")

    assert json.loads(path.read_text()) == {
        "hosts": {"foo": {"user": "carol", "color": "red"}}
    }


def test_file_settings_corrupt_file(tmp_path, caplog):
    path = tmp_path / "hosts.json"
    path.write_text("{not json")

    config = Config()
    config.hosts.path = str(path)

    assert FileSettings(config).get_username_override("foo") is None
    assert "failed to read hosts file" in caplog.text


@pytest.mark.asyncio
async def test_console_prompt(capsys):
    with mock.patch("builtins.input", return_value=" bob \n"):
        answer = await ConsolePrompt().prompt_for_username("foo", "wrong-user")

    assert answer == "bob"
    assert "not valid on host foo" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_console_prompt_cancelled():
    with mock.patch("builtins.input", side_effect=EOFError):
        answer = await ConsolePrompt().prompt_for_username(
            "foo", "client-authentication"
        )

    assert answer is None
