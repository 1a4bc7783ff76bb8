from unittest import mock

import asyncssh
import pytest

from tsfs.config import Config
from tsfs.connections import ConnectionManager
from tsfs.errors import (
    CrossHostError,
    FileNotFound,
    NoPermissions,
    UnsupportedSchemeError,
)
from tsfs.filesystem.common import Backend, FileOperations, FileStat, FileType
from tsfs.filesystem.ssh import SshCommandBackend
from tsfs.filesystem.timing import TimedFileOperations
from tsfs.remote import RemoteFileSystem


@pytest.fixture
def ops():
    return mock.AsyncMock(spec=FileOperations)


@pytest.fixture
def backend(ops):
    backend = mock.AsyncMock(spec=Backend)
    backend.get_file_operations.return_value = ops

    return backend


@pytest.fixture
def fs(backend):
    return RemoteFileSystem(backend)


@pytest.mark.asyncio
async def test_stat(fs, backend, ops):
    ops.stat.return_value = FileStat(FileType.FILE, 1, 2, 3)

    assert await fs.stat("ts://tails-scales/foo/tmp/a") == FileStat(
        FileType.FILE, 1, 2, 3
    )

    backend.get_file_operations.assert_awaited_once_with("foo")
    ops.stat.assert_awaited_once_with("/tmp/a")


@pytest.mark.asyncio
async def test_unescaped_paths(fs, ops):
    await fs.read_file("ts://tails-scales/foo/tmp/my%20file")

    ops.read_file.assert_awaited_once_with("/tmp/my file")


@pytest.mark.asyncio
async def test_home_relative_paths(fs, ops):
    await fs.read_directory("ts://tails-scales/foo/~")
    await fs.write_file("ts://tails-scales/foo/~/notes.txt", b"abc")

    ops.read_directory.assert_awaited_once_with(".")
    ops.write_file.assert_awaited_once_with("./notes.txt", b"abc")


@pytest.mark.asyncio
async def test_real_path(fs, ops):
    ops.get_home_directory.return_value = "/home/amalie"

    assert await fs.real_path("ts://tails-scales/foo/~") == "/home/amalie"
    assert await fs.real_path("ts://tails-scales/foo/~/a b") == "/home/amalie/a b"


@pytest.mark.asyncio
async def test_real_path_absolute(fs, ops):
    assert await fs.real_path("ts://tails-scales/foo/etc") == "/etc"

    ops.get_home_directory.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_home_directory(fs, backend, ops):
    ops.get_home_directory.return_value = "/home/amalie"

    assert await fs.get_home_directory("foo") == "/home/amalie"
    backend.get_file_operations.assert_awaited_once_with("foo")


@pytest.mark.asyncio
async def test_operations(fs, ops, tmp_path):
    await fs.create_directory("ts://tails-scales/foo/tmp/d")
    await fs.delete("ts://tails-scales/foo/tmp/d", recursive=True)
    await fs.upload(str(tmp_path / "x"), "ts://tails-scales/foo/tmp/x")
    await fs.read_symbolic_link("ts://tails-scales/foo/tmp/link")

    ops.create_directory.assert_awaited_once_with("/tmp/d")
    ops.delete.assert_awaited_once_with("/tmp/d", True)
    ops.upload.assert_awaited_once_with(str(tmp_path / "x"), "/tmp/x")
    ops.read_symbolic_link.assert_awaited_once_with("/tmp/link")


@pytest.mark.asyncio
async def test_rename(fs, ops):
    await fs.rename("ts://tails-scales/foo/tmp/a", "ts://tails-scales/foo/tmp/b c")

    ops.rename.assert_awaited_once_with("/tmp/a", "/tmp/b c", False)


@pytest.mark.asyncio
async def test_rename_cross_host(fs, backend, ops):
    with pytest.raises(CrossHostError):
        await fs.rename("ts://tails-scales/foo/tmp/a", "ts://tails-scales/bar/tmp/a")

    with pytest.raises(CrossHostError):
        await fs.rename("ts://tails-scales/foo/tmp/a", "ts://other/foo/tmp/a")

    backend.get_file_operations.assert_not_awaited()
    ops.rename.assert_not_awaited()


@pytest.mark.asyncio
async def test_translates_errors(fs, ops):
    ops.stat.side_effect = asyncssh.SFTPNoSuchFile("No such file")

    with pytest.raises(FileNotFound) as e:
        await fs.stat("ts://tails-scales/foo/missing")

    assert isinstance(e.value.__cause__, asyncssh.SFTPNoSuchFile)


@pytest.mark.asyncio
async def test_translates_message(fs, ops):
    ops.read_file.side_effect = OSError("PERMISSION DENIED")

    with pytest.raises(NoPermissions):
        await fs.read_file("ts://tails-scales/foo/root/secret")


@pytest.mark.asyncio
async def test_unknown_errors_pass_through(fs, ops, caplog):
    ops.stat.side_effect = RuntimeError("something odd")

    with pytest.raises(RuntimeError):
        await fs.stat("ts://tails-scales/foo/x")

    assert "unrecognized error" in caplog.text


@pytest.mark.asyncio
async def test_unsupported_scheme(fs, backend):
    with pytest.raises(UnsupportedSchemeError):
        await fs.stat("sftp://foo/etc")

    backend.get_file_operations.assert_not_awaited()


@pytest.mark.asyncio
async def test_close(fs, backend):
    await fs.close_connection("foo")
    await fs.close()

    backend.close_connection.assert_awaited_once_with("foo")
    backend.close_all.assert_awaited_once_with()


def test_from_config_sftp(settings, prompt):
    config = Config()
    config.ssh.known_hosts = None

    fs = RemoteFileSystem.from_config(config, prompt, settings)

    assert isinstance(fs.backend, ConnectionManager)


@pytest.mark.asyncio
async def test_from_config_ssh(settings, prompt):
    config = Config()
    config.ssh.backend = "ssh"
    config.ssh.log_timing = True

    fs = RemoteFileSystem.from_config(config, prompt, settings)

    assert isinstance(fs.backend, SshCommandBackend)
    assert isinstance(await fs.backend.get_file_operations("foo"), TimedFileOperations)


@pytest.mark.asyncio
async def test_from_config_without_timing(settings, prompt):
    config = Config()
    config.ssh.backend = "ssh"
    config.ssh.log_timing = False

    fs = RemoteFileSystem.from_config(config, prompt, settings)

    assert not isinstance(
        await fs.backend.get_file_operations("foo"), TimedFileOperations
    )
