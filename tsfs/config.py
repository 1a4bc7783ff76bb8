"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Optional

from tsfs.constants import DEFAULT_CONNECTION_TIMEOUT_MS
from tsfs.logger import log

BACKENDS = ("sftp", "ssh")


@dataclass
class SshConfig:
    """Configuration variables related to connecting to remote hosts."""

    # Either "sftp" (pooled SFTP sessions) or "ssh" (one ssh process per call)
    backend: str = "sftp"

    default_user: Optional[str] = None
    connection_timeout_ms: int = DEFAULT_CONNECTION_TIMEOUT_MS

    # None disables host key verification
    known_hosts: Optional[str] = os.path.expanduser("~/.ssh/known_hosts")

    ssh_command: str = "ssh"
    log_timing: bool = True

    @staticmethod
    def load(section: SectionProxy) -> SshConfig:
        """Load overridden variables from a section within a config file."""
        config = SshConfig()

        backend = section.get("backend", fallback=config.backend).strip().lower()
        if backend not in BACKENDS:
            raise ValueError(f"unknown backend '{backend}'")
        config.backend = backend

        default_user = section.get("default_user", fallback="").strip()
        config.default_user = default_user or None

        config.connection_timeout_ms = section.getint(
            "connection_timeout_ms", fallback=config.connection_timeout_ms
        )
        if config.connection_timeout_ms <= 0:
            raise ValueError("connection_timeout_ms must be > 0")

        if "known_hosts" in section:
            known_hosts = section["known_hosts"].strip()
            config.known_hosts = os.path.expanduser(known_hosts) if known_hosts else None

        config.ssh_command = section.get("ssh_command", fallback=config.ssh_command)
        config.log_timing = section.getboolean("log_timing", fallback=config.log_timing)

        return config


@dataclass
class HostsConfig:
    """Configuration variables related to the per-host settings file."""

    path: str = os.path.expanduser("~/.tsfs/hosts.json")

    @staticmethod
    def load(section: SectionProxy) -> HostsConfig:
        """Load overridden variables from a section within a config file."""
        config = HostsConfig()

        config.path = os.path.expanduser(section.get("path", fallback=config.path))

        return config


@dataclass
class Config:
    """Configuration variables."""

    ssh: SshConfig = field(default_factory=SshConfig)
    hosts: HostsConfig = field(default_factory=HostsConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "ssh" in parser:
                config.ssh = SshConfig.load(parser["ssh"])

            if "hosts" in parser:
                config.hosts = HostsConfig.load(parser["hosts"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
