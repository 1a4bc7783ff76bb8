"""
Module with the collaborators that supply usernames and connection settings.

The connection logic never reads configuration directly. Instead it talks to a Settings
object that answers four questions: is there a username override for this host, what
is the default username, how long may a connection attempt take, and where should a
corrected username be stored. This keeps the core testable and lets the surrounding
application decide where preferences live.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import getpass
import json
import os
import sys
from typing import Dict, Optional

import fasteners

from tsfs.config import Config
from tsfs.logger import log


class Settings(ABC):
    """Source of usernames and connection settings for remote hosts."""

    @abstractmethod
    def get_username_override(self, host: str) -> Optional[str]:
        """Return the username explicitly configured for a host, if any."""

    @abstractmethod
    def set_username_override(self, host: str, username: str) -> None:
        """Persist the username to use for a host from now on."""

    @abstractmethod
    def get_default_username(self) -> Optional[str]:
        """Return the username to use for hosts without an override, if any."""

    @abstractmethod
    def get_connection_timeout_ms(self) -> int:
        """Return the time allowed to connect and authenticate to a host."""


def resolve_username(settings: Settings, host: str) -> str:
    """
    Determine the username to connect to a host with.

    In order of priority: the per-host override, the configured default and finally
    the name of the local user.
    """
    for candidate in (
        settings.get_username_override(host),
        settings.get_default_username(),
    ):
        if candidate and candidate.strip():
            return candidate.strip()

    return getpass.getuser()


class FileSettings(Settings):
    """
    Settings backed by the loaded configuration and a JSON file of host overrides.

    The hosts file has the layout {"hosts": {"hostname": {"user": "name"}}}. It is
    reread on every lookup so that changes made by other processes are picked up, and
    writes happen under an inter-process lock followed by an atomic replace.
    """

    def __init__(self, config: Config):
        """Instantiate settings from the loaded configuration."""
        self._ssh = config.ssh
        self._path = config.hosts.path

    @property
    def _lock_path(self) -> str:
        return self._path + ".lock"

    def get_username_override(self, host: str) -> Optional[str]:
        user = self._read_hosts().get(host, {}).get("user")

        if isinstance(user, str) and user.strip():
            return user.strip()
        else:
            return None

    def set_username_override(self, host: str, username: str) -> None:
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)

        with fasteners.InterProcessLock(self._lock_path):
            hosts = self._read_hosts()
            hosts.setdefault(host, {})["user"] = username

            tmp_path = f"{self._path}.{os.getpid()}.tmp"

            with open(tmp_path, "w") as f:
                json.dump({"hosts": hosts}, f, indent=2)

            os.replace(tmp_path, self._path)

        log.info(f"stored username {username} for host {host}")

    def get_default_username(self) -> Optional[str]:
        return self._ssh.default_user

    def get_connection_timeout_ms(self) -> int:
        return self._ssh.connection_timeout_ms

    def _read_hosts(self) -> Dict[str, Dict[str, str]]:
        """Read the host overrides, treating a missing or corrupt file as empty."""
        try:
            with open(self._path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            log.error(f"failed to read hosts file {self._path}: {e}")
            return {}

        hosts = data.get("hosts") if isinstance(data, dict) else None

        if not isinstance(hosts, dict):
            return {}

        return {k: v for k, v in hosts.items() if isinstance(v, dict)}


class UsernamePrompt(ABC):
    """Asks the user for a replacement username when authentication fails."""

    @abstractmethod
    async def prompt_for_username(self, host: str, level: str) -> Optional[str]:
        """
        Ask for the username to use for a host.

        The level is the authentication failure that triggered the prompt, either
        "wrong-user" or "client-authentication". Returning None or an empty string
        means that the user declined.
        """


class ConsolePrompt(UsernamePrompt):
    """Prompt that reads the username from the terminal."""

    async def prompt_for_username(self, host: str, level: str) -> Optional[str]:
        if level == "wrong-user":
            sys.stderr.write(f"The username is not valid on host {host}.\n")
        else:
            sys.stderr.write(
                f"Could not authenticate to {host}. Ensure Tailscale SSH is permitted"
                " in ACLs and the username is correct.\n"
            )

        loop = asyncio.get_running_loop()

        try:
            answer = await loop.run_in_executor(
                None, input, f"Please enter a valid username for host {host}: "
            )
        except EOFError:
            return None

        return answer.strip() or None
