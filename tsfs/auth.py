"""Module with the bounded retry flow for hosts that reject a username."""

from typing import Awaitable, Callable, List, TypeVar

from tsfs.errors import AuthenticationError, UsernameRequiredError
from tsfs.logger import component_log
from tsfs.settings import Settings, UsernamePrompt

T = TypeVar("T")

log = component_log("auth")

# Number of times an attempt is retried with a new username after the remote rejected
# the previous one.
MAX_USERNAME_RETRIES = 1


async def with_username_retry(
    host: str,
    settings: Settings,
    prompt: UsernamePrompt,
    attempt: Callable[[], Awaitable[T]],
) -> T:
    """
    Run an attempt that may fail authentication, asking for a new username if it does.

    The attempt is retried at most MAX_USERNAME_RETRIES times. The username entered by
    the user is stored as the override for the host before retrying, so the attempt
    should resolve the username itself. If the user declines to enter a username then
    UsernameRequiredError is raised without making any further attempts.
    """
    attempted: List[str] = []

    while True:
        try:
            return await attempt()
        except AuthenticationError as e:
            attempted.append(e.username)

            if len(attempted) > MAX_USERNAME_RETRIES:
                log.error(f"authentication failed for {', '.join(attempted)} on {host}")
                raise

            log.warning(f"authentication failed ({e.level}): {e}")

            username = await prompt.prompt_for_username(host, e.level)

            if not username or not username.strip():
                raise UsernameRequiredError(
                    f"username is required to connect to {host}"
                ) from e

            settings.set_username_override(host, username.strip())
