"""Listener binding manager: owns the single TCP site serving the endpoint.

Supports hot rebinding to a new port. A rebind closes the old site first,
so there is a short window with nothing listening; if the new port cannot
be bound, the old port is reopened.
"""

from __future__ import annotations

import errno
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from aiohttp import web

logger = logging.getLogger(__name__)


class ListenerState(str, Enum):
    UNBOUND = "unbound"
    BINDING = "binding"
    BOUND = "bound"
    CLOSING = "closing"


@dataclass(frozen=True)
class AddressInUse:
    """The port is already taken by another socket."""

    port: int

    def describe(self) -> str:
        return f"Port {self.port} is already in use."


@dataclass(frozen=True)
class OtherBindFailure:
    """Any other reason the port could not be bound."""

    port: int
    message: str

    def describe(self) -> str:
        return f"Failed to bind port {self.port}: {self.message}"


BindFailure = Union[AddressInUse, OtherBindFailure]


@dataclass(frozen=True)
class RebindResult:
    """Outcome of a rebind attempt.

    On failure, rolled_back tells whether the previous port is listening
    again; rollback_failure explains why it is not.
    """

    port: Optional[int]
    failure: Optional[BindFailure] = None
    rolled_back: bool = False
    rollback_failure: Optional[BindFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def classify_bind_error(port: int, error: OSError) -> BindFailure:
    """Map an OSError raised while binding into a failure variant."""
    if error.errno == errno.EADDRINUSE:
        return AddressInUse(port)
    return OtherBindFailure(port, error.strerror or str(error))


class ListenerManager:
    """Binds an aiohttp application to one port at a time.

    start/rebind/stop must not be called concurrently with each other;
    callers serialize configuration changes.
    """

    def __init__(self, app: web.Application, host: str = "127.0.0.1"):
        """Initialize manager.

        Args:
            app: Application whose handlers serve every binding
            host: Interface to bind (loopback by default)
        """
        self.app = app
        self.host = host
        self.state = ListenerState.UNBOUND
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: Optional[int] = None

    @property
    def port(self) -> Optional[int]:
        """Port currently bound, or None when unbound."""
        return self._port if self.state is ListenerState.BOUND else None

    async def start(self, port: int) -> Optional[BindFailure]:
        """Bind the application to a port.

        Returns:
            None on success, otherwise the classified failure
        """
        if self.state is ListenerState.BOUND:
            return OtherBindFailure(port, f"already listening on port {self._port}")

        failure = await self._open(port)
        if failure is None:
            logger.info(f"SearchLogger listening on http://{self.host}:{port}")
        else:
            logger.error(f"SearchLogger could not listen on port {port}: {failure.describe()}")
        return failure

    async def rebind(self, new_port: int) -> RebindResult:
        """Move the listener to a new port, rolling back on failure."""
        old_port = self._port if self.state is ListenerState.BOUND else None
        if old_port == new_port:
            return RebindResult(port=old_port)

        if old_port is not None:
            await self._close()

        failure = await self._open(new_port)
        if failure is None:
            logger.info(f"SearchLogger now listening on http://{self.host}:{new_port}")
            return RebindResult(port=new_port)

        logger.error(f"Rebind to port {new_port} failed: {failure.describe()}")
        if old_port is None:
            return RebindResult(port=None, failure=failure)

        rollback_failure = await self._open(old_port)
        if rollback_failure is None:
            logger.info(f"SearchLogger reverted to http://{self.host}:{old_port}")
            return RebindResult(port=old_port, failure=failure, rolled_back=True)

        logger.error(f"Could not reopen previous port {old_port}: {rollback_failure.describe()}")
        return RebindResult(port=None, failure=failure, rollback_failure=rollback_failure)

    async def stop(self) -> None:
        """Release the listener and the runner. No-op when already unbound."""
        if self.state is ListenerState.BOUND:
            await self._close()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        self.state = ListenerState.UNBOUND

    async def _open(self, port: int) -> Optional[BindFailure]:
        if self._runner is None:
            self._runner = web.AppRunner(self.app, access_log=None)
            await self._runner.setup()

        self.state = ListenerState.BINDING
        site = web.TCPSite(self._runner, self.host, port)
        try:
            await site.start()
        except OSError as e:
            # The site registers with the runner before binding; unregister it
            await site.stop()
            self.state = ListenerState.UNBOUND
            return classify_bind_error(port, e)

        self._site = site
        self._port = port
        self.state = ListenerState.BOUND
        return None

    async def _close(self) -> None:
        self.state = ListenerState.CLOSING
        if self._site is not None:
            await self._site.stop()
        self._site = None
        self._port = None
        self.state = ListenerState.UNBOUND
