"""
Per-worker session lifecycle.

One remote Appium session per worker key. The table mapping worker keys
to sessions is the only state shared between workers; it is guarded by a
lock, while the blocking remote handshake and teardown run outside it.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Hashable, Optional

from .appium_http_client import AppiumHTTPClient
from .capabilities import CapabilitySet, ExecutionEnvironment, Platform, resolve_server_url
from .config import ConfigurationResolver
from .errors import AlreadyOpen, ConnectionFailed, NotInitialized

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., AppiumHTTPClient]


def default_worker_key() -> str:
    """xdist worker id (or `main`) plus the current thread id."""
    worker = os.environ.get("PYTEST_XDIST_WORKER", "main")
    return f"{worker}:{threading.get_ident()}"


@dataclass
class Session:
    worker_key: Hashable
    platform: Platform
    environment: ExecutionEnvironment
    capabilities: CapabilitySet
    client: AppiumHTTPClient
    session_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closed: bool = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    def _app_identifier(self) -> str:
        app_id = self.capabilities.app_identifier
        if not app_id:
            raise NotInitialized(f"Session {self.session_id} has no app identifier configured")
        return app_id

    def launch_app(self) -> None:
        logger.info("Launching application")
        self.client.activate_app(self._app_identifier())

    def close_app(self) -> None:
        logger.info("Closing application")
        self.client.terminate_app(self._app_identifier())

    def restart_app(self) -> None:
        logger.info("Restarting application")
        app_id = self._app_identifier()
        self.client.terminate_app(app_id)
        self.client.activate_app(app_id)


# Placeholder for a key whose handshake is in flight.
_OPENING = object()


class SessionRegistry:
    """
    Owns at most one open Session per worker key.

    State per key: Absent -> Open -> Absent. There is no implicit
    replacement; a key must be closed before it can be opened again.
    """

    def __init__(
        self,
        resolver: ConfigurationResolver,
        *,
        client_factory: ClientFactory = AppiumHTTPClient,
    ) -> None:
        self.resolver = resolver
        self._client_factory = client_factory
        self._sessions: dict[Hashable, object] = {}
        self._lock = threading.Lock()

    def open(
        self,
        worker_key: Hashable,
        capabilities: CapabilitySet,
        *,
        server_url: Optional[str] = None,
    ) -> Session:
        with self._lock:
            if worker_key in self._sessions:
                raise AlreadyOpen(f"A session is already open for worker {worker_key!r}; close it first")
            self._sessions[worker_key] = _OPENING

        try:
            session = self._connect(worker_key, capabilities, server_url=server_url)
        except BaseException:
            with self._lock:
                self._sessions.pop(worker_key, None)
            raise

        with self._lock:
            self._sessions[worker_key] = session
        logger.info(
            "Session %s opened for worker %r (%s, %s)",
            session.session_id,
            worker_key,
            session.platform.value,
            session.environment.value,
        )
        return session

    def _connect(
        self,
        worker_key: Hashable,
        capabilities: CapabilitySet,
        *,
        server_url: Optional[str],
    ) -> Session:
        url = server_url or resolve_server_url(capabilities.environment, self.resolver)
        timeout_s = max(self.resolver.new_command_timeout().total_seconds(), 1.0)
        client = self._client_factory(url, timeout_s=timeout_s)
        try:
            session_id = client.create_session(capabilities.to_session_payload())
        except Exception as e:
            self._delete_quietly(client, worker_key)
            raise ConnectionFailed(f"Could not open {capabilities.platform.value} session: {e}") from e

        try:
            implicit_ms = int(self.resolver.implicit_wait().total_seconds() * 1000)
            client.set_timeouts(implicit_ms=implicit_ms)
        except Exception as e:
            self._delete_quietly(client, worker_key)
            raise ConnectionFailed(f"Session {session_id} opened but could not be configured: {e}") from e

        return Session(
            worker_key=worker_key,
            platform=capabilities.platform,
            environment=capabilities.environment,
            capabilities=capabilities,
            client=client,
            session_id=session_id,
        )

    def current(self, worker_key: Hashable) -> Session:
        entry = self._sessions.get(worker_key)
        if not isinstance(entry, Session):
            raise NotInitialized(f"No session is open for worker {worker_key!r}; call open() first")
        return entry

    def is_open(self, worker_key: Hashable) -> bool:
        return isinstance(self._sessions.get(worker_key), Session)

    def open_keys(self) -> list[Hashable]:
        with self._lock:
            return [key for key, entry in self._sessions.items() if isinstance(entry, Session)]

    def close(self, worker_key: Hashable) -> None:
        """Never raises; remote teardown failures are logged."""
        entry = self._sessions.get(worker_key)
        if not isinstance(entry, Session):
            logger.warning("No session to close for worker %r", worker_key)
            return

        logger.info("Closing session %s for worker %r", entry.session_id, worker_key)
        self._delete_quietly(entry.client, worker_key)
        entry.closed = True
        with self._lock:
            if self._sessions.get(worker_key) is entry:
                del self._sessions[worker_key]

    def close_all(self) -> None:
        for worker_key in self.open_keys():
            self.close(worker_key)

    @staticmethod
    def _delete_quietly(client: AppiumHTTPClient, worker_key: Hashable) -> None:
        try:
            client.delete_session()
        except Exception as e:
            logger.warning("Error while ending remote session for worker %r: %s", worker_key, e)
        try:
            client.close()
        except Exception as e:
            logger.warning("Error while releasing HTTP connection for worker %r: %s", worker_key, e)
