"""Agent entry-point: fingerprint the node, hand it off, keep it fresh."""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import uuid
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiohttp

from .config import AgentConfig, load_config
from .core import Node, NodeMerger
from .fingerprint import (
    FingerprintPassError,
    FingerprintRegistry,
    FingerprintReport,
    FingerprintRunner,
    build_registry,
)
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

NODE_ID_FILENAME = "node-id"

RegistrationCallback = Callable[[Node], Awaitable[None]]


class AgentState(str, Enum):
    COLD_START = "cold_start"
    FINGERPRINTING = "fingerprinting"
    REGISTERING = "registering"
    ACTIVE = "active"
    STOPPING = "stopping"
    STOPPED = "stopped"


async def log_registration(node: Node) -> None:
    """Default hand-off used when no registration client is wired in."""
    LOGGER.info(
        "Node fingerprint ready: %s", json.dumps(node.to_dict(), sort_keys=True)
    )


def resolve_node_id(config: AgentConfig) -> str:
    """Configured node id, else the one persisted in the data dir, else new."""
    if config.agent.node_id:
        return config.agent.node_id

    id_path = Path(config.agent.data_dir) / NODE_ID_FILENAME
    try:
        existing = id_path.read_text(encoding="utf-8").strip()
    except OSError:
        existing = ""
    if existing:
        return existing

    node_id = str(uuid.uuid4())
    try:
        id_path.parent.mkdir(parents=True, exist_ok=True)
        id_path.write_text(node_id, encoding="utf-8")
    except OSError as exc:
        LOGGER.debug("Could not persist node id to %s: %s", id_path, exc)
    return node_id


def build_node(config: AgentConfig) -> Node:
    return Node(
        id=resolve_node_id(config),
        name=config.agent.node_name or socket.gethostname(),
        datacenter=config.agent.datacenter,
        node_class=config.agent.node_class,
        meta=dict(config.meta),
    )


class FingerprintAgent:
    """Coordinates the fingerprint lifecycle for one node.

    Startup validates the probe configuration, runs the initial pass, hands
    the node to the registration callable and then keeps periodic probes
    running until :meth:`request_shutdown` is called.
    """

    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        *,
        registration: Optional[RegistrationCallback] = None,
        registry: Optional[FingerprintRegistry] = None,
        node: Optional[Node] = None,
    ) -> None:
        """Initialize the agent.

        Args:
            config: Agent configuration. If None, loads from default path.
            registration: Coroutine receiving the node after the initial pass.
            registry: Probe registry. If None, the default probe set filtered
                by the configured allow/deny lists is built on startup.
            node: Node record to fill. If None, one is built from config.
        """
        self._config = config or load_config()
        self._registration = registration or log_registration
        self._registry = registry
        self._owns_registry = registry is None
        self._node = node or build_node(self._config)
        self._merger = NodeMerger(self._node)
        self._runner: Optional[FingerprintRunner] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state = AgentState.COLD_START
        self._report: Optional[FingerprintReport] = None

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def report(self) -> Optional[FingerprintReport]:
        return self._report

    @property
    def runner(self) -> Optional[FingerprintRunner]:
        return self._runner

    async def snapshot(self) -> Node:
        return await self._merger.snapshot()

    async def run(self) -> None:
        """Fingerprint, register and keep periodic probes alive until shutdown."""
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()

        try:
            node = await self.fingerprint_once()
            await self._register(node)

            runner = await self._prepare()
            runner.start_periodic()
            self._transition(AgentState.ACTIVE)

            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("node-fingerprint received shutdown signal")
            raise
        finally:
            await self.stop()

    async def fingerprint_once(self) -> Node:
        """Run the initial pass and return a snapshot of the node.

        Raises:
            FingerprintConfigurationError: If the filter lists are invalid.
            FingerprintPassError: If no probe applied although base probes
                were enabled.
        """
        runner = await self._prepare()
        self._transition(AgentState.FINGERPRINTING)

        report = await runner.run_initial()
        self._report = report
        if not report.ok:
            raise FingerprintPassError(
                "No probe succeeded; failed: " + ", ".join(report.failed)
            )

        return await self._merger.snapshot()

    def request_shutdown(self) -> None:
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        self._shutdown_event.set()

    async def stop(self) -> None:
        if self._state is AgentState.STOPPED:
            return
        self._transition(AgentState.STOPPING)

        if self._runner is not None:
            await self._runner.stop()
        else:
            self._merger.close()

        if self._registry is not None and self._owns_registry:
            await self._registry.close()
        if self._session is not None:
            await self._session.close()
            self._session = None

        self._transition(AgentState.STOPPED)

    async def _prepare(self) -> FingerprintRunner:
        if self._runner is not None:
            return self._runner

        if self._registry is None:
            session = aiohttp.ClientSession()
            try:
                self._registry = build_registry(self._config, session=session)
            except Exception:
                await session.close()
                raise
            self._session = session

        LOGGER.info("Enabled probes: %s", ", ".join(self._registry.names) or "none")
        self._runner = FingerprintRunner(self._registry, self._merger, self._config)
        return self._runner

    async def _register(self, node: Node) -> None:
        self._transition(AgentState.REGISTERING)
        try:
            await self._registration(node)
        except Exception as exc:
            LOGGER.error("Node registration hand-off failed: %s", exc, exc_info=True)

    def _transition(self, state: AgentState) -> None:
        if state == self._state:
            return
        LOGGER.info("Agent state transition %s -> %s", self._state.value, state.value)
        self._state = state

    @classmethod
    def start(cls, config: Optional[AgentConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("node-fingerprint received shutdown signal")
