import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from node_fingerprint.config import AgentConfig, load_config
from node_fingerprint.core import FingerprintResponse, NetworkResource, Node
from node_fingerprint.fingerprint import BaseFingerprint


@pytest.fixture
def agent_config(tmp_path: Path) -> AgentConfig:
    """Default configuration with short timeouts and a private data dir."""
    config = load_config(tmp_path / "node-fingerprint.cfg", environ={})
    config.agent.data_dir = tmp_path / "data"
    config.agent.node_id = "node-test"
    config.metadata.request_timeout_seconds = 0.5
    config.fingerprint.probe_timeout_seconds = 2.0
    config.fingerprint.startup_deadline_seconds = 5.0
    return config


@pytest.fixture
def node() -> Node:
    return Node(id="node-test", name="worker-1", datacenter="dc1")


class MetadataServer:
    """Substitute metadata service serving fixed endpoints.

    Endpoints mirror the JSON fixture shape used for the real services
    (``body`` may be ``bytes`` to serve undecodable content):
    ``{"uri": ..., "content-type": ..., "body": ...}`` plus an optional
    ``"method"`` (default GET). Unmapped paths answer 404.
    """

    def __init__(
        self,
        endpoints: List[Dict[str, str]],
        required_headers: Mapping[str, str],
    ) -> None:
        self.endpoints = list(endpoints)
        self.required_headers = dict(required_headers)
        self.requests: List[str] = []
        self.request_headers: List[Mapping[str, str]] = []
        self.header_violations: List[str] = []
        self._server: Optional[TestServer] = None

    def url(self, path: str) -> str:
        assert self._server is not None
        return str(self._server.make_url(path))

    async def start(self) -> None:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self._handle)
        self._server = TestServer(app)
        await self._server.start_server()

    async def close(self) -> None:
        if self._server is not None:
            await self._server.close()

    async def _handle(self, request: web.Request) -> web.Response:
        self.requests.append(f"{request.method} {request.path_qs}")
        self.request_headers.append(request.headers.copy())

        for header, expected in self.required_headers.items():
            if request.headers.get(header) != expected:
                self.header_violations.append(f"{request.path_qs}: {header}")
                return web.Response(status=403, text="missing header")

        for endpoint in self.endpoints:
            method = endpoint.get("method", "GET")
            if endpoint["uri"] == request.path_qs and method == request.method:
                # Bodies end with a newline, as real metadata servers often do
                body = endpoint["body"]
                if isinstance(body, str):
                    body = body.encode("utf-8")
                return web.Response(
                    body=body + b"\n",
                    headers={"Content-Type": endpoint["content-type"]},
                )

        return web.Response(status=404, text="not found")


@pytest_asyncio.fixture
async def metadata_server():
    """Factory starting :class:`MetadataServer` instances for a test."""
    servers: List[MetadataServer] = []

    async def factory(
        endpoints: List[Dict[str, str]],
        required_headers: Optional[Mapping[str, str]] = None,
    ) -> MetadataServer:
        server = MetadataServer(endpoints, required_headers or {})
        await server.start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        await server.close()


class StaticProbe(BaseFingerprint):
    """Probe returning canned responses, for runner and agent tests."""

    def __init__(
        self,
        name: str,
        responses: Optional[List[Any]] = None,
        *,
        delay: float = 0.0,
        interval: float = 0.0,
        mandatory: bool = False,
        platforms: frozenset = frozenset(),
    ) -> None:
        self._name = name
        self._responses = list(responses or [FingerprintResponse()])
        self._delay = delay
        self.periodic_interval = interval
        self.mandatory = mandatory
        self.platforms = platforms
        self.calls = 0
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def fingerprint(self, config: AgentConfig) -> FingerprintResponse:
        index = min(self.calls, len(self._responses) - 1)
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        outcome = self._responses[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


def detected(
    attributes: Optional[Dict[str, Optional[str]]] = None,
    *,
    links: Optional[Dict[str, Optional[str]]] = None,
    networks: Optional[List[NetworkResource]] = None,
    errors: Optional[List[str]] = None,
) -> FingerprintResponse:
    return FingerprintResponse(
        detected=True,
        attributes=dict(attributes or {}),
        links=dict(links or {}),
        networks=list(networks or []),
        errors=list(errors or []),
    )


@pytest.fixture
def static_probe() -> Callable[..., StaticProbe]:
    return StaticProbe


@pytest.fixture
def response_for() -> Callable[..., FingerprintResponse]:
    return detected


async def wait_until(
    predicate: Callable[[], bool], *, timeout: float = 2.0
) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    return wait_until
