import socket
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse, StreamingResponse

from jarmo.middleware.timing import JarmoMiddleware

JARMO_ENV_VARS = ("JARMO_ENABLE", "JARMO_HOST", "JARMO_PORT")


@dataclass
class RecordingTransmitter:
    """
    Stands in for UdpTransmitter. Records every send and reports `error`
    (or success) to the completion callback.
    """
    error: Optional[Exception] = None
    sent: List[Tuple[str, int, Any]] = field(default_factory=list)

    def send(self, host, port, payload, callback):
        self.sent.append((host, port, payload))
        callback(self.error)


def build_app(**middleware_kwargs) -> FastAPI:
    app = FastAPI()

    @app.get("/ok")
    def ok():
        return {"status": "ok"}

    @app.get("/missing")
    def missing():
        raise HTTPException(status_code=404, detail="not here")

    @app.get("/boom")
    def boom():
        raise RuntimeError("handler exploded")

    @app.get("/teapot", response_class=PlainTextResponse, status_code=418)
    def teapot():
        return "short and stout"

    @app.get("/stream")
    def stream():
        return StreamingResponse(iter([b"a", b"b", b"c"]), media_type="text/plain")

    app.add_middleware(JarmoMiddleware, **middleware_kwargs)
    return app


@pytest.fixture(autouse=True)
def clean_jarmo_env(monkeypatch):
    """
    Each test starts without any JARMO_* variables from the outer shell.
    """
    for name in JARMO_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def recorder():
    return RecordingTransmitter()


@pytest.fixture
def udp_listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.settimeout(2.0)
    sock.bind(("127.0.0.1", 0))
    try:
        yield sock
    finally:
        sock.close()


@pytest.fixture
def make_app():
    return build_app


@pytest.fixture
def collector(monkeypatch):
    """
    Runs the collector in-process on an ephemeral UDP port.
    Yields (http client, udp port).
    """
    from fastapi.testclient import TestClient
    from services.collector.app import main

    monkeypatch.setenv("JARMO_COLLECTOR_UDP_HOST", "127.0.0.1")
    monkeypatch.setenv("JARMO_COLLECTOR_UDP_PORT", "0")
    main.MODEL.reset()

    with TestClient(main.app) as client:
        port = main.app.state.udp_transport.get_extra_info("sockname")[1]
        yield client, port
