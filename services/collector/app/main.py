import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Query
from pydantic import BaseModel

from services.collector.app.core.store import CollectorModel, MalformedDatagram
from jarmo.transport.udp import UdpEndpoint

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

HTTP_HOST = os.getenv("JARMO_COLLECTOR_HTTP_HOST", "127.0.0.1")
HTTP_PORT = int(os.getenv("JARMO_COLLECTOR_HTTP_PORT", "8080"))

MAX_RECORDS = int(os.getenv("JARMO_COLLECTOR_MAX_RECORDS", "1000"))

MODEL = CollectorModel(max_records=MAX_RECORDS)


def udp_endpoint() -> UdpEndpoint:
    # read at startup so a test run can bind an ephemeral port
    return UdpEndpoint(
        host=os.getenv("JARMO_COLLECTOR_UDP_HOST", "127.0.0.1"),
        port=int(os.getenv("JARMO_COLLECTOR_UDP_PORT", "8000")),
    )


class UdpProto(asyncio.DatagramProtocol):
    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr):
        # one datagram is one report; there is nothing to answer
        try:
            MODEL.ingest(data)
        except MalformedDatagram as e:
            logger.warning("dropped malformed datagram from %s: %s", addr, e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    endpoint = udp_endpoint()
    loop = asyncio.get_running_loop()
    transport, _ = await loop.create_datagram_endpoint(
        lambda: UdpProto(),
        local_addr=(endpoint.host, endpoint.port),
    )
    app.state.udp_transport = transport
    host, port = transport.get_extra_info("sockname")[:2]
    logger.info("collector listening on udp://%s:%s", host, port)
    try:
        yield
    finally:
        transport.close()


app = FastAPI(title="Jarmo Collector", version="0.1.0", lifespan=lifespan)


class StatsOut(BaseModel):
    received: int
    malformed: int
    stored: int
    mean_response_time: Optional[float] = None
    max_response_time: Optional[float] = None
    status_counts: Dict[str, int] = {}


@app.get("/health")
def health():
    return {"status": "ok", "received": MODEL.received_count}


@app.get("/stats", response_model=StatsOut)
def stats():
    return MODEL.stats()


@app.get("/records")
def records(limit: int = Query(100, ge=1, le=1000)):
    return {"records": MODEL.recent(limit)}


@app.post("/control/reset")
def reset():
    MODEL.reset()
    return {"status": "reset", "reset_count": MODEL.reset_count}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=HTTP_HOST,
        port=HTTP_PORT,
        reload=False)
