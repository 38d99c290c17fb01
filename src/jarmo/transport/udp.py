from __future__ import annotations
import json
import socket
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

SendCallback = Callable[[Optional[Exception]], None]


@dataclass(frozen=True)
class UdpEndpoint:
    host: str
    port: int


def encode_payload(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class UdpTransmitter:
    """
    Owns one datagram socket for the lifetime of the server.
    Each send is a single unacknowledged packet; nothing is retried or buffered.
    """

    def __init__(self, family: int = socket.AF_INET):
        self._family = family
        self._sock = socket.socket(family, socket.SOCK_DGRAM)
        self._addrs: Dict[Tuple[str, int], tuple] = {}
        # sendto must never park the event loop
        self._sock.setblocking(False)

    def send(self, host: str, port: int, payload: Any, callback: SendCallback) -> None:
        try:
            data = encode_payload(payload)
            self._sock.sendto(data, self._resolve(host, port))
        except (TypeError, ValueError, OSError) as e:
            callback(e)
            return
        callback(None)

    def _resolve(self, host: str, port: int) -> tuple:
        # destinations are fixed at setup, so the lookup only blocks on first use
        key = (host, port)
        addr = self._addrs.get(key)
        if addr is None:
            infos = socket.getaddrinfo(host, port, self._family, socket.SOCK_DGRAM)
            addr = self._addrs[key] = infos[0][4]
        return addr

    def close(self) -> None:
        self._sock.close()
