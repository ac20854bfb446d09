from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional, Tuple

Address = Tuple[Any, ...]


class TransportError(Exception):
    pass


class TransportTransientError(TransportError):
    pass


class TransportPermanentError(TransportError):
    pass


@dataclass
class Datagram:
    payload: bytes
    source: Address


class DatagramTransport:
    """
    Request/response datagram contract used by the tracker loop.

    recv() returns None when nothing arrived within the adapter's poll
    interval, so the caller can notice a stop request.
    """
    name: str = "base"

    def bind(self) -> None:
        raise NotImplementedError

    def recv(self) -> Optional[Datagram]:
        raise NotImplementedError

    def send(self, payload: bytes, addr: Address) -> None:
        raise NotImplementedError

    @property
    def local_address(self) -> Optional[Address]:
        return None

    def healthz(self) -> dict:
        return {"status": "ok", "transport": self.name}

    def close(self) -> None:
        return
