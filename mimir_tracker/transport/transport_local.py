# mimir_tracker/transport/transport_local.py
import logging
import queue
from typing import List, Optional, Tuple

from mimir_tracker.transport.transport_base import Address, Datagram, DatagramTransport

log = logging.getLogger("Tracker.Transport.Local")


class LocalAdapter(DatagramTransport):
    """
    In-process loopback: inject() queues an inbound datagram, replies land
    in `sent`. Used to drive the tracker loop without a socket.
    """

    name = "local"

    def __init__(self, poll_interval: float = 0.05):
        self.poll_interval = poll_interval
        self.inbox: "queue.Queue[Datagram]" = queue.Queue()
        self.sent: List[Tuple[bytes, Address]] = []
        self.bound = False

    def bind(self) -> None:
        self.bound = True
        log.debug("[LOCAL] bound")

    def inject(self, payload: bytes, source: Address = ("::1", 40000)) -> None:
        self.inbox.put(Datagram(payload=payload, source=source))

    def recv(self) -> Optional[Datagram]:
        try:
            return self.inbox.get(timeout=self.poll_interval)
        except queue.Empty:
            return None

    def send(self, payload: bytes, addr: Address) -> None:
        log.debug(f"[LOCAL SEND] {len(payload)} bytes -> {addr}")
        self.sent.append((payload, addr))

    def close(self) -> None:
        self.bound = False
