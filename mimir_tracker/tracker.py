"""
mimir_tracker.tracker
---------------------
The tracker's receive/process/reply loop.

One thread owns the transport and the storage handle. Each datagram is
decoded, dispatched and answered before the next one is read, so two
registrations for the same (identity, address) never overlap.

Nothing a peer sends can stop the loop: undecodable datagrams, unknown
commands and bad signatures are logged and dropped without a reply.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .constants import RESPONSE_BUFFER_SIZE
from .crypto import verify_address
from .protocol import (
    MalformedRequestError, RegisterRequest, ResolveRequest, UnknownCommandError,
    decode_request, encode_register_response, encode_resolve_response,
)
from .storage import StorageProvider
from .transport import DatagramTransport, TransportError, TransportTransientError, transport_factory
from .utils import format_ipv6, to_hex

log = logging.getLogger("Tracker.Service")


@dataclass
class TrackerStats:
    received: int = 0
    replied: int = 0
    dropped: int = 0
    rejected: int = 0
    send_errors: int = 0


def _host(addr) -> str:
    return addr[0] if isinstance(addr, tuple) and addr else str(addr)


class TrackerService:
    """
    Tracker bound to a single listen address.

    The storage provider is opened by the caller and handed in; the service
    uses it for its whole lifetime and closes it on stop().
    """

    def __init__(self, listen_address: str, storage: StorageProvider,
                 transport: Optional[DatagramTransport] = None):
        self.listen_address = listen_address
        self.storage = storage
        self.transport = transport or transport_factory("udp", listen_address)
        self.stats = TrackerStats()
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------
    def process_message(self, data: bytes, source) -> Optional[bytes]:
        """Return the reply for one datagram, or None to drop it."""
        try:
            request = decode_request(data)
        except MalformedRequestError as e:
            log.warning(f"[TRACKER] malformed request from {_host(source)}: {e}")
            return None
        except UnknownCommandError as e:
            log.warning(f"[TRACKER] wrong command {e.header.command} from {_host(source)}")
            return None

        log.info(f"[TRACKER] packet from/for {to_hex(request.identity)} on {_host(source)}")

        if isinstance(request, RegisterRequest):
            return self._handle_register(request, source)
        return self._handle_resolve(request)

    def _handle_register(self, request: RegisterRequest, source) -> Optional[bytes]:
        if not verify_address(request.identity, request.signature, request.address):
            self.stats.rejected += 1
            log.warning(
                f"[TRACKER] wrong signature from {_host(source)} "
                f"for {format_ipv6(request.address)} / {to_hex(request.identity)}"
            )
            return None

        ttl = self.storage.save_address(
            request.identity,
            request.address,
            request.signature,
            request.port,
            request.priority,
            request.client_tag,
        )
        log.debug(f"[TRACKER] saved {format_ipv6(request.address)} for {to_hex(request.identity)} ttl={ttl}")
        return encode_register_response(request.nonce, ttl)

    def _handle_resolve(self, request: ResolveRequest) -> bytes:
        records = self.storage.get_addresses(request.identity)
        log.info(f"[TRACKER] got {len(records)} ips for {to_hex(request.identity)}")
        return encode_resolve_response(request.nonce, records, RESPONSE_BUFFER_SIZE)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    def bind(self) -> None:
        """Bind the transport. Failure raises TransportPermanentError."""
        self.transport.bind()
        self._running.set()
        log.info(f"[TRACKER] started on {self.listen_address}")

    def serve_forever(self) -> None:
        """
        Bind and serve until stop() is called.

        A bind failure raises to the caller; every error after that is
        contained to the datagram that caused it.
        """
        self.bind()
        self._loop()

    def _loop(self) -> None:
        try:
            while self._running.is_set():
                self._serve_once()
        finally:
            self._running.clear()
            log.info("[TRACKER] loop ended")

    def _serve_once(self) -> None:
        try:
            datagram = self.transport.recv()
        except TransportTransientError as e:
            log.warning(f"[TRACKER] receive error: {e}")
            return
        except TransportError:
            if not self._running.is_set():
                return
            raise
        if datagram is None:
            return

        self.stats.received += 1
        try:
            reply = self.process_message(datagram.payload, datagram.source)
        except Exception:
            log.exception(f"[TRACKER] error processing message from {_host(datagram.source)}")
            reply = None

        if reply is None:
            self.stats.dropped += 1
            return

        try:
            self.transport.send(reply, datagram.source)
            self.stats.replied += 1
        except TransportError as e:
            self.stats.send_errors += 1
            log.error(f"[TRACKER] error sending response to {_host(datagram.source)}: {e}")

    def start(self) -> threading.Thread:
        """
        Bind in the calling thread, then run the loop on a dedicated thread
        and return it. A bind failure raises here, before any thread exists.
        """
        self.bind()
        self._thread = threading.Thread(target=self._loop, name="mimir-tracker", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float = 2.0) -> None:
        self._running.clear()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self.transport.close()
        self.storage.close()

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "listen_address": self.listen_address,
            "transport": self.transport.healthz(),
            "storage": self.storage.name,
            "stats": asdict(self.stats),
        }
