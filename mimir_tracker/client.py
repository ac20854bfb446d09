"""
mimir_tracker.client
--------------------
Client side of the tracker protocol.

TrackerClient announces this node's addresses and resolves other
identities against a list of trackers. Each tracker carries a latency
score in milliseconds; the lowest score is asked first, a successful round
trip resets the score to the measured time and a failure adds a penalty.

Resolved records are checked against the identity's key before being
returned, so a tracker cannot hand out addresses the owner never signed.
"""

from __future__ import annotations
import logging
import secrets
import socket
import threading
import time
from typing import Dict, List, Optional

from .constants import CMD_REGISTER, CMD_RESOLVE, RESPONSE_BUFFER_SIZE
from .crypto import ed25519_public_key, sign_address, verify_address
from .protocol import (
    ProtocolError, RegisterResponse, ResolveResponse,
    decode_response, encode_register_request, encode_resolve_request,
)
from .storage.models import AddressRecord
from .utils import pack_ipv6, parse_listen_address, to_hex

log = logging.getLogger("Tracker.Client")

FAILURE_PENALTY_MS = 25
DEFAULT_TIMEOUT = 1.5


class TrackerClientError(Exception):
    pass


class TrackerClient:
    def __init__(self, trackers: List[str], timeout: float = DEFAULT_TIMEOUT):
        if not trackers:
            raise ValueError("At least one tracker address is required")
        # insertion order breaks ties between equal scores
        self.scores: Dict[str, int] = {t: 0 for t in trackers}
        self.timeout = timeout
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Tracker selection
    # ------------------------------------------------------------------
    def best_tracker(self) -> str:
        with self._lock:
            return min(self.scores, key=self.scores.get)

    def _set_score(self, tracker: str, ms: int) -> None:
        with self._lock:
            self.scores[tracker] = ms

    def _penalize(self, tracker: str) -> None:
        with self._lock:
            self.scores[tracker] += FAILURE_PENALTY_MS

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def _exchange(self, tracker: str, request: bytes, nonce: int, command: int, identity: bytes):
        start = time.monotonic()
        try:
            host, port = parse_listen_address(tracker)
            family, _, _, _, sockaddr = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)[0]
            with socket.socket(family, socket.SOCK_DGRAM) as sock:
                sock.settimeout(self.timeout)
                sock.sendto(request, sockaddr)
                data, _ = sock.recvfrom(RESPONSE_BUFFER_SIZE)
            response = decode_response(data, identity)
        except (OSError, ValueError, ProtocolError) as e:
            self._penalize(tracker)
            log.error(f"[CLIENT] request to {tracker} failed: {e}")
            raise TrackerClientError(f"Request to {tracker} failed: {e}") from e

        if response.nonce != nonce or response.command != command:
            self._penalize(tracker)
            raise TrackerClientError(
                f"Unexpected response from {tracker}: nonce={response.nonce} command={response.command}"
            )

        self._set_score(tracker, int((time.monotonic() - start) * 1000))
        return response

    def announce(self, private_key: bytes, address, port: int,
                 priority: int = 0, client_tag: int = 0) -> int:
        """Register `address` under the identity of `private_key`; return the granted TTL."""
        identity = ed25519_public_key(private_key)
        raw = pack_ipv6(address)
        signature = sign_address(private_key, raw)
        nonce = secrets.randbits(32)
        request = encode_register_request(nonce, identity, port, priority, client_tag, raw, signature)

        log.info(f"[CLIENT] announcing {address} for {to_hex(identity)}")
        response: RegisterResponse = self._exchange(self.best_tracker(), request, nonce, CMD_REGISTER, identity)
        return response.ttl

    def resolve(self, identity: bytes) -> List[AddressRecord]:
        """Return the addresses registered for `identity` whose signatures check out."""
        nonce = secrets.randbits(32)
        request = encode_resolve_request(nonce, identity)
        response: ResolveResponse = self._exchange(self.best_tracker(), request, nonce, CMD_RESOLVE, identity)

        results = []
        for rec in response.records:
            if not verify_address(identity, rec.signature, rec.address):
                log.warning(f"[CLIENT] wrong address signature for {to_hex(identity)}, skipping {rec.ip}")
                continue
            results.append(rec)
        log.info(f"[CLIENT] resolved {len(results)} addresses for {to_hex(identity)}")
        return results

    def ping(self) -> Dict[str, Optional[int]]:
        """Resolve a throwaway identity on every tracker to refresh the scores."""
        blank = bytes(32)
        results: Dict[str, Optional[int]] = {}
        for tracker in list(self.scores):
            nonce = secrets.randbits(32)
            start = time.monotonic()
            try:
                self._exchange(tracker, encode_resolve_request(nonce, blank), nonce, CMD_RESOLVE, blank)
            except TrackerClientError:
                results[tracker] = None
                continue
            results[tracker] = int((time.monotonic() - start) * 1000)
        return results

