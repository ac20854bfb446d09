import ipaddress
import logging
import socket
import struct
import time

import pytest

from mimir_tracker.constants import CMD_REGISTER, CMD_RESOLVE, DEFAULT_TTL, RESOLVE_TTL
from mimir_tracker.crypto import sign_address
from mimir_tracker.protocol import decode_response, encode_register_request, encode_resolve_request
from mimir_tracker.storage import InMemoryStorage
from mimir_tracker.tracker import TrackerService
from mimir_tracker.transport import LocalAdapter, TransportPermanentError, UDPAdapter

SOURCE = ("2001:db8::99", 40000)


@pytest.fixture
def service(store):
    return TrackerService("[::1]:0", store, transport=LocalAdapter())


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_register_then_resolve_scenario(service, keypair, address, signature):
    """Register 2001:db8::1 port 5050, then resolve it back."""
    _, pub = keypair

    reply = service.process_message(
        encode_register_request(0x11223344, pub, 5050, 0, 0, address, signature), SOURCE
    )
    assert reply == struct.pack("!IBQ", 0x11223344, CMD_REGISTER, DEFAULT_TTL)

    reply = service.process_message(encode_resolve_request(0x55667788, pub), SOURCE)
    resp = decode_response(reply, pub)
    assert resp.nonce == 0x55667788
    assert resp.command == CMD_RESOLVE
    assert resp.count == 1
    rec = resp.records[0]
    assert rec.ip == "2001:db8::1"
    assert rec.port == 5050
    assert rec.ttl == RESOLVE_TTL


def test_resolve_unknown_identity_returns_empty(service):
    reply = service.process_message(encode_resolve_request(9, b"\x07" * 32), SOURCE)
    assert reply == struct.pack("!IBB", 9, CMD_RESOLVE, 0)


def test_signature_for_other_payload_is_rejected(service, store, keypair, address, caplog):
    priv, pub = keypair
    wrong_sig = sign_address(priv, ipaddress.IPv6Address("2001:db8::2").packed)

    reply = service.process_message(
        encode_register_request(1, pub, 5050, 0, 0, address, wrong_sig), SOURCE
    )
    assert reply is None
    assert store.get_addresses(pub) == []
    assert not store.is_address_saved(pub, address)
    assert service.stats.rejected == 1
    assert "wrong signature" in caplog.text
    assert "2001:db8::99" in caplog.text


def test_rejected_update_leaves_record_untouched(service, store, keypair, address, signature, clock):
    _, pub = keypair
    service.process_message(encode_register_request(1, pub, 5050, 1, 0, address, signature), SOURCE)
    registered_at = clock()
    clock.advance(100)

    reply = service.process_message(
        encode_register_request(2, pub, 9999, 9, 0, address, b"\x00" * 64), SOURCE
    )
    assert reply is None
    rec = store.get_addresses(pub)[0]
    assert (rec.port, rec.priority) == (5050, 1)
    assert rec.registered_at == registered_at
    assert rec.ttl_seconds == DEFAULT_TTL
    assert rec.signature == signature


def test_reregister_updates_without_duplicate(service, keypair, address, signature):
    _, pub = keypair
    service.process_message(encode_register_request(1, pub, 5050, 1, 0, address, signature), SOURCE)
    service.process_message(encode_register_request(2, pub, 6060, 2, 0, address, signature), SOURCE)

    resp = decode_response(service.process_message(encode_resolve_request(3, pub), SOURCE), pub)
    assert resp.count == 1
    assert (resp.records[0].port, resp.records[0].priority) == (6060, 2)


def test_truncated_register_does_not_touch_storage(service, store, keypair, address, signature):
    _, pub = keypair
    data = encode_register_request(1, pub, 5050, 0, 0, address, signature)

    assert service.process_message(data[:-1], SOURCE) is None
    assert store.get_addresses(pub) == []


def test_unknown_command_is_dropped(service, caplog):
    data = bytearray(encode_resolve_request(1, b"\x01" * 32))
    data[5] = 7
    assert service.process_message(bytes(data), SOURCE) is None
    assert "wrong command 7" in caplog.text


def test_expired_registration_hidden_then_refreshed(service, keypair, address, signature, clock):
    _, pub = keypair
    service.process_message(encode_register_request(1, pub, 5050, 0, 0, address, signature), SOURCE)
    clock.advance(DEFAULT_TTL + 1)

    resp = decode_response(service.process_message(encode_resolve_request(2, pub), SOURCE), pub)
    assert resp.count == 0

    reply = service.process_message(encode_register_request(3, pub, 5050, 0, 0, address, signature), SOURCE)
    assert reply == struct.pack("!IBQ", 3, CMD_REGISTER, DEFAULT_TTL)
    resp = decode_response(service.process_message(encode_resolve_request(4, pub), SOURCE), pub)
    assert resp.count == 1


def test_storage_error_is_contained(keypair, address, signature, caplog):
    class BrokenStorage(InMemoryStorage):
        def get_addresses(self, identity):
            raise RuntimeError("disk on fire")

    transport = LocalAdapter()
    service = TrackerService("local", BrokenStorage(), transport=transport)
    _, pub = keypair
    service.start()
    try:
        transport.inject(encode_resolve_request(1, pub), SOURCE)
        transport.inject(encode_register_request(2, pub, 5050, 0, 0, address, signature), SOURCE)
        assert _wait_for(lambda: len(transport.sent) == 1)
    finally:
        service.stop()

    # the failing resolve got no reply, the register after it did
    assert decode_response(transport.sent[0][0]).nonce == 2
    assert "error processing message" in caplog.text


def test_loop_over_local_transport(keypair, address, signature):
    transport = LocalAdapter()
    service = TrackerService("local", InMemoryStorage(), transport=transport)
    _, pub = keypair

    service.start()
    try:
        assert service.is_running
        transport.inject(b"\x00\x01", SOURCE)
        transport.inject(encode_register_request(1, pub, 5050, 0, 0, address, signature), SOURCE)
        transport.inject(encode_resolve_request(2, pub), SOURCE)
        assert _wait_for(lambda: len(transport.sent) == 2)
    finally:
        service.stop()

    assert not service.is_running
    assert [addr for _, addr in transport.sent] == [SOURCE, SOURCE]
    assert decode_response(transport.sent[1][0], pub).count == 1
    status = service.get_status()
    assert status["stats"] == {"received": 3, "replied": 2, "dropped": 1, "rejected": 0, "send_errors": 0}
    assert status["transport"] == {"status": "ok", "transport": "local"}
    assert status["storage"] == "memory"


def test_send_failure_keeps_loop_alive(keypair, caplog):
    class FlakyAdapter(LocalAdapter):
        calls = 0

        def send(self, payload, addr):
            self.calls += 1
            if self.calls == 1:
                raise TransportPermanentError("network unreachable")
            super().send(payload, addr)

    transport = FlakyAdapter()
    service = TrackerService("local", InMemoryStorage(), transport=transport)
    _, pub = keypair
    service.start()
    try:
        transport.inject(encode_resolve_request(1, pub), SOURCE)
        transport.inject(encode_resolve_request(2, pub), SOURCE)
        assert _wait_for(lambda: len(transport.sent) == 1)
    finally:
        service.stop()

    assert decode_response(transport.sent[0][0]).nonce == 2
    assert service.stats.send_errors == 1
    assert "error sending response" in caplog.text


def test_udp_service_survives_garbage(keypair, address, signature):
    service = TrackerService("127.0.0.1:0", InMemoryStorage())
    service.start()
    host, port = service.transport.local_address[:2]
    _, pub = keypair
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(2.0)
            for junk in (b"", b"\x01", b"\xff" * 37, b"\xff" * 2000):
                sock.sendto(junk, (host, port))
            sock.sendto(encode_register_request(42, pub, 5050, 0, 0, address, signature), (host, port))
            data, _ = sock.recvfrom(1024)
    finally:
        service.stop()

    assert data == struct.pack("!IBQ", 42, CMD_REGISTER, DEFAULT_TTL)


def test_bind_failure_is_fatal():
    taken = UDPAdapter("127.0.0.1:0")
    taken.bind()
    port = taken.local_address[1]
    try:
        service = TrackerService(f"127.0.0.1:{port}", InMemoryStorage())
        with pytest.raises(TransportPermanentError):
            service.start()
        assert not service.is_running
    finally:
        taken.close()
