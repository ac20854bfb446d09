"""
mimir_tracker.constants
-----------------------
Wire protocol and storage constants shared by the tracker service and client.
"""

PROTOCOL_VERSION = 1

# Commands
CMD_REGISTER = 0
CMD_RESOLVE = 1

# Field sizes (bytes)
IDENTITY_LEN = 32
ADDRESS_LEN = 16
SIGNATURE_LEN = 64

# Request: version:u8 nonce:u32 command:u8 identity:32
REQUEST_HEADER_FORMAT = "!BIB32s"
# Register payload: port:u16 priority:u8 client_tag:u32 address:16 signature:64
REGISTER_PAYLOAD_FORMAT = "!HBI16s64s"

# Response: nonce:u32 command:u8
RESPONSE_HEADER_FORMAT = "!IB"
REGISTER_BODY_FORMAT = "!Q"
RESOLVE_COUNT_FORMAT = "!B"
# Resolve record: address:16 signature:64 port:u16 priority:u8 client_tag:u32 ttl:u64
RESOLVE_RECORD_FORMAT = "!16s64sHBIQ"

# Processing buffer for both directions
RESPONSE_BUFFER_SIZE = 1024

# TTLs (seconds)
DEFAULT_TTL = 86400         # granted on a successful write
DEGRADED_TTL = 300          # storage write failed, client should retry soon
RESOLVE_TTL = 30            # exposed on resolve regardless of stored ttl

DEFAULT_PORT = 5050
DEFAULT_DB_PATH = "mimir.sqlite"
