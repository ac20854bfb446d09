"""
Mimir Tracker
=============
Peer-discovery tracker for Mimir identities.

Provides:
- Binary UDP protocol codec (register / resolve)
- Ed25519 admission control for registrations
- TTL-based address storage with expiry on read (SQLite default)
- Tracker service loop and a matching client
"""

__version__ = "0.1.0"
