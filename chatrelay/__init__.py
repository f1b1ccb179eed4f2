"""
chatrelay — a small in-memory chat relay over asyncio streams.

Clients join with a display name, get a unique "<n> - <name>" identifier and
the roster of who is online, then exchange directed messages routed by
identifier. Joins and departures are broadcast to everyone online.

Frames are length-prefixed JSON lists of strings (see framing.py); the tags
and their fields are listed in messages.py.
"""
__all__ = ["client", "config", "framing", "handler", "messages", "registry", "run_relay", "server", "tls"]
