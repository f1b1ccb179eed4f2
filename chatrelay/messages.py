from typing import Dict, Iterable, Optional, Tuple

from .framing import Message

"""
messages.py — protocol tags, frame builders and shape checks.

Every frame is a list of strings; element 0 is one of the tags below and
the remaining elements are the tag's fields:

    SOLICITUD_CONEXION       [display_name]
    CONEXION_ACEPTADA        [identifier, *roster]
    NUEVO_USUARIO_CONECTADO  [identifier]
    MENSAJE                  [sender, recipient, text]
    SOLICITUD_DESCONEXION    []
    USUARIO_DESCONECTADO     [identifier]
"""

# -----------------------
# Public message type tags
# -----------------------
CONNECTION_REQUEST = "SOLICITUD_CONEXION"
CONNECTION_ACCEPTED = "CONEXION_ACEPTADA"
NEW_USER_CONNECTED = "NUEVO_USUARIO_CONECTADO"
MESSAGE = "MENSAJE"
DISCONNECT_REQUEST = "SOLICITUD_DESCONEXION"
USER_DISCONNECTED = "USUARIO_DESCONECTADO"

# tag -> (min fields, max fields or None for unbounded), tag excluded.
# SOLICITUD_DESCONEXION tolerates trailing fields; some clients send their
# own identifier along with it.
FIELD_COUNTS: Dict[str, Tuple[int, Optional[int]]] = {
    CONNECTION_REQUEST: (1, 1),
    CONNECTION_ACCEPTED: (1, None),
    NEW_USER_CONNECTED: (1, 1),
    MESSAGE: (3, 3),
    DISCONNECT_REQUEST: (0, None),
    USER_DISCONNECTED: (1, 1),
}


class ProtocolError(ValueError):
    """Unknown tag or wrong number of fields for a known tag."""


def validate(message: Message) -> str:
    """Check a decoded frame against FIELD_COUNTS and return its tag."""
    tag = message[0]
    if tag not in FIELD_COUNTS:
        raise ProtocolError(f"Unknown tag {tag!r}")
    lo, hi = FIELD_COUNTS[tag]
    n = len(message) - 1
    if n < lo or (hi is not None and n > hi):
        expected = str(lo) if lo == hi else f"at least {lo}"
        raise ProtocolError(f"{tag} expects {expected} field(s), got {n}")
    return tag


def connection_request(display_name: str) -> Message:
    return [CONNECTION_REQUEST, display_name]


def connection_accepted(identifier: str, roster: Iterable[str]) -> Message:
    """Confirmation for a joiner: its identifier, then everyone already online."""
    return [CONNECTION_ACCEPTED, identifier, *roster]


def new_user_connected(identifier: str) -> Message:
    return [NEW_USER_CONNECTED, identifier]


def direct_message(sender: str, recipient: str, text: str) -> Message:
    return [MESSAGE, sender, recipient, text]


def disconnect_request() -> Message:
    return [DISCONNECT_REQUEST]


def user_disconnected(identifier: str) -> Message:
    return [USER_DISCONNECTED, identifier]


def make_identifier(sequence: int, display_name: str) -> str:
    """'<seq> - <name>'; the sequence number keeps equal names apart."""
    return f"{sequence} - {display_name}"
