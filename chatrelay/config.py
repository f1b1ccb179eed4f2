# chatrelay/config.py
# Central settings for the relay. Every value can be overridden with a
# CHATRELAY_* environment variable; command-line flags override both.

import os

# --- Network ---

# Address the relay listens on ('0.0.0.0' = all interfaces).
HOST = os.environ.get("CHATRELAY_HOST", "0.0.0.0")

# TCP port clients connect to.
PORT = int(os.environ.get("CHATRELAY_PORT", "9000"))

# --- Framing ---

# Largest frame payload accepted or produced, in bytes.
MAX_FRAME_SIZE = int(os.environ.get("CHATRELAY_MAX_FRAME_SIZE", str(4 * 1024 * 1024)))

# --- Per-connection outbox ---

# Frames and bytes queued for one client before it counts as not reading and
# is dropped.
OUTBOX_MAX_FRAMES = int(os.environ.get("CHATRELAY_OUTBOX_MAX_FRAMES", "1024"))
OUTBOX_MAX_BYTES = int(os.environ.get("CHATRELAY_OUTBOX_MAX_BYTES", str(16 * 1024 * 1024)))

# Seconds a closing connection gets to take its last frames before it is aborted.
CLOSE_TIMEOUT = float(os.environ.get("CHATRELAY_CLOSE_TIMEOUT", "5"))

# --- TLS ---

# Per-user directory, like ~/.ssh; never inside the installed package.
CERT_DIR = os.environ.get("CHATRELAY_CERT_DIR", os.path.join(os.path.expanduser("~"), ".chatrelay"))
CERT_FILE = os.environ.get("CHATRELAY_CERT_FILE", os.path.join(CERT_DIR, "cert.pem"))
KEY_FILE = os.environ.get("CHATRELAY_KEY_FILE", os.path.join(CERT_DIR, "key.pem"))

# Serve TLS instead of plain TCP (needs CERT_FILE and KEY_FILE).
ENABLE_TLS = os.environ.get("CHATRELAY_ENABLE_TLS", "0").lower() in ("1", "true", "yes")

# --- Logging ---

LOG_LEVEL = os.environ.get("CHATRELAY_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
