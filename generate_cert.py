import sys
from pathlib import Path

from chatrelay import config, tls

# Quick one-off certificate for running the relay with --tls.
# - Self-signed, valid for localhost/127.0.0.1 plus any hosts given as args.
# - Key is written unencrypted (fine for local testing).
# - Clients trust it by passing the same cert.pem as --cafile.

# 1) Hosts the relay will be reached by.
hosts = list(tls.DEFAULT_HOSTS) + sys.argv[1:]

# 2) Generate and write cert.pem / key.pem under the configured cert dir.
cert_path, key_path = tls.write_self_signed(config.CERT_FILE, config.KEY_FILE, hosts=hosts)

print(f"Certificate: {Path(cert_path).resolve()}")
print(f"Private key: {Path(key_path).resolve()}")
