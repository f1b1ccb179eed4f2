import argparse
import asyncio
import logging
import ssl
import sys
from typing import Optional

from . import config
from . import messages as m
from . import tls
from .client import RelayClient
from .server import RelayServer

"""
run_relay.py — single entry point for the relay and its console clients.

Modes:
- relay:   serve the relay on host:port until interrupted
- client:  join under a display name, print what arrives, send typed lines
- cli:     one-shot helpers (members, send)

"""

logger = logging.getLogger("chatrelay")


# -------------------------
# Process runners
# -------------------------

async def run_relay(host: str, port: int, ssl_context=None) -> None:
    """Bind and serve forever. A bind failure exits the process with status 1."""
    server = RelayServer(host, port, ssl_context=ssl_context)
    try:
        await server.start()
    except (OSError, OverflowError) as exc:
        logger.error("Relay could not start on %s:%s: %s", host, port, exc)
        raise SystemExit(1)
    try:
        await server.serve_forever()
    finally:
        await server.close()


def format_event(message) -> str:
    """One printable line per frame received by a console client."""
    tag = message[0]
    if tag == m.MESSAGE:
        return f"[{message[1]} -> {message[2]}] {message[3]}"
    if tag == m.NEW_USER_CONNECTED:
        return f"* {message[1]} joined"
    if tag == m.USER_DISCONNECTED:
        return f"* {message[1]} left"
    return " ".join(message)


def parse_input_line(line: str):
    """'recipient: text' -> (recipient, text); anything else -> None."""
    recipient, sep, text = line.partition(":")
    if not sep or not recipient.strip():
        return None
    return recipient.strip(), text.strip()


async def run_client(name: str, host: str, port: int, ssl_context=None) -> None:
    """
    Live console client: prints incoming traffic and sends stdin lines of the
    form `recipient: text`. An empty line or EOF leaves the chat.
    """
    client = RelayClient(host, port, ssl_context=ssl_context)
    await client.connect()
    me, roster = await client.join(name)
    print(f"Joined as {me}. Online: {', '.join(roster) or 'nobody'}")

    async def printer() -> None:
        while True:
            message = await client.receive()
            if message is None:
                print("Relay closed the connection.")
                return
            print(format_event(message))

    reader_task = asyncio.create_task(printer())
    loop = asyncio.get_running_loop()
    try:
        while not reader_task.done():
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line.strip():
                break
            parsed = parse_input_line(line)
            if parsed is None:
                print("Type messages as  recipient: text")
                continue
            await client.send_text(*parsed)
    finally:
        reader_task.cancel()
        await asyncio.gather(reader_task, return_exceptions=True)
        await client.leave()


async def run_cli(args: argparse.Namespace, ssl_context=None) -> None:
    """
    One-shot commands:
      - members:  print who is online
      - send:     join, send one message, leave

    Both join as a regular session named --name (default "cli"), so online
    clients see it come and go and it takes an identifier number.
    """
    client = RelayClient(args.host, args.port, ssl_context=ssl_context)
    await client.connect()
    me, roster = await client.join(args.name or "cli")

    if args.command == "members":
        for identifier in roster:
            print(identifier)

    elif args.command == "send":
        if args.to not in roster:
            print(f"{args.to} is not online; the relay will drop the message.")
        await client.send_text(args.to, args.message)
        print(f"Sent as {me}")

    await client.leave()


# -------------------------
# Argument parsing
# -------------------------

def port_number(value: str) -> int:
    """argparse type for --port: an integer in 0..65535 (0 picks a free port)."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range 0-65535: {port}")
    return port


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Quick examples:
      Relay:        python -m chatrelay.run_relay --mode relay --port 9000
      Client:       python -m chatrelay.run_relay --mode client --name Ana --host 127.0.0.1
      CLI members:  python -m chatrelay.run_relay --mode cli --host 127.0.0.1 members
      CLI send:     python -m chatrelay.run_relay --mode cli --host 127.0.0.1 \
                        send --to "1 - Ana" hola
    """
    p = argparse.ArgumentParser(prog="chatrelay")
    p.add_argument(
        "--mode",
        choices=["relay", "client", "cli"],
        required=True,
        help="cli commands join briefly as --name (default \"cli\"); others see it join and leave",
    )
    p.add_argument("--host", default=config.HOST)
    p.add_argument("--port", type=port_number, default=config.PORT)
    p.add_argument("--name", help="display name for client/cli modes")
    p.add_argument("--tls", action="store_true", default=config.ENABLE_TLS)
    p.add_argument("--cert", default=config.CERT_FILE, help="relay certificate (PEM)")
    p.add_argument("--key", default=config.KEY_FILE, help="relay private key (PEM)")
    p.add_argument("--cafile", help="CA/cert file clients trust (defaults to --cert)")
    p.add_argument("--log-level", default=config.LOG_LEVEL)

    sub = p.add_subparsers(dest="command")
    sub.required = False

    sub.add_parser("members", help="join briefly, print who else is online, leave")

    sp = sub.add_parser("send", help="join briefly, send one message, leave")
    sp.add_argument("--to", required=True)
    sp.add_argument("message", nargs=argparse.REMAINDER)

    return p.parse_args(argv)


# -------------------------
# Main entrypoint
# -------------------------

def tls_context(args: argparse.Namespace) -> Optional[ssl.SSLContext]:
    """SSL context for the chosen mode, or None without --tls. Exits 1 if the files can't be loaded."""
    if not args.tls:
        return None
    try:
        if args.mode == "relay":
            return tls.server_context(args.cert, args.key)
        return tls.client_context(args.cafile or args.cert)
    except (OSError, ssl.SSLError) as exc:
        logger.error("Cannot load TLS files (run generate_cert.py or pass --cert/--key): %s", exc)
        raise SystemExit(1)


def main(argv: Optional[list] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=config.LOG_FORMAT)
    ctx = tls_context(args)

    try:
        if args.mode == "relay":
            asyncio.run(run_relay(args.host, args.port, ctx))

        else:
            if args.host == "0.0.0.0":
                args.host = "127.0.0.1"
            if args.mode == "client":
                if not args.name:
                    raise SystemExit("--name is required for client mode")
                asyncio.run(run_client(args.name, args.host, args.port, ctx))
            else:
                if args.command is None:
                    raise SystemExit("cli mode needs a command: members or send")
                if args.command == "send":
                    args.message = " ".join(args.message or [])
                asyncio.run(run_cli(args, ctx))
    except KeyboardInterrupt:
        logger.info("Stopped manually via KeyboardInterrupt.")


if __name__ == "__main__":
    main()
