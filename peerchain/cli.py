"""Command line peer: reads commands from stdin and talks to peers over UDP multicast."""

from __future__ import annotations

import argparse
import json
import logging
import socket
import struct
import sys
import threading
import time
from typing import Any, Callable, Iterable

from peerchain.p2p import Node, Topic

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "239.255.42.99"
DEFAULT_PORT = 47200
_MAX_DATAGRAM = 65507


class UdpTransport:
    """Publishes topic messages to a multicast group and discovers peers there."""

    def __init__(
        self,
        peer_id: str,
        *,
        group: str = DEFAULT_GROUP,
        port: int = DEFAULT_PORT,
        on_message: Callable[[str, Topic, str], None] | None = None,
        on_discovered: Callable[[list[str]], None] | None = None,
        on_expired: Callable[[list[str]], None] | None = None,
        sock: Any = None,
    ) -> None:
        self.peer_id = peer_id
        self.group = group
        self.port = port
        self.on_message = on_message
        self.on_discovered = on_discovered
        self.on_expired = on_expired
        self._sock = sock
        self._closed = threading.Event()
        self._thread: threading.Thread | None = None
        self._known: set[str] = set()

    def __enter__(self) -> UdpTransport:
        if self._thread is None:
            self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def start(self) -> None:
        """Open the socket, start receiving and announce this peer."""
        if self._thread is not None or self._closed.is_set():
            raise RuntimeError("transport already started or closed")
        if self._sock is None:
            self._sock = self._open_socket()
        self._thread = threading.Thread(target=self._receive_loop, daemon=True)
        self._thread.start()
        self._send("hello")

    def publish(self, topic: Topic | str, payload: str | bytes) -> None:
        """Send a payload on a topic to every peer."""
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        self._send("message", topic=Topic(topic).value, data=payload)

    def close(self) -> None:
        """Say goodbye, stop receiving and release the socket."""
        if self._closed.is_set():
            return
        if self._sock is not None:
            try:
                self._send("bye")
            except (OSError, RuntimeError, ValueError):
                pass
        self._closed.set()
        if self._thread is not None:
            self._thread.join()
        if self._sock is not None:
            self._sock.close()

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", self.port))
        membership = struct.pack("4sl", socket.inet_aton(self.group), socket.INADDR_ANY)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 1)
        sock.settimeout(0.5)
        return sock

    def _send(self, kind: str, **fields: str) -> None:
        if self._sock is None or self._closed.is_set():
            raise RuntimeError("transport is not open")
        data = json.dumps(
            {"kind": kind, "source": self.peer_id, **fields}, ensure_ascii=False
        ).encode("utf-8")
        if len(data) > _MAX_DATAGRAM:
            raise ValueError("message is too large for one datagram")
        self._sock.sendto(data, (self.group, self.port))

    def _receive_loop(self) -> None:
        while not self._closed.is_set():
            try:
                raw, _address = self._sock.recvfrom(_MAX_DATAGRAM)
            except TimeoutError:
                continue
            except OSError:
                break
            try:
                self._dispatch(raw)
            except Exception:
                logger.exception("Failed to handle incoming datagram")

    def _dispatch(self, raw: bytes) -> None:
        try:
            envelope = json.loads(raw)
        except ValueError:
            return
        if not isinstance(envelope, dict):
            return
        source, kind = envelope.get("source"), envelope.get("kind")
        if not isinstance(source, str) or source == self.peer_id:
            return

        if kind == "bye":
            if source in self._known:
                self._known.discard(source)
                if self.on_expired is not None:
                    self.on_expired([source])
            return

        if source not in self._known:
            self._known.add(source)
            if self.on_discovered is not None:
                self.on_discovered([source])
            if kind == "hello":
                self._send("hello")

        if kind != "message":
            return
        try:
            topic = Topic(envelope.get("topic"))
        except ValueError:
            return
        data = envelope.get("data")
        if isinstance(data, str) and self.on_message is not None:
            self.on_message(source, topic, data)


def handle_command(node: Node, line: str) -> list[tuple[Topic, str]]:
    """Carry out one user command; return the messages it wants published."""
    if line == "ls p":
        for peer in node.peers():
            print(peer)
    elif line.startswith("ls c"):
        print(json.dumps([block.to_dict() for block in node.app.blocks], indent=2))
    elif line.startswith("create b"):
        block = node.create_block(line[len("create b"):])
        logger.info("Broadcasting new block")
        return [(Topic.BLOCK, json.dumps(block.to_dict(), ensure_ascii=False))]
    else:
        logger.error("Unknown command")
    return []


def run(node: Node, transport: Any, lines: Iterable[str]) -> None:
    """Send the initial chain request, then process command lines."""
    request = node.initial_request()
    if request is not None:
        transport.publish(Topic.CHAIN, request.to_json())
    for line in lines:
        for topic, payload in handle_command(node, line.rstrip("\r\n")):
            transport.publish(topic, payload)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="peerchain", description="Run a chain peer.")
    parser.add_argument("--group", default=DEFAULT_GROUP, help="multicast group")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="UDP port")
    parser.add_argument("--peer-id", default=None, help="identifier of this peer")
    parser.add_argument(
        "--startup-delay", type=float, default=1.0, help="seconds to wait for peers"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    node = Node(peer_id=args.peer_id)
    logger.info("Peer id: %s", node.peer_id)

    transport = UdpTransport(
        node.peer_id,
        group=args.group,
        port=args.port,
        on_discovered=node.discovered,
        on_expired=node.expired,
    )

    def on_message(source: str, topic: Topic, payload: str) -> None:
        response = node.handle_message(source, payload)
        if response is not None:
            transport.publish(Topic.CHAIN, response.to_json())

    transport.on_message = on_message
    with transport:
        time.sleep(args.startup_delay)
        logger.info("Sending init event")
        try:
            run(node, transport, sys.stdin)
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())