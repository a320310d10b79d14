"""
UDP multicast request/response plumbing shared by SSDP and WS-Discovery.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Iterable

logger = logging.getLogger(__name__)

MULTICAST_TTL = 2

Reply = tuple[bytes, tuple[str, int]]


class ReplyCollector(asyncio.DatagramProtocol):
    """Queues every datagram received on the endpoint."""

    def __init__(self):
        self.replies: asyncio.Queue[Reply] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.replies.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"Multicast socket error: {exc}")


def _multicast_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, MULTICAST_TTL)
    sock.setblocking(False)
    sock.bind(("0.0.0.0", 0))
    return sock


async def send_and_collect(
    group: str,
    port: int,
    payloads: Iterable[bytes],
    timeout: float,
) -> list[Reply]:
    """
    Send each payload to group:port, then collect replies until the deadline.

    Raises OSError if the socket cannot be set up; callers log and move on.
    """
    loop = asyncio.get_running_loop()
    sock = _multicast_socket()
    transport, protocol = await loop.create_datagram_endpoint(ReplyCollector, sock=sock)

    replies: list[Reply] = []
    try:
        for payload in payloads:
            transport.sendto(payload, (group, port))

        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                reply = await asyncio.wait_for(protocol.replies.get(), remaining)
            except asyncio.TimeoutError:
                break
            replies.append(reply)
    finally:
        transport.close()

    return replies
