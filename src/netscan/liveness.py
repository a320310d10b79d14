"""
Host liveness probes.

TCPProber decides liveness from a single non-blocking connect: a completed
handshake or an explicit refusal both prove a host is there. ICMPProber shells
out to the platform ping utility for hosts that answer nothing over TCP.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import math
import re
import socket
import sys
import time
from typing import Iterable, Optional

from . import addressing
from ._types import ProbeResult

logger = logging.getLogger(__name__)

DEFAULT_TCP_TIMEOUT = 0.4
DEFAULT_ICMP_TIMEOUT = 1.0

_ALIVE_ERRNOS = frozenset({errno.ECONNREFUSED})

_RTT_PATTERN = re.compile(r"time[=<]\s*([0-9.]+)\s*ms")


def classify_connect_error(exc: BaseException) -> bool:
    """
    Map a connect failure to a liveness verdict.

    A refusal means something answered with RST, so the host is alive.
    Timeouts, unreachable host/network and anything else count as dead.
    """
    if isinstance(exc, ConnectionRefusedError):
        return True
    if isinstance(exc, TimeoutError):
        return False
    if isinstance(exc, OSError):
        return exc.errno in _ALIVE_ERRNOS
    return False


def _elapsed_millis(start: float) -> float:
    return (time.monotonic() - start) * 1000.0


class TCPProber:
    """Single-connect TCP liveness probe."""

    def __init__(self, timeout: float = DEFAULT_TCP_TIMEOUT):
        self.timeout = timeout

    async def probe(self, ip: str, port: int = 80, timeout: Optional[float] = None) -> ProbeResult:
        """Connect once to ip:port and classify the outcome."""
        if addressing.parse(ip) is None:
            return ProbeResult.dead()

        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            logger.warning(f"Cannot create socket for {ip}:{port}: {e}")
            return ProbeResult.dead()

        sock.setblocking(False)
        start = time.monotonic()
        try:
            await asyncio.wait_for(loop.sock_connect(sock, (ip, port)), timeout)
        except (OSError, asyncio.TimeoutError) as e:
            if classify_connect_error(e):
                return ProbeResult(alive=True, rtt_millis=_elapsed_millis(start))
            return ProbeResult.dead()
        finally:
            sock.close()

        return ProbeResult(alive=True, rtt_millis=_elapsed_millis(start))

    async def probe_any(
        self,
        ip: str,
        ports: Iterable[int],
        timeout: Optional[float] = None,
    ) -> ProbeResult:
        """
        Probe ports in order and stop at the first alive answer.

        A host that only listens on a port late in the list costs one
        timeout per earlier port.
        """
        for port in ports:
            result = await self.probe(ip, port, timeout)
            if result.alive:
                logger.debug(f"{ip} answered on port {port}")
                return result
        return ProbeResult.dead()


def build_ping_command(host: str, timeout: float, platform: Optional[str] = None) -> list[str]:
    """Build a one-shot ping command line with a bounded wait."""
    platform = sys.platform if platform is None else platform
    if platform == "darwin":
        # BSD ping takes the wait in milliseconds
        wait = str(max(1, int(timeout * 1000)))
    else:
        wait = str(max(1, math.ceil(timeout)))
    return ["ping", "-c", "1", "-W", wait, host]


def parse_ping_rtt(output: str) -> Optional[float]:
    """Extract the round trip time in milliseconds from ping output."""
    match = _RTT_PATTERN.search(output)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


class ICMPProber:
    """ICMP echo probe via the system ping utility."""

    def __init__(self, timeout: float = DEFAULT_ICMP_TIMEOUT):
        self.timeout = timeout

    async def probe(self, host: str, timeout: Optional[float] = None) -> ProbeResult:
        timeout = self.timeout if timeout is None else timeout
        cmd = build_ping_command(host, timeout)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.warning("ping utility not found, ICMP probe unavailable")
            return ProbeResult.dead()
        except OSError as e:
            logger.error(f"Failed to run ping for {host}: {e}")
            return ProbeResult.dead()

        try:
            # Allow the utility a second beyond its own wait before giving up
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout + 1.0)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.debug(f"ping overran its deadline for {host}")
            return ProbeResult.dead()
        except asyncio.CancelledError:
            proc.kill()
            raise

        if proc.returncode != 0:
            return ProbeResult.dead()

        rtt = parse_ping_rtt(stdout.decode(errors="replace"))
        if rtt is None:
            logger.debug(f"Unparsable ping output for {host}")
            return ProbeResult.dead()

        return ProbeResult(alive=True, rtt_millis=rtt)
