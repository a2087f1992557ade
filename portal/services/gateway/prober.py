"""
Liveness Prober
---------------
Best-effort reachability check of hostname:port.

A probe is a bounded TCP connect (plus a TLS handshake when use_tls is set).
A completed connection counts as reachable no matter what the application
behind it would answer. Refusal, timeout, DNS failure, TLS failure and bad
input all resolve to UNREACHABLE - probe() never raises.

Name resolution ignores socket timeouts, so every attempt runs on a worker
thread and is awaited with a deadline. A thread stuck in the resolver is
abandoned (never joined); its result is discarded.

TLS certificates are not verified: Cockpit hosts routinely serve self-signed
certificates, and this is a liveness check, not an authenticity check.
"""

import enum
import math
import socket
import ssl
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Hashable, Iterable, NamedTuple

import structlog

from portal.services.shared.config import DEFAULT_PROBE_TIMEOUT_MS, DEFAULT_PROBE_WORKERS

logger = structlog.get_logger()

# scheduling allowance on top of the probe timeout
DEADLINE_SLACK_S = 0.05


class ProbeResult(str, enum.Enum):
    reachable   = "reachable"
    unreachable = "unreachable"

    @property
    def status(self) -> str:
        """Status label shown next to an endpoint in listings."""
        return "online" if self is ProbeResult.reachable else "offline"


class ProbeTarget(NamedTuple):
    key:      Hashable
    hostname: str
    port:     int
    use_tls:  bool = False


def _tls_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class LivenessProber:
    def __init__(
        self,
        timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
        max_workers: int = DEFAULT_PROBE_WORKERS,
    ):
        self.timeout = timeout_ms / 1000.0
        self.max_workers = max_workers

    @property
    def deadline(self) -> float:
        """Longest a single attempt is waited for, in seconds."""
        return self.timeout + DEADLINE_SLACK_S

    def check(self, hostname: str, port: int, use_tls: bool = False) -> ProbeResult:
        """
        One connection attempt on the calling thread. Connect and handshake
        share the timeout budget; resolution is only bounded by the caller.
        """
        started = time.monotonic()
        try:
            with socket.create_connection((hostname, port), timeout=self.timeout) as sock:
                if use_tls:
                    remaining = self.timeout - (time.monotonic() - started)
                    if remaining <= 0:
                        raise socket.timeout("probe budget spent before TLS handshake")
                    sock.settimeout(remaining)
                    with _tls_context().wrap_socket(sock, server_hostname=hostname):
                        pass
            return ProbeResult.reachable
        except (OSError, ValueError, TypeError, OverflowError, UnicodeError) as exc:
            # OSError covers refusal, timeouts, DNS (gaierror) and ssl.SSLError
            logger.debug(
                "probe_unreachable",
                hostname=hostname,
                port=port,
                use_tls=use_tls,
                error=type(exc).__name__,
            )
            return ProbeResult.unreachable

    def probe(self, hostname: str, port: int, use_tls: bool = False) -> ProbeResult:
        """Attempt one time-bounded connection to hostname:port."""
        return self.probe_many([ProbeTarget(hostname, hostname, port, use_tls)])[hostname]

    def probe_many(self, targets: Iterable[ProbeTarget]) -> dict[Hashable, ProbeResult]:
        """
        Probe several targets concurrently.
        Each result is independent: a failing or slow target only affects its
        own entry. The pool is sized to the target count (up to max_workers),
        so the call returns within one deadline per pool round.
        """
        targets = list(targets)
        if not targets:
            return {}

        workers = max(1, min(self.max_workers, len(targets)))
        rounds = math.ceil(len(targets) / workers)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe")
        try:
            futures = {
                t.key: pool.submit(self.check, t.hostname, t.port, t.use_tls)
                for t in targets
            }
            done, _ = wait(futures.values(), timeout=self.deadline * rounds)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        results: dict[Hashable, ProbeResult] = {}
        for key, future in futures.items():
            if future not in done:
                logger.warning("probe_deadline_exceeded", key=key, deadline_s=self.deadline)
                results[key] = ProbeResult.unreachable
                continue
            try:
                results[key] = future.result()
            except Exception as exc:
                logger.error("probe_failed", key=key, error=str(exc))
                results[key] = ProbeResult.unreachable
        return results
