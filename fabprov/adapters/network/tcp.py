"""
TCP reachability adapter — the ``nc -z host port`` check.
"""

from __future__ import annotations

import logging
import socket

from fabprov.adapters.base import ReachabilityProbe

logger = logging.getLogger(__name__)


class TcpProbeAdapter(ReachabilityProbe):
    @property
    def name(self) -> str:
        return "tcp"

    def is_available(self) -> bool:
        return True

    def reachable(self, host: str, port: int, timeout: float = 2.0) -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout):
                return True
        except OSError as e:
            logger.debug("%s:%d not reachable: %s", host, port, e)
            return False
