"""
Infrastructure layer: lightweight reachability checks against the authority.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

import requests

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks whether the authority is reachable.

    Any HTTP answer counts as online; only a transport failure marks the
    authority offline. The license verdict cache is never touched here.
    """

    def __init__(
        self,
        ping_url: str,
        timeout: float = 5.0,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.ping_url = ping_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.is_online: bool = True
        self.last_checked: datetime | None = None

    def check(self) -> bool:
        """Ping the authority and update the online flag."""
        try:
            self.session.head(self.ping_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("Connectivity check failed: %s", e)
            self.mark_offline()
        else:
            self.mark_online()
        return self.is_online

    def mark_online(self) -> None:
        if not self.is_online:
            logger.info("Licensing authority reachable again")
        self.is_online = True
        self.last_checked = self.clock()

    def mark_offline(self) -> None:
        if self.is_online:
            logger.warning("Licensing authority unreachable")
        self.is_online = False
        self.last_checked = self.clock()

    @property
    def tooltip_text(self) -> str:
        if self.is_online:
            return "Connected to licensing server"
        return "Offline: using cached license state"
