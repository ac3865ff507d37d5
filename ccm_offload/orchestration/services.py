from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from ccm_offload.adapters.windows_host import HostOperations

logger = logging.getLogger(__name__)

MANAGED_SERVICES: tuple[str, ...] = ("CcmExec", "BITS", "wuauserv", "CryptSvc")
DEFAULT_SETTLE_SECONDS = 5.0


class ServiceController:
    """Stops the services holding the managed folders open, once per run.

    The controller remembers whether it stopped anything so that the services
    are restarted only when this run took them down.
    """

    def __init__(
        self,
        host: HostOperations,
        *,
        services: Sequence[str] = MANAGED_SERVICES,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.host = host
        self.services = tuple(services)
        self.settle_seconds = settle_seconds
        self._sleep = sleep
        self._stopped = False
        self._restarted = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def restarted(self) -> bool:
        return self._restarted

    def stop_if_running(self) -> None:
        if self._stopped:
            return
        self.host.stop_services(self.services, force=True)
        self._stopped = True
        logger.info("Stopped %s; waiting %.1fs for handles to close", ", ".join(self.services), self.settle_seconds)
        self._sleep(self.settle_seconds)

    def start_if_stopped(self) -> None:
        if not self._stopped or self._restarted:
            return
        self.host.start_services(self.services)
        self._restarted = True
        logger.info("Restarted %s", ", ".join(self.services))
