from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict

logger = logging.getLogger("assetpro.monitor")


class ConnectionMonitor:
    """Polls the persistence health probe on a background thread."""

    def __init__(self, probe: Callable[[], bool], *, interval_sec: int = 10, enabled: bool = True) -> None:
        self._probe = probe
        self.interval_sec = max(1, int(interval_sec))
        self.enabled = enabled
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._state: Dict[str, Any] = {
            "enabled": enabled,
            "interval_sec": self.interval_sec,
            "connected": None,
            "last_checked_at": "",
            "check_count": 0,
        }

    def check_now(self) -> bool:
        try:
            ok = bool(self._probe())
        except Exception:
            logger.exception("Connection probe raised")
            ok = False
        with self._state_lock:
            prev = self._state["connected"]
            self._state["connected"] = ok
            self._state["last_checked_at"] = datetime.now().replace(microsecond=0).isoformat(sep=" ")
            self._state["check_count"] += 1
        if prev is not ok:
            if ok:
                logger.info("Persistence store reachable")
            else:
                logger.warning("Persistence store unreachable")
        return ok

    def status(self) -> Dict[str, Any]:
        with self._state_lock:
            out = dict(self._state)
        out["running"] = self._thread is not None and self._thread.is_alive()
        return out

    def _loop(self) -> None:
        logger.info("Connection monitor started (every %ss)", self.interval_sec)
        while not self._stop_event.is_set():
            self.check_now()
            if self._stop_event.wait(self.interval_sec):
                break
        logger.info("Connection monitor stopped")

    def start(self) -> None:
        if not self.enabled:
            logger.info("Connection monitor disabled by ASSETPRO_HEALTH_MONITOR_ENABLED")
            return
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="assetpro-connection-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=5)
        self._thread = None
