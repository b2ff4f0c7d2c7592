# ui/panel_sync.py
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

import httpx
from PySide6.QtCore import QObject, QTimer, Signal


class PanelCommandPoller(QObject):
    """
    Periodically polls the panel command endpoint and emits new commands.

    Current contract:
    - GET <url>?after=<last seq> returns JSON like:
        {"seq": 3, "state": "expanded", "action": null, "commands": [...]}
      where `commands` lists every queued command newer than `after`.
    - Every command newer than the last seq seen is emitted, oldest first, so a "show"
      followed by a "state" between two polls arrives as two signals.
    - The first successful poll only records the baseline seq, so commands issued
      before the UI started are not replayed.

    Threading model:
    - QTimer runs on the Qt/UI thread and triggers poll().
    - Each poll spawns a short-lived daemon worker thread for the HTTP request so the UI
      thread never blocks on network I/O.
    - A lock + _in_flight flag prevents overlapping requests.

    Failure behavior:
    - Any network/JSON/validation error results in a no-op.
    """

    # Emitted with the command dict ({"seq", "state", "action"}) when a new one arrives.
    commandReceived = Signal(dict)

    def __init__(
        self,
        *,
        url: str,
        poll_ms: int,
        timeout_sec: float,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)

        # Empty URL disables polling.
        self._url = str(url).strip()
        self._poll_ms = int(poll_ms)
        self._timeout_sec = float(timeout_sec)

        self._lock = threading.Lock()
        self._in_flight = False

        # None means "never succeeded"; the first success only sets the baseline.
        self._last_seq: Optional[int] = None

        self._timer = QTimer(self)
        self._timer.setInterval(self._poll_ms)
        self._timer.timeout.connect(self.poll)  # type: ignore[arg-type]

    def start(self) -> None:
        if not self._url:
            return
        self._timer.start()
        self.poll()

    def stop(self) -> None:
        self._timer.stop()

    def poll(self) -> None:
        """
        Trigger a single poll. Dropped if a request is already in flight.
        """
        if not self._url:
            return

        with self._lock:
            if self._in_flight:
                return
            self._in_flight = True
            params = {"after": self._last_seq} if self._last_seq is not None else None

        url = self._url
        timeout_sec = self._timeout_sec

        def worker() -> None:
            try:
                with httpx.Client(timeout=timeout_sec) as client:
                    res = client.get(url, params=params, headers={"Cache-Control": "no-store"})
                    res.raise_for_status()
                    data = res.json()
            except (httpx.HTTPError, ValueError):
                data = None

            with self._lock:
                self._in_flight = False
            for cmd in self.take_new(data):
                self.commandReceived.emit(cmd)

        threading.Thread(target=worker, name="panel-command-poll", daemon=True).start()

    def take_new(self, data: Any) -> List[Dict[str, Any]]:
        """
        Advance the last-seen seq from one /panel payload and return the commands to apply.

        Falls back to the latest command alone when the queue has nothing newer but the
        seq moved (server restarted, or the poller fell behind the backlog).
        """
        latest = parse_command(data)
        if latest is None:
            return []

        with self._lock:
            last = self._last_seq
            self._last_seq = latest["seq"]
        if last is None or latest["seq"] == last:
            return []

        queued = data.get("commands") if isinstance(data, dict) else None
        fresh: List[Dict[str, Any]] = []
        if isinstance(queued, list):
            for raw in queued:
                cmd = parse_command(raw)
                if cmd is not None and cmd["seq"] > last:
                    fresh.append(cmd)
        fresh.sort(key=lambda c: c["seq"])
        return fresh or [latest]


def parse_command(data: Any) -> Optional[Dict[str, Any]]:
    """
    Validate a command payload; return a clean dict or None.

    Shape: {"seq": int, "state": str | None, "action": str | None}
    """
    if not isinstance(data, dict):
        return None
    seq = data.get("seq")
    if isinstance(seq, bool) or not isinstance(seq, int):
        return None
    state = data.get("state")
    action = data.get("action")
    return {
        "seq": seq,
        "state": state if isinstance(state, str) else None,
        "action": action if isinstance(action, str) else None,
    }
