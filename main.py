"""Application composition root for the bottom sheet demo.

This module wires together all subsystems:
- Config loading
- Shared status store
- FastAPI server thread
- Qt host window with the bottom sheet

The goal is to keep cross-component lifecycle management in one place so the rest of
the codebase can remain focused on single responsibilities.
"""

from __future__ import annotations

import argparse
import threading
import traceback

from config.config import load_config
from server.server import run_server_in_thread
from server.status_store import SheetStatusStore
from ui.sheet_host import run_sheet_ui


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="bottomsheet")
    p.add_argument("--config", default="./config/config.json", help="Path to config.json.")
    p.add_argument("--no-server", action="store_true", help="Do not start the HTTP status/command server.")
    p.add_argument("--hidden", action="store_true", help="Start with the sheet closed.")
    return p.parse_args()


def main() -> int:
    """
    Application entry point.

    High-level responsibilities:
    - Load config (server, sheet geometry/thresholds, behavior flags, UI settings).
    - Start the HTTP server that exposes sheet status and accepts remote commands.
    - Run the host window (Qt event loop) in the main thread.
    - Coordinate shutdown across server/UI threads via a shared quit flag.
    """
    args = _parse_args()

    cfg = load_config(args.config)

    # Store is shared by:
    # - Qt thread (writer: frames, transitions)
    # - HTTP server (reader + command writer)
    # - quit watcher (reader)
    store = SheetStatusStore(history_seconds=cfg.history_seconds)

    server_base_url = ""
    if not args.no_server:
        _server_thread = run_server_in_thread(host=cfg.server_host, port=cfg.server_port, store=store)

        # If server binds to 0.0.0.0, UI cannot call "http://0.0.0.0:PORT"; use loopback instead.
        server_host_for_ui = "127.0.0.1" if cfg.server_host == "0.0.0.0" else str(cfg.server_host)
        server_base_url = f"http://{server_host_for_ui}:{int(cfg.server_port)}"

    # Quit coordination primitive used across threads:
    # - UI sets it on close
    # - quit watcher sets it when /quit is requested
    quit_flag = threading.Event()

    def on_close() -> None:
        quit_flag.set()
        try:
            store.request_quit()
        except Exception:
            traceback.print_exc()

    def quit_watcher() -> None:
        """Bridge server quit requests (POST /quit) into quit_flag."""
        while not quit_flag.is_set():
            try:
                if store.quit_requested():
                    quit_flag.set()
                    break
            except Exception:
                traceback.print_exc()

            # Wait with timeout so we can respond quickly without busy looping.
            quit_flag.wait(0.1)

    threading.Thread(target=quit_watcher, name="quit-watcher", daemon=True).start()

    # Blocks until the window closes / app quits.
    run_sheet_ui(
        cfg=cfg,
        store=store,
        quit_flag=quit_flag,
        on_close=on_close,
        server_base_url=server_base_url,
        show_on_start=not args.hidden,
    )

    quit_flag.set()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
