"""FastAPI application assembly and server-thread launcher.

This module exposes the runtime API used to observe and drive the bottom sheet from
outside the Qt process. Endpoints are intentionally thin and delegate state ownership
to `SheetStatusStore`.
"""

from __future__ import annotations

import threading
from typing import Any

import uvicorn
from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from server.status_store import VISIBILITY_ACTIONS, SheetStatusStore
from sheet.models import PanelState


def create_app(store: SheetStatusStore) -> FastAPI:
    """
    Build the FastAPI application.

    Endpoints:
        GET  /status            latest panel status
        GET  /history           recent state transitions
        GET  /panel?after=N     latest command + queued commands newer than N (polled by the Qt host)
        POST /panel/state       {"state": "expanded"|"halfway"|"minimized"}
        POST /panel/visibility  {"action": "show"|"hide"|"cancel"}
        POST /quit              request application shutdown
    """
    app = FastAPI()

    @app.get("/status")
    async def status() -> JSONResponse:
        return JSONResponse(store.get_payload())

    @app.get("/history")
    async def history() -> JSONResponse:
        return JSONResponse(
            {"history": store.get_history(), "history_seconds": store.get_history_seconds()}
        )

    @app.get("/panel")
    async def get_panel_command(after: int = 0) -> JSONResponse:
        """
        Output JSON:
          { "seq": int, "state": str | null, "action": str | null,
            "commands": [ {"seq", "state", "action"}, ... ] }

        Top-level fields describe the latest command; `commands` lists every queued
        command with seq > after, oldest first.
        """
        payload = store.get_command()
        payload["commands"] = store.get_commands(after)
        return JSONResponse(payload)

    @app.post("/panel/state")
    async def post_panel_state(body: dict[str, Any] = Body(default={})) -> JSONResponse:
        """
        Request a state change. The Qt host applies it on its next poll.

        Input JSON:
          { "state": "expanded" | "halfway" | "minimized" }
        """
        try:
            state = PanelState.parse(body.get("state"))
        except ValueError:
            allowed = ", ".join(s.value for s in PanelState)
            return JSONResponse({"error": f"state must be one of: {allowed}"}, status_code=400)
        return JSONResponse(store.request_state(state))

    @app.post("/panel/visibility")
    async def post_panel_visibility(body: dict[str, Any] = Body(default={})) -> JSONResponse:
        action = body.get("action")
        if not isinstance(action, str) or action.strip().lower() not in VISIBILITY_ACTIONS:
            allowed = ", ".join(VISIBILITY_ACTIONS)
            return JSONResponse({"error": f"action must be one of: {allowed}"}, status_code=400)
        return JSONResponse(store.request_visibility(action))

    @app.post("/quit")
    async def quit_app() -> JSONResponse:
        """
        Request application shutdown.

        The server itself does not exit the process; it signals via the store so the main
        loop can perform a clean shutdown.
        """
        store.request_quit()
        return JSONResponse({"ok": True})

    return app


def run_server_in_thread(*, host: str, port: int, store: SheetStatusStore) -> threading.Thread:
    """
    Run the FastAPI server in a background daemon thread.

    `log_level="error"` keeps console noise low; shutdown is coordinated through
    SheetStatusStore.quit_requested in the main thread.
    """
    app = create_app(store)

    def _run() -> None:
        uvicorn.run(app, host=host, port=port, log_level="error")

    t = threading.Thread(target=_run, name="sheet-server", daemon=True)
    t.start()
    print("[server]", "listening", f"http://{host}:{int(port)}", flush=True)
    return t
