"""Configuration schema and JSON validation helpers.

`load_config` validates and normalizes runtime settings from `config/config.json`
into an immutable `AppConfig`, so downstream modules can assume a coherent shape and
focus on behavior instead of defensive parsing.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import math
from typing import Any, Dict

from sheet.lifecycle import SheetOptions
from sheet.models import SheetGeometry


@dataclass(frozen=True)
class AppConfig:
    """
    Strongly-typed, validated application configuration loaded from a JSON file.

    Purpose:
    - Provide a single, immutable source of truth for runtime settings.
    - Perform validation once at startup so the rest of the code can assume correctness.

    Expected JSON structure (overview):

    {
      "server": { "host": "127.0.0.1", "port": 8736 },
      "sheet": {
        "halfway_ratio": 0.6,
        "minimized_height_px": 56,
        "velocity_threshold": 0.5,
        "distance_threshold_px": 20,
        "transition_ms": 500,
        "padding_px": 0,
        "velocity_window_ms": 100
      },
      "behavior": {
        "disable_backdrop": false,
        "click_outside_to_close": true,
        "escape_to_close": true,
        "disable_parent_scroll": true
      },
      "ui": {
        "window": { "width": 420, "height": 800 },
        "command_poll_ms": 250,
        "http_timeout_sec": 0.35,
        "history_seconds": 120
      }
    }
    """

    # -----------------------------
    # Server / API settings
    # -----------------------------
    server_host: str
    server_port: int

    # -----------------------------
    # Sheet geometry + gesture tuning
    # -----------------------------
    halfway_ratio: float
    minimized_height_px: float
    velocity_threshold: float
    distance_threshold_px: float
    transition_ms: int
    padding_px: float
    velocity_window_ms: float

    # -----------------------------
    # Sheet behavior (lifecycle plumbing, not the state machine)
    # -----------------------------
    disable_backdrop: bool
    click_outside_to_close: bool
    escape_to_close: bool
    disable_parent_scroll: bool

    # -----------------------------
    # UI host settings
    # -----------------------------
    window_width: int
    window_height: int
    command_poll_ms: int
    http_timeout_sec: float
    history_seconds: float

    def geometry_for(self, viewport_height: float) -> SheetGeometry:
        """Measure-once geometry for a sheet shown in a viewport of the given height."""
        return SheetGeometry.from_viewport(
            float(viewport_height),
            halfway_ratio=self.halfway_ratio,
            minimized_height=self.minimized_height_px,
            velocity_threshold=self.velocity_threshold,
            distance_threshold=self.distance_threshold_px,
            padding_px=self.padding_px,
        )

    def sheet_options(self) -> SheetOptions:
        return SheetOptions(
            disable_backdrop=self.disable_backdrop,
            click_outside_to_close=self.click_outside_to_close,
            escape_to_close=self.escape_to_close,
            disable_parent_scroll=self.disable_parent_scroll,
        )


def _require_obj(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    """
    Require `raw[key]` to exist and be a JSON object (dict).

    Used for top-level sections like "server", "sheet", "ui" so structural problems are
    caught early with clear, targeted errors.
    """
    v = raw.get(key)
    if not isinstance(v, dict):
        raise ValueError(f"Missing or invalid '{key}' object in config")
    return v


def _opt_obj(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Optional JSON object; missing/None => empty dict."""
    v = raw.get(key)
    if v is None:
        return {}
    if isinstance(v, dict):
        return v
    raise ValueError(f"Missing or invalid '{key}' object in config (expected object)")


def _require_num(v: Any, key: str) -> float:
    """
    Require a finite JSON number (int/float) and normalize to float.

    bool is rejected explicitly: JSON true/false would otherwise pass as 1/0.
    """
    if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(float(v)):
        raise ValueError(f"Missing or invalid '{key}' (expected number)")
    return float(v)


def _opt_num(v: Any, key: str, default: float) -> float:
    if v is None:
        return float(default)
    return _require_num(v, key)


def _require_str(v: Any, key: str) -> str:
    """
    Require a non-empty string.

    Returns the original string (not stripped); callers `.strip()` at assignment.
    """
    if not isinstance(v, str) or not v.strip():
        raise ValueError(f"Missing or invalid '{key}' (expected non-empty string)")
    return v


def _opt_bool(v: Any, key: str, default: bool) -> bool:
    """
    Optional boolean with default.

    Prevents accidental configs like "true"/"false" (strings) from silently passing.
    """
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    raise ValueError(f"Missing or invalid '{key}' (expected boolean)")


def _opt_int(v: Any, key: str, default: int) -> int:
    """
    Optional integer with default.

    Accepts int or float (JSON number) and converts to int; fractional values truncate.
    """
    if v is None:
        return default
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return int(v)
    raise ValueError(f"Missing or invalid '{key}' (expected number)")


def load_config(path: str) -> AppConfig:
    """
    Load and validate config from a JSON file and return an `AppConfig`.

    Validation strategy:
    - Strict about required sections: "server", "sheet", "ui".
    - Tolerant about "behavior": optional section with defaults if missing.
    - Applies basic constraints:
        - 0 < sheet.halfway_ratio <= 1
        - sheet.minimized_height_px > 0
        - thresholds, transition and padding >= 0
        - ui sizes and poll intervals > 0

    Raises:
        ValueError: missing keys, invalid types, or failed constraints.
        OSError: file cannot be opened/read.
        json.JSONDecodeError: invalid JSON.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw: Dict[str, Any] = json.load(f)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON object")

    server = _require_obj(raw, "server")
    sheet = _require_obj(raw, "sheet")
    ui = _require_obj(raw, "ui")
    behavior = _opt_obj(raw, "behavior")
    window = _require_obj(ui, "window")

    # ---- Server ----
    server_host = _require_str(server.get("host"), "server.host").strip()
    server_port = int(_require_num(server.get("port"), "server.port"))
    if not (0 < server_port < 65536):
        raise ValueError("server.port must be in [1, 65535]")

    # ---- Sheet ----
    halfway_ratio = _require_num(sheet.get("halfway_ratio"), "sheet.halfway_ratio")
    minimized_height_px = _require_num(sheet.get("minimized_height_px"), "sheet.minimized_height_px")
    velocity_threshold = _opt_num(sheet.get("velocity_threshold"), "sheet.velocity_threshold", 0.5)
    distance_threshold_px = _opt_num(sheet.get("distance_threshold_px"), "sheet.distance_threshold_px", 20.0)
    transition_ms = _opt_int(sheet.get("transition_ms"), "sheet.transition_ms", 500)
    padding_px = _opt_num(sheet.get("padding_px"), "sheet.padding_px", 0.0)
    velocity_window_ms = _opt_num(sheet.get("velocity_window_ms"), "sheet.velocity_window_ms", 100.0)

    if not (0.0 < halfway_ratio <= 1.0):
        raise ValueError("sheet.halfway_ratio must be in (0, 1]")
    if minimized_height_px <= 0:
        raise ValueError("sheet.minimized_height_px must be > 0")
    if velocity_threshold < 0:
        raise ValueError("sheet.velocity_threshold must be >= 0")
    if distance_threshold_px < 0:
        raise ValueError("sheet.distance_threshold_px must be >= 0")
    if transition_ms < 0:
        raise ValueError("sheet.transition_ms must be >= 0")
    if padding_px < 0:
        raise ValueError("sheet.padding_px must be >= 0")
    if velocity_window_ms <= 0:
        raise ValueError("sheet.velocity_window_ms must be > 0")

    # ---- Behavior ----
    disable_backdrop = _opt_bool(behavior.get("disable_backdrop"), "behavior.disable_backdrop", False)
    click_outside_to_close = _opt_bool(
        behavior.get("click_outside_to_close"), "behavior.click_outside_to_close", True
    )
    escape_to_close = _opt_bool(behavior.get("escape_to_close"), "behavior.escape_to_close", True)
    disable_parent_scroll = _opt_bool(
        behavior.get("disable_parent_scroll"), "behavior.disable_parent_scroll", True
    )

    # ---- UI host ----
    window_width = int(_require_num(window.get("width"), "ui.window.width"))
    window_height = int(_require_num(window.get("height"), "ui.window.height"))
    command_poll_ms = _opt_int(ui.get("command_poll_ms"), "ui.command_poll_ms", 250)
    http_timeout_sec = _opt_num(ui.get("http_timeout_sec"), "ui.http_timeout_sec", 0.35)
    history_seconds = _opt_num(ui.get("history_seconds"), "ui.history_seconds", 120.0)

    if window_width <= 0 or window_height <= 0:
        raise ValueError("ui.window width/height must be > 0")
    if command_poll_ms <= 0:
        raise ValueError("ui.command_poll_ms must be > 0")
    if http_timeout_sec <= 0:
        raise ValueError("ui.http_timeout_sec must be > 0")
    if history_seconds <= 0:
        raise ValueError("ui.history_seconds must be > 0")

    return AppConfig(
        server_host=server_host,
        server_port=server_port,
        halfway_ratio=halfway_ratio,
        minimized_height_px=minimized_height_px,
        velocity_threshold=velocity_threshold,
        distance_threshold_px=distance_threshold_px,
        transition_ms=transition_ms,
        padding_px=padding_px,
        velocity_window_ms=velocity_window_ms,
        disable_backdrop=disable_backdrop,
        click_outside_to_close=click_outside_to_close,
        escape_to_close=escape_to_close,
        disable_parent_scroll=disable_parent_scroll,
        window_width=window_width,
        window_height=window_height,
        command_poll_ms=command_poll_ms,
        http_timeout_sec=http_timeout_sec,
        history_seconds=history_seconds,
    )
