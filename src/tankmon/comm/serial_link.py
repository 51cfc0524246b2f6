# tankmon/comm/serial_link.py
from __future__ import annotations

import json
import math
import threading
import time
from typing import Any, Callable, Dict, Optional

import serial
from serial.tools import list_ports

from ..config import SerialConfig
from ..helpers import log
from ..unit.state import MODES, SharedState


def parse_status_frame(line: str) -> Optional[Dict[str, Any]]:
    """
    Status line from the valve controller: {"mode": "AUTOMATIC", "valve": 50}.
    Returns only the recognised fields, or None if the line is not a status frame.
    """
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None

    out: Dict[str, Any] = {}
    mode = obj.get("mode")
    if isinstance(mode, str) and mode.upper() in MODES:
        out["mode"] = mode.upper()
    valve = obj.get("valve")
    # json.loads accepts NaN / Infinity literals
    if isinstance(valve, (int, float)) and not isinstance(valve, bool) and math.isfinite(valve):
        out["valve"] = int(round(valve))
    return out or None


def encode_command(cmd: str, value: Any = None) -> bytes:
    frame: Dict[str, Any] = {"cmd": cmd}
    if value is not None:
        frame["value"] = value
    return (json.dumps(frame) + "\n").encode("utf-8")


class ValveLink:
    """
    Point-to-point link to the valve controller (JSON lines).
    - send_*: callable from any thread, False when the frame was not written
    - run(): reader thread, writes confirmed valve position back to SharedState
    """

    def __init__(
        self,
        cfg: SerialConfig,
        state: SharedState,
        opener: Callable[[SerialConfig], Any] | None = None,
    ):
        self.cfg = cfg
        self.state = state
        self._opener = opener or self._open_port
        self._port: Any = None
        self._write_lock = threading.Lock()
        self._last_tx: float = 0.0

        self.controller_mode: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._port is not None

    @staticmethod
    def _open_port(cfg: SerialConfig) -> Any:
        return serial.serial_for_url(
            cfg.port,
            baudrate=cfg.baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=cfg.read_timeout_s,
        )

    # ======================================================
    # Egress
    # ======================================================
    def send_valve_command(self, pct: int) -> bool:
        ok = self._send(encode_command("set_valve", int(pct)))
        if ok:
            log(f"[SERIAL] sent valve command: {int(pct)}%")
        return ok

    def send_mode_command(self, mode: str) -> bool:
        ok = self._send(encode_command("set_mode", str(mode)))
        if ok:
            log(f"[SERIAL] sent mode command: {mode}")
        return ok

    def send_ping(self) -> bool:
        return self._send(encode_command("ping"))

    def _send(self, frame: bytes) -> bool:
        with self._write_lock:
            port = self._port
            if port is None:
                log("[SERIAL] cannot send, port not open")
                return False
            try:
                port.write(frame)
                port.flush()
            except (serial.SerialException, OSError) as e:
                log(f"[SERIAL] send failed: {e!r}")
                return False
            self._last_tx = time.monotonic()
            return True

    # ======================================================
    # Ingress (status frames)
    # ======================================================
    def handle_line(self, raw: bytes | str) -> bool:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.strip()
        if not line:
            return False

        status = parse_status_frame(line)
        if status is None:
            # loop:// and some adapters echo our own command frames back
            if not line.startswith('{"cmd"'):
                log(f"[SERIAL] ignored: {line[:80]}")
            return False

        if "mode" in status and status["mode"] != self.controller_mode:
            self.controller_mode = status["mode"]
            log(f"[SERIAL] valve controller mode: {self.controller_mode}")
        if "valve" in status:
            pct = self.state.set_valve_opening(status["valve"])
            log(f"[SERIAL] valve controller reports {pct}%")
        return True

    # ======================================================
    # Thread body
    # ======================================================
    def run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            if not self._try_open():
                stop_event.wait(self.cfg.reopen_delay_s)
                continue
            try:
                self._read_loop(stop_event)
            except (serial.SerialException, OSError) as e:
                log(f"[SERIAL] link error: {e!r}, reopening in {self.cfg.reopen_delay_s}s")
                self._close()
                stop_event.wait(self.cfg.reopen_delay_s)
        self._close()

    def _try_open(self) -> bool:
        try:
            port = self._opener(self.cfg)
        except (serial.SerialException, OSError, ValueError) as e:
            available = ", ".join(p.device for p in list_ports.comports()) or "none"
            log(f"[SERIAL] cannot open {self.cfg.port}: {e} (available: {available})")
            return False
        with self._write_lock:
            self._port = port
        log(f"[SERIAL] port opened: {self.cfg.port} @ {self.cfg.baudrate} baud")
        return True

    def _read_loop(self, stop_event: threading.Event) -> None:
        keepalive_s = self.cfg.keepalive_ms / 1000.0
        pending = b""
        while not stop_event.is_set():
            # readline gives up after read_timeout_s, possibly mid-line
            raw = self._port.readline()
            if raw:
                pending += raw
                if pending.endswith(b"\n"):
                    self.handle_line(pending)
                    pending = b""
            if keepalive_s > 0 and time.monotonic() - self._last_tx >= keepalive_s:
                self.send_ping()

    def _close(self) -> None:
        with self._write_lock:
            port = self._port
            self._port = None
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            log(f"[SERIAL] close failed: {e!r}")
        log("[SERIAL] port closed")
