# tankmon/comm/mqtt_ingress.py
from __future__ import annotations

import json
import math
import threading
import time
from typing import Any, Optional

from paho.mqtt import client as mqtt

from ..config import MqttConfig
from ..helpers import log
from ..unit.modes import ModeController
from ..unit.state import SharedState


class TelemetryError(ValueError):
    pass


def parse_level(payload: bytes | str) -> float:
    """
    Level telemetry from the sensor unit:
      b"23.50"                      (plain number, what the firmware sends)
      b'{"level_cm": 23.5}'         (JSON object, "level" also accepted)
    """
    if isinstance(payload, bytes):
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise TelemetryError("payload is not UTF-8") from e
    else:
        text = payload
    text = text.strip()
    if not text:
        raise TelemetryError("empty payload")

    value: Any
    if text.startswith("{"):
        try:
            obj = json.loads(text)
        except json.JSONDecodeError as e:
            raise TelemetryError(f"bad JSON: {e.msg}") from e
        value = obj.get("level_cm", obj.get("level"))
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TelemetryError("no numeric level field")
    else:
        value = text

    try:
        level = float(value)
    except (TypeError, ValueError) as e:
        raise TelemetryError(f"not a number: {text[:40]!r}") from e

    if not math.isfinite(level):
        raise TelemetryError(f"not a finite level: {text[:40]!r}")
    return level


class LevelIngress:
    """
    Subscribes to the level topic and forwards readings into SharedState.
    Malformed payloads are logged and dropped without touching state.
    Reconnects are left to paho's own loop.
    """

    def __init__(self, cfg: MqttConfig, state: SharedState, modes: ModeController):
        self.cfg = cfg
        self.state = state
        self.modes = modes
        self.received: int = 0
        self.rejected: int = 0
        self._client: Optional[mqtt.Client] = None

    # ======================================================
    # Message handling (also used directly by tests)
    # ======================================================
    def handle_payload(self, topic: str, payload: bytes | str) -> bool:
        try:
            level = parse_level(payload)
        except TelemetryError as e:
            self.rejected += 1
            log(f"[MQTT] invalid message on {topic}: {e}")
            return False

        self.received += 1
        self.state.set_level(level)
        # any reading while UNCONNECTED is the recovery path
        self.modes.on_telemetry()
        return True

    # ======================================================
    # paho callbacks (API v2)
    # ======================================================
    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            log(f"[MQTT] connect refused: {reason_code}")
            return
        client.subscribe(self.cfg.level_topic, qos=1)
        log(f"[MQTT] connected mqtt://{self.cfg.host}:{self.cfg.port}, subscribed {self.cfg.level_topic}")

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        log(f"[MQTT] disconnected: {reason_code}")

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self.handle_payload(msg.topic, msg.payload)

    # ======================================================
    # Thread body
    # ======================================================
    def build_client(self) -> mqtt.Client:
        client_id = self.cfg.client_id or f"tankmon_{int(time.time())}"
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.reconnect_delay_set(min_delay=1, max_delay=30)
        return client

    def run(self, stop_event: threading.Event) -> None:
        client = self.build_client()
        self._client = client
        log(f"[MQTT] connecting to mqtt://{self.cfg.host}:{self.cfg.port}")
        try:
            client.connect_async(self.cfg.host, self.cfg.port, keepalive=self.cfg.keepalive_s)
            client.loop_start()
            stop_event.wait()
        finally:
            client.disconnect()
            client.loop_stop()
            self._client = None
            log("[MQTT] stopped")
