# tankmon/app.py - control unit wiring (MQTT level in, serial valve out, HTTP operator panel)
from __future__ import annotations

import signal
import threading
from typing import List

from .api.http import OperatorApi
from .comm.mqtt_ingress import LevelIngress
from .comm.serial_link import ValveLink
from .config import UnitConfig, config_from_args, parse_args
from .helpers import log
from .unit.control_loop import ControlLoop
from .unit.modes import ModeController
from .unit.operator import OperatorDesk
from .unit.state import SharedState


class ControlUnit:
    """
    One SharedState, four threads:
      mqtt-ingress  -> level telemetry in
      serial-link   -> valve commands out, controller status in
      http-api      -> operator panel
      control-loop  -> watchdog + policy every tick
    """

    def __init__(self, cfg: UnitConfig | None = None):
        self.cfg = cfg or UnitConfig()
        self.stop_event = threading.Event()

        self.state = SharedState(history_size=self.cfg.control.history_size)
        self.link = ValveLink(self.cfg.serial, self.state)
        self.modes = ModeController(self.state, self.link)
        # loop and operator never command the valve at the same time
        self.actuation_lock = threading.Lock()
        self.loop = ControlLoop(
            self.state, self.link, self.cfg.control, modes=self.modes, actuation_lock=self.actuation_lock
        )
        self.ingress = LevelIngress(self.cfg.mqtt, self.state, self.modes)
        self.desk = OperatorDesk(
            self.state, self.modes, self.link, self.cfg.control, actuation_lock=self.actuation_lock
        )
        self.api = OperatorApi(self.cfg.http, self.desk)

        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        for name, target in (
            ("serial-link", self.link.run),
            ("mqtt-ingress", self.ingress.run),
            ("http-api", self.api.run),
        ):
            t = threading.Thread(target=target, args=(self.stop_event,), name=name, daemon=True)
            t.start()
            self._threads.append(t)
            log(f"[MAIN] {name} started")

        self.loop.start()
        log("[MAIN] control-loop started")

    def wait(self) -> None:
        # short waits keep the main thread responsive to signals
        while not self.stop_event.wait(0.2):
            pass

    def stop(self, timeout_s: float = 3.0) -> None:
        self.stop_event.set()
        self.loop.stop(timeout_s)
        for t in self._threads:
            t.join(timeout_s)
            if t.is_alive():
                log(f"[MAIN] {t.name} did not stop within {timeout_s}s")
        log("[MAIN] stopped")


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(*_):
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: list[str] | None = None) -> None:
    cfg = config_from_args(parse_args(argv))
    unit = ControlUnit(cfg)
    install_signal_handlers(unit.stop_event)

    c = cfg.control
    log(f"[MAIN] L1={c.l1_cm} cm L2={c.l2_cm} cm T1={c.t1_ms} ms T2={c.t2_ms} ms history={c.history_size}")
    log(f"[MAIN] mqtt://{cfg.mqtt.host}:{cfg.mqtt.port}/{cfg.mqtt.level_topic} serial={cfg.serial.port}@{cfg.serial.baudrate}")

    unit.start()
    try:
        unit.wait()
    except KeyboardInterrupt:
        pass
    finally:
        unit.stop()


if __name__ == "__main__":
    main()
