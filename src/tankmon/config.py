# tankmon/config.py
from __future__ import annotations

import argparse
from dataclasses import dataclass, field


class ConfigError(ValueError):
    pass


@dataclass
class ControlConfig:
    # =========================
    # Level thresholds (cm)
    # =========================
    l1_cm: float = 20.0          # <= L1 -> valve closed
    l2_cm: float = 40.0          # >= L2 -> valve fully open, no debounce

    # =========================
    # Timing (ms)
    # =========================
    t1_ms: int = 10_000          # time inside (L1, L2) before opening at 50%
    t2_ms: int = 10_000          # sensor silence before UNCONNECTED
    tick_ms: int = 500           # control loop period

    # =========================
    # Valve targets (%)
    # =========================
    closed_pct: int = 0
    mid_pct: int = 50
    full_pct: int = 100

    history_size: int = 100

    def __post_init__(self) -> None:
        if self.l1_cm >= self.l2_cm:
            raise ConfigError(f"L1 ({self.l1_cm}) must be below L2 ({self.l2_cm})")
        if self.t1_ms < 0:
            raise ConfigError("T1 must be >= 0")
        if self.t2_ms <= 0 or self.tick_ms <= 0:
            raise ConfigError("T2 and tick period must be > 0")
        if self.history_size <= 0:
            raise ConfigError("history size must be > 0")


@dataclass
class MqttConfig:
    host: str = "127.0.0.1"
    port: int = 1883
    level_topic: str = "tank/level"
    client_id: str = ""          # empty -> generated at connect
    keepalive_s: int = 20


@dataclass
class SerialConfig:
    port: str = "/dev/ttyACM0"   # any pyserial URL works, e.g. loop://
    baudrate: int = 9600
    read_timeout_s: float = 0.2
    keepalive_ms: int = 2000     # 0 disables the ping frame
    reopen_delay_s: float = 2.0


@dataclass
class HttpConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class UnitConfig:
    control: ControlConfig = field(default_factory=ControlConfig)
    mqtt: MqttConfig = field(default_factory=MqttConfig)
    serial: SerialConfig = field(default_factory=SerialConfig)
    http: HttpConfig = field(default_factory=HttpConfig)


# ============================================================
# CLI
# ============================================================
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Tank monitoring control unit (MQTT level in, serial valve out, HTTP panel)")

    g = p.add_argument_group("control")
    g.add_argument("--l1", type=float, default=20.0, help="L1 level threshold (cm)")
    g.add_argument("--l2", type=float, default=40.0, help="L2 critical level threshold (cm)")
    g.add_argument("--t1", type=int, default=10_000, help="T1: time above L1 before 50%% opening (ms)")
    g.add_argument("--t2", type=int, default=10_000, help="T2: sensor silence before UNCONNECTED (ms)")
    g.add_argument("--tick", type=int, default=500, help="Control loop period (ms)")
    g.add_argument("--history", type=int, default=100, help="Level history size")

    g = p.add_argument_group("mqtt")
    g.add_argument("--mqtt-host", default="127.0.0.1", help="MQTT broker host")
    g.add_argument("--mqtt-port", type=int, default=1883, help="MQTT broker port")
    g.add_argument("--level-topic", default="tank/level", help="Level telemetry topic")

    g = p.add_argument_group("serial")
    g.add_argument("--serial-port", default="/dev/ttyACM0", help="Valve controller serial port (pyserial URL)")
    g.add_argument("--baud", type=int, default=9600, help="Serial baud rate")
    g.add_argument("--keepalive", type=int, default=2000, help="Serial ping period (ms), 0 disables")

    g = p.add_argument_group("http")
    g.add_argument("--http-host", default="0.0.0.0", help="Operator API bind host")
    g.add_argument("--http-port", type=int, default=8080, help="Operator API port")
    return p


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def config_from_args(args: argparse.Namespace) -> UnitConfig:
    return UnitConfig(
        control=ControlConfig(
            l1_cm=args.l1,
            l2_cm=args.l2,
            t1_ms=args.t1,
            t2_ms=args.t2,
            tick_ms=args.tick,
            history_size=args.history,
        ),
        mqtt=MqttConfig(host=args.mqtt_host, port=args.mqtt_port, level_topic=args.level_topic),
        serial=SerialConfig(port=args.serial_port, baudrate=args.baud, keepalive_ms=args.keepalive),
        http=HttpConfig(host=args.http_host, port=args.http_port),
    )
