#!/usr/bin/env python3
# tank_sim.py - level sensor stand-in, publishes tank level (cm) over MQTT

import argparse
import asyncio
import json
import os
import random
import signal
from dataclasses import dataclass

from aiomqtt import Client, MqttError

from tankmon.helpers import clamp, ensure_dir_for_file, log, utc_iso


# ============================================================
# Config
# ============================================================
@dataclass
class TankSimConfig:
    topic: str = "tank/level"
    period_s: float = 1.0          # sensor sampling, 1 Hz

    # Level dynamics (cm)
    init_level_cm: float = 12.0
    min_level_cm: float = 0.0
    max_level_cm: float = 60.0
    rain_cm_per_tick: float = 0.6  # inflow while raining
    drain_cm_per_tick: float = 0.35
    prob_rain_start: float = 0.05
    prob_rain_stop: float = 0.04
    noise_cm: float = 0.05

    # Scripted outage (0 = never)
    silence_after_s: float = 0.0
    silence_for_s: float = 0.0


# ============================================================
# State
# ============================================================
class TankSim:
    def __init__(self, cfg: TankSimConfig, seed: int = 42):
        self.cfg = cfg
        self._rng = random.Random(seed)
        self.level_cm: float = cfg.init_level_cm
        self.raining: bool = False
        self.elapsed_s: float = 0.0
        self.tick_n: int = 0

    def step(self) -> float:
        cfg = self.cfg
        self.tick_n += 1
        self.elapsed_s += cfg.period_s

        if self.raining and self._rng.random() < cfg.prob_rain_stop:
            self.raining = False
        elif not self.raining and self._rng.random() < cfg.prob_rain_start:
            self.raining = True

        delta = (cfg.rain_cm_per_tick if self.raining else 0.0) - cfg.drain_cm_per_tick
        delta += self._rng.uniform(-cfg.noise_cm, cfg.noise_cm)
        self.level_cm = clamp(self.level_cm + delta, cfg.min_level_cm, cfg.max_level_cm)
        return self.level_cm

    def silent(self) -> bool:
        cfg = self.cfg
        if cfg.silence_after_s <= 0 or cfg.silence_for_s <= 0:
            return False
        return cfg.silence_after_s <= self.elapsed_s < cfg.silence_after_s + cfg.silence_for_s


# ============================================================
# Tasks
# ============================================================
async def publisher(host: str, port: int, sim: TankSim, stop_event: asyncio.Event, out_jsonl: str) -> None:
    cfg = sim.cfg
    ensure_dir_for_file(out_jsonl)
    was_silent = False

    while not stop_event.is_set():
        try:
            async with Client(hostname=host, port=port, identifier="TMS_SIM") as client:
                log(f"[PUB] connected mqtt://{host}:{port}")
                with open(out_jsonl, "a", encoding="utf-8") as f:
                    while not stop_event.is_set():
                        level = sim.step()

                        silent = sim.silent()
                        if silent != was_silent:
                            log(f"[PUB] {'sensor silent' if silent else 'sensor back'} at t={sim.elapsed_s:.0f}s")
                            was_silent = silent

                        if not silent:
                            # plain number, like the firmware
                            payload = f"{level:.2f}"
                            f.write(json.dumps({
                                "topic": cfg.topic,
                                "payload": {"ts": utc_iso(), "seq": sim.tick_n, "level_cm": round(level, 2), "raining": sim.raining},
                            }, ensure_ascii=False) + "\n")
                            f.flush()
                            await client.publish(cfg.topic, payload.encode("utf-8"), qos=1)

                        await asyncio.sleep(cfg.period_s)

        except MqttError as e:
            log(f"[PUB] MQTT error: {repr(e)} retry 1s")
            await asyncio.sleep(1.0)


# ============================================================
# Main
# ============================================================
def install_signal_handlers(stop_event: asyncio.Event) -> None:
    def _h(*_):
        stop_event.set()

    signal.signal(signal.SIGINT, _h)
    signal.signal(signal.SIGTERM, _h)


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Tank level sensor simulator (MQTT + JSONL)")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=1883)
    p.add_argument("--topic", default="tank/level")
    p.add_argument("--period", type=float, default=1.0, help="Seconds between readings")
    p.add_argument("--init-level", type=float, default=12.0, help="Starting level (cm)")
    p.add_argument("--silence-after", type=float, default=0.0, help="Stop publishing after N seconds (0 = never)")
    p.add_argument("--silence-for", type=float, default=0.0, help="Outage length in seconds")
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--out", default="out/tank_level.jsonl")
    return p.parse_args()


async def run() -> None:
    args = parse_args()
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)

    cfg = TankSimConfig(
        topic=args.topic,
        period_s=args.period,
        init_level_cm=args.init_level,
        silence_after_s=args.silence_after,
        silence_for_s=args.silence_for,
    )
    sim = TankSim(cfg, seed=args.seed)

    log(f"[MAIN] topic={cfg.topic} period={cfg.period_s}s out={os.path.abspath(args.out)}")

    task = asyncio.create_task(publisher(args.host, args.port, sim, stop_event, args.out))

    while not stop_event.is_set():
        await asyncio.sleep(0.2)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
