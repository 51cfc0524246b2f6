# tankmon/unit/policy.py
from __future__ import annotations

from typing import Optional

from ..config import ControlConfig
from ..helpers import log


class PolicyEngine:
    """
    Valve policy (AUTOMATIC mode only):
    - level >= L2          -> 100% immediately (no debounce on over-level)
    - level <= L1          -> 0% immediately
    - L1 < level < L2      -> 50% once the level stayed in the band for T1,
                              until then keep the currently commanded opening
    Timer state is owned by the control loop thread; no locking here.
    """

    def __init__(self, cfg: ControlConfig | None = None):
        self.cfg = cfg or ControlConfig()

        # internal timer (band entry)
        self._above_l1_since_ms: Optional[int] = None
        self._was_above_l1: bool = False

    @property
    def timer_running(self) -> bool:
        return self._was_above_l1

    @property
    def above_l1_since_ms(self) -> Optional[int]:
        return self._above_l1_since_ms

    # ======================================================
    # MAIN ENTRY
    # ======================================================
    def decide(self, level_cm: float, now_ms: int, current_pct: int) -> int:
        cfg = self.cfg
        L = float(level_cm)

        # critical: closed bound on L2
        if L >= cfg.l2_cm:
            self.reset()
            return cfg.full_pct

        # safe: closed bound on L1
        if L <= cfg.l1_cm:
            self.reset()
            return cfg.closed_pct

        # hysteresis band: open bounds
        if cfg.l1_cm < L < cfg.l2_cm:
            if not self._was_above_l1:
                self._above_l1_since_ms = int(now_ms)
                self._was_above_l1 = True
                log(f"[POLICY] level {L:.2f} cm above L1, timer started")
                return int(current_pct)

            elapsed = int(now_ms) - int(self._above_l1_since_ms or 0)
            if elapsed >= cfg.t1_ms:
                return cfg.mid_pct
            return int(current_pct)

        # NaN and anything else not ordered against the thresholds
        return cfg.closed_pct

    def reset(self) -> None:
        if self._was_above_l1:
            self._was_above_l1 = False
            self._above_l1_since_ms = None
