# dashboard.py
#!/usr/bin/env python3
"""
Streamlit operator panel for the tank control unit:
- status: mode, level, valve, sensor link
- AUTOMATIC / MANUAL switch
- manual valve opening (MANUAL only)
- level history chart

Talks to the unit's HTTP API (/api/status, /api/history, /api/mode, /api/valve).

Run:
  streamlit run sim/dashboard.py
"""

import time
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import pandas as pd
import requests
import streamlit as st


# ----------------------------
# Optional autorefresh
# ----------------------------
def try_autorefresh(interval_ms: int) -> bool:
    try:
        from streamlit_autorefresh import st_autorefresh  # type: ignore
    except ImportError:
        return False
    st_autorefresh(interval=interval_ms, key="__auto_refresh__")
    return True


# ----------------------------
# API
# ----------------------------
def api_get(base_url: str, path: str) -> Optional[Dict[str, Any]]:
    try:
        r = requests.get(f"{base_url}{path}", timeout=2.0)
        r.raise_for_status()
        return r.json()
    except requests.RequestException:
        return None


def api_post(base_url: str, path: str, body: Dict[str, Any]) -> Tuple[bool, str]:
    try:
        r = requests.post(f"{base_url}{path}", json=body, timeout=2.0)
    except requests.RequestException as e:
        return False, f"unit unreachable: {e}"
    try:
        data = r.json()
    except ValueError:
        data = {}
    if r.ok:
        return True, "ok"
    return False, str(data.get("error", f"HTTP {r.status_code}"))


def history_frame(history: Optional[Dict[str, Any]]) -> pd.DataFrame:
    rows = (history or {}).get("readings", [])
    if not rows:
        return pd.DataFrame(columns=["ts_ms", "level_cm"])
    df = pd.DataFrame(rows)
    # monotonic ms -> seconds relative to the newest reading
    df["t_s"] = (df["ts_ms"] - df["ts_ms"].max()) / 1000.0
    return df


# ----------------------------
# UI
# ----------------------------
st.set_page_config(page_title="Tank Panel", layout="wide")
st.title("Tank monitoring: operator panel")

top1, top2 = st.columns(2)

with top1:
    st.subheader("Control unit")
    base_url = st.text_input("API base URL", value="http://127.0.0.1:8080").rstrip("/")

with top2:
    st.subheader("Realtime")
    realtime = st.checkbox("Realtime ON", value=True)
    interval_ms = st.slider("Refresh interval (ms)", 500, 5000, 1000, step=100)

st.divider()

status = api_get(base_url, "/api/status")

if status is None:
    st.error(f"Control unit not reachable at {base_url}")
else:
    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Mode", status.get("mode", "-"))
    m2.metric("Level (cm)", f"{float(status.get('level_cm', 0.0)):.2f}")
    m3.metric("Valve", f"{status.get('valve_pct', '-')}%")
    m4.metric("Sensor link", "OK" if status.get("sensor_connected") else "LOST")
    st.caption(f"updated {datetime.now().strftime('%H:%M:%S')}")

st.divider()

# ----------------------------
# Mode + valve
# ----------------------------
st.subheader("Mode")

b1, b2 = st.columns(2)
with b1:
    if st.button("AUTOMATIC"):
        ok, msg = api_post(base_url, "/api/mode", {"mode": "AUTOMATIC"})
        (st.success if ok else st.error)(f"AUTOMATIC: {msg}")
with b2:
    if st.button("MANUAL"):
        ok, msg = api_post(base_url, "/api/mode", {"mode": "MANUAL"})
        (st.success if ok else st.error)(f"MANUAL: {msg}")

st.subheader("Valve (MANUAL only)")

manual = status is not None and status.get("mode") == "MANUAL"
opening = st.slider("Opening (%)", 0, 100, int((status or {}).get("valve_pct", 0) or 0), step=1, disabled=not manual)
if st.button("Apply opening", disabled=not manual):
    ok, msg = api_post(base_url, "/api/valve", {"opening": int(opening)})
    (st.success if ok else st.error)(f"valve {opening}%: {msg}")

st.divider()

# ----------------------------
# Chart: level history
# ----------------------------
st.subheader("Level history")

df = history_frame(api_get(base_url, "/api/history"))
if df.empty:
    st.warning("No level readings yet. Is the sensor feed publishing?")
else:
    st.line_chart(df.set_index("t_s")[["level_cm"]], height=320)

st.caption("Status: /api/status | History: /api/history | Commands: POST /api/mode, /api/valve")

# Realtime refresh
if realtime:
    if not try_autorefresh(int(interval_ms)):
        time.sleep(interval_ms / 1000.0)
        st.rerun()
