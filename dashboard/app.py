# ruff: noqa: E402, I001
import sys
from pathlib import Path

_repo_root = Path(__file__).resolve().parents[1]
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import requests
import pandas as pd
import streamlit as st

from dashboard.status import maintenance_status
from shared.settings import get_settings

s = get_settings()
API_BASE = f"{s.API_BASE_URL.rstrip('/')}{s.API_PREFIX}"


def api_get(path: str, params: dict | None = None):
    r = requests.get(f"{API_BASE}{path}", params=params, timeout=10)
    r.raise_for_status()
    return r.json()


def api_post(path: str, payload: dict | None = None):
    r = requests.post(f"{API_BASE}{path}", json=payload, timeout=10)
    r.raise_for_status()
    return r.json()


st.set_page_config(page_title="Maintenance Monitor", layout="wide")
st.title("Smart Maintenance Monitor")

try:
    machines = api_get("/machines")
except requests.RequestException as e:
    st.error(f"Backend unreachable at {API_BASE}: {e}")
    st.stop()

limit = st.sidebar.slider("Readings", 10, 200, 50)

if not machines:
    st.info("No machines yet.")
    st.stop()

df_m = pd.DataFrame(
    [
        {
            "id": m["id"],
            "name": m["name"],
            "code": m.get("code", ""),
            "location": m.get("location", ""),
            "nextMaintenanceDate": m["nextMaintenanceDate"],
            "status": maintenance_status(m["nextMaintenanceDate"]),
        }
        for m in machines
    ]
)

st.subheader("Machines")
st.dataframe(df_m, use_container_width=True)

names = {m["id"]: f"{m['name']} ({m.get('code') or m['id']})" for m in machines}
selected_id = st.sidebar.selectbox("Machine", list(names), format_func=names.get)
selected = next(m for m in machines if m["id"] == selected_id)

col1, col2 = st.columns(2)

with col1:
    st.subheader("Thresholds")
    st.json(selected.get("thresholds", {}))
    if st.button("Simulate reading"):
        api_post(f"/machines/{selected_id}/vitals/simulate")

with col2:
    st.subheader("Latest Vitals")
    vitals = api_get(f"/machines/{selected_id}/vitals", params={"limit": limit})
    df_v = pd.DataFrame(vitals)
    if df_v.empty:
        st.info("No readings yet.")
    else:
        df_v["timestamp"] = pd.to_datetime(df_v["timestamp"], utc=True)
        st.dataframe(
            df_v[["timestamp", "temperature", "vibration", "pressure"]].iloc[::-1],
            use_container_width=True,
        )
