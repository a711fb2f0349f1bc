"""
Streamlit Sidekick dashboard.
Hauptseite: Einnahme, Wirkungskurve, Morgen-Check, Check-in, Essen, Notizen.
Sidebar: Verlauf, Export, Einstellungen.
"""

from datetime import datetime

import httpx
import pandas as pd
import plotly.graph_objects as go
import streamlit as st
import os

# --- Config ---
API_BASE = os.getenv("SIDEKICK_API_URL", "http://localhost:8000")
API_KEY = os.getenv("SIDEKICK_API_KEY", "")
HEADERS = {"x-api-key": API_KEY} if API_KEY else {}


def api_get(path: str, params: dict | None = None) -> dict | list:
    try:
        r = httpx.get(f"{API_BASE}{path}", params=params, headers=HEADERS, timeout=10)
        r.raise_for_status()
        if r.headers.get("content-type", "").startswith("text/plain"):
            return {"text": r.text}
        return r.json()
    except Exception as e:
        st.error(f"API Error: {e}")
        return {}


def api_send(method: str, path: str, data: dict) -> dict:
    try:
        r = httpx.request(method, f"{API_BASE}{path}", json=data, headers=HEADERS, timeout=10)
        r.raise_for_status()
        return r.json()
    except Exception as e:
        st.error(f"API Error: {e}")
        return {}


def api_post(path: str, data: dict) -> dict:
    return api_send("POST", path, data)


def api_put(path: str, data: dict) -> dict:
    return api_send("PUT", path, data)


def fmt_time(ts: int) -> str:
    return datetime.fromtimestamp(ts / 1000).strftime("%H:%M")


# --- Plotly mobile-friendly helper ---
PLOTLY_MOBILE_CONFIG = {
    "displayModeBar": False,
    "scrollZoom": False,
    "staticPlot": False,
    "responsive": True,
}

PLOTLY_MOBILE_LAYOUT = dict(
    dragmode=False,
    template="plotly_dark",
    margin=dict(l=40, r=20, t=40, b=35),
    legend=dict(orientation="h", yanchor="bottom", y=1.02),
    xaxis=dict(fixedrange=True),
    yaxis=dict(fixedrange=True),
)


def mobile_chart(fig, height=350, **kwargs):
    """Render a Plotly chart with mobile-friendly settings (no accidental zoom/pan)."""
    fig.update_layout(**PLOTLY_MOBILE_LAYOUT, height=height, **kwargs)
    st.plotly_chart(fig, use_container_width=True, config=PLOTLY_MOBILE_CONFIG)


# --- Page Config ---
st.set_page_config(
    page_title="Sidekick",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

st.markdown("""
<style>
    .block-container {
        padding-top: 0.3rem;
        padding-left: 0.5rem;
        padding-right: 0.5rem;
        max-width: 100%;
    }
    .stButton > button {
        min-height: 52px;
        font-size: 1rem;
        border-radius: 10px;
    }
    hr { margin-top: 0.4rem; margin-bottom: 0.4rem; }
</style>
""", unsafe_allow_html=True)

MEAL_BUTTONS = [
    ("fruehstueck", "Frühstück"),
    ("bio_snack", "Snack"),
    ("mittagessen", "Mittagessen"),
    ("abendessen", "Abendessen"),
]
CHECKIN_SLIDERS = [
    ("stimmung", "Stimmung"),
    ("fokus", "Fokus"),
    ("reizbarkeit", "Reizbarkeit"),
    ("unruhe", "Unruhe"),
]
SLEEP_OPTIONS = {1: "Schlecht", 2: "Mäßig", 3: "Okay", 4: "Gut", 5: "Super"}

# =========================================================
# SIDEBAR — Navigation
# =========================================================
PAGES = ["Heute", "Verlauf", "Export", "Einstellungen"]

with st.sidebar:
    st.header("Sidekick")
    current_page = st.radio("Navigation", PAGES, index=0, label_visibility="collapsed")
    st.divider()
    stats = api_get("/api/stats/today")
    if isinstance(stats, dict) and "total_logs" in stats:
        st.metric("Logs heute", stats["total_logs"])
        st.caption(f"Check-ins: {stats['checkins']} · Notizen: {stats['notes']}")


# =========================================================
# PAGE: Heute
# =========================================================
if current_page == "Heute":
    settings = api_get("/api/settings")
    last_dose = settings.get("last_dose_mg", 10) if isinstance(settings, dict) else 10
    last_food = settings.get("last_with_food", True) if isinstance(settings, dict) else True

    # ---- Morgen-Check ----
    today_key = datetime.now().strftime("%Y-%m-%d")
    ctx = api_get(f"/api/day-context/{today_key}")
    if isinstance(ctx, dict) and not ctx.get("sleep_quality"):
        with st.container(border=True):
            st.subheader("Morgen-Check")
            quality = st.select_slider(
                "Wie hast du geschlafen?", options=list(SLEEP_OPTIONS), value=3,
                format_func=lambda v: f"{v} — {SLEEP_OPTIONS[v]}",
            )
            if st.button("Schlaf speichern", use_container_width=True):
                api_put("/api/day-context", {"sleep_quality": quality})
                st.rerun()

    # ---- SECTION 1: Einnahme ----
    st.subheader("1 — Einnahme")
    dc1, dc2 = st.columns(2)
    with dc1:
        dose = st.radio("Dosis", [10, 20], index=[10, 20].index(last_dose),
                        format_func=lambda d: f"{d} mg", horizontal=True)
    with dc2:
        with_food = st.toggle("Mit Nahrung", value=last_food)
    if st.button("Einnahme loggen", type="primary", use_container_width=True):
        r = api_post("/api/intake", {"dose_mg": dose, "with_food": with_food})
        if r.get("status") == "ok":
            st.success("Einnahme geloggt")
            st.rerun()

    with st.expander("Nachtragen"):
        hc1, hc2 = st.columns(2)
        with hc1:
            hdate = st.date_input("Datum", value=datetime.now().date(), key="hdate")
        with hc2:
            htime = st.time_input("Uhrzeit", value=datetime.now().time().replace(second=0, microsecond=0), key="htime")
        if st.button("Nachtragen", use_container_width=True):
            ts = datetime.combine(hdate, htime).isoformat()
            r = api_post("/api/intake", {"dose_mg": dose, "with_food": with_food, "timestamp": ts})
            if r.get("status") == "ok":
                st.success("Nachgetragen")
                st.rerun()

    # ---- Wirkungskurve ----
    current = api_get("/api/effect/current")
    curve = api_get("/api/effect/curve")
    if isinstance(curve, dict) and curve.get("points"):
        df = pd.DataFrame(curve["points"])
        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=df["hour"], y=df["effect"],
            mode="lines", name="Wirkung",
            line=dict(color="#4FC3F7", width=3, shape="spline"),
            fill="tozeroy", fillcolor="rgba(79,195,247,0.15)",
        ))
        if isinstance(current, dict) and current.get("intake"):
            fig.add_vline(
                x=current["current_hour"],
                line=dict(color="#FF9800", width=2, dash="dot"),
                annotation_text="Jetzt" if current["is_active"] else "Vorbei",
                annotation_font=dict(color="#FF9800"),
            )
        fig.update_layout(
            title=f"Wirkungskurve ({curve['dose_mg']} mg)",
            xaxis_title="Stunden seit Einnahme",
            yaxis_title="Wirkung",
            yaxis_range=[0, 105],
        )
        mobile_chart(fig, height=320)
        if isinstance(current, dict) and current.get("intake"):
            intake = current["intake"]
            st.caption(
                f"Einnahme {fmt_time(intake['timestamp'])} · Phase: {current['phase']} · "
                f"Wirkung {current['effect']:.0f}/100"
            )
        else:
            st.caption("Heute noch keine Einnahme.")

    # ---- SECTION 2: Check-in ----
    st.divider()
    st.subheader("2 — Wie fühlst du dich?")
    values = {}
    sc1, sc2 = st.columns(2)
    for i, (key, label) in enumerate(CHECKIN_SLIDERS):
        with (sc1 if i % 2 == 0 else sc2):
            values[key] = st.slider(label, 0, 5, 0, key=f"chk_{key}", help="0 = nicht bewertet")
    checkin_note = st.text_input("Notiz (optional)", key="chk_note")
    if st.button("Check-in speichern", type="primary", use_container_width=True):
        if any(values.values()) or checkin_note.strip():
            r = api_post("/api/checkin", {**values, "note": checkin_note.strip() or None})
            if r.get("status") == "ok":
                st.success("Gespeichert")
                st.rerun()
        else:
            st.warning("Mindestens einen Wert oder eine Notiz angeben.")

    # ---- SECTION 3: Essen ----
    st.divider()
    st.subheader("3 — Essen")
    meal_desc = st.text_input("Was?", key="mdesc", max_chars=120, placeholder="Haferflocken, Banane...")
    mc = st.columns(4)
    for col, (meal_type, label) in zip(mc, MEAL_BUTTONS):
        with col:
            if st.button(label, use_container_width=True):
                r = api_post("/api/meal", {"meal_type": meal_type, "description": meal_desc})
                if r.get("status") == "ok":
                    st.success(f"{label} geloggt")
                    st.rerun()
                elif r.get("status") == "skipped":
                    st.warning("Bitte beschreiben, was du gegessen hast.")

    # ---- SECTION 4: Notiz ----
    st.divider()
    st.subheader("4 — Notiz")
    note_text = st.text_area("Notiz", key="ntext", max_chars=500, label_visibility="collapsed")
    if st.button("Notiz speichern", use_container_width=True):
        r = api_post("/api/note", {"content": note_text})
        if r.get("status") == "ok":
            st.success("Notiz gespeichert")
            st.rerun()

    # ---- Heute (kompakt) ----
    st.divider()
    st.subheader("Heute")
    logs = api_get("/api/logs", {"today": True})
    if isinstance(logs, list) and logs:
        for entry in logs:
            value = f" — {entry['value']}" if entry.get("value") else ""
            st.text(f"{fmt_time(entry['timestamp'])} {entry['label']}{value}")
    else:
        st.caption("—")


# =========================================================
# PAGE: Verlauf
# =========================================================
elif current_page == "Verlauf":
    st.header("Verlauf")
    if isinstance(stats, dict) and "total_logs" in stats:
        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Logs heute", stats["total_logs"])
        m2.metric("Einnahmen", stats["intakes"])
        m3.metric("Check-ins", stats["checkins"])
        m4.metric("Notizen", stats["notes"])

    limit = st.session_state.setdefault("visible_logs", 10)
    logs = api_get("/api/logs", {"limit": limit + 1})
    if isinstance(logs, list) and logs:
        df = pd.DataFrame(logs[:limit])
        df["Zeit"] = [datetime.fromtimestamp(ts / 1000).strftime("%d.%m. %H:%M") for ts in df["timestamp"]]
        st.dataframe(
            df[["Zeit", "type", "label", "value"]].rename(
                columns={"type": "Art", "label": "Eintrag", "value": "Details"}
            ),
            use_container_width=True, hide_index=True,
        )
        if len(logs) > limit and st.button("Mehr laden", use_container_width=True):
            st.session_state["visible_logs"] = limit + 10
            st.rerun()
    else:
        st.caption("Noch keine Einträge.")


# =========================================================
# PAGE: Export
# =========================================================
elif current_page == "Export":
    st.header("Export")
    st.caption("Bericht für die Analyse in einem KI-Agenten.")
    days = st.select_slider("Zeitraum (Tage)", options=[1, 3, 7, 14, 30], value=3)
    report = api_get("/api/export", {"days": days})
    if isinstance(report, dict) and "text" in report:
        st.code(report["text"], language="markdown")
        st.download_button(
            "Als Datei speichern", report["text"],
            file_name=f"sidekick_{datetime.now():%Y-%m-%d}.md",
            mime="text/markdown", use_container_width=True,
        )


# =========================================================
# PAGE: Einstellungen
# =========================================================
elif current_page == "Einstellungen":
    st.header("Einstellungen")
    settings = api_get("/api/settings")
    if isinstance(settings, dict) and "notification_settings" in settings:
        ns = settings["notification_settings"]
        st.subheader("Erinnerungen")
        for key, label in [
            ("meal_reminder", "Essen (1 Min nach Einnahme ohne Nahrung)"),
            ("snack_reminder", "Snack (nach 3,5 h)"),
            ("rebound_reminder", "Rebound (nach 8 h)"),
        ]:
            new_value = st.toggle(label, value=ns.get(key, True), key=f"ns_{key}")
            if new_value != ns.get(key, True):
                api_put(f"/api/settings/notifications/{key}", {"value": new_value})
                st.rerun()

        st.subheader("Stoffwechsel")
        offset = st.slider(
            "Wirkungs-Offset (Minuten)", -60, 60,
            int(settings.get("metabolism_offset_minutes", 0)), step=5,
            help="Positiv = Wirkung setzt später ein, negativ = früher.",
        )
        if offset != settings.get("metabolism_offset_minutes", 0):
            api_put("/api/settings/metabolism-offset", {"minutes": offset})
            st.rerun()

        pending = api_get("/api/notifications")
        if isinstance(pending, list) and pending:
            st.subheader("Geplante Erinnerungen")
            for reminder in pending:
                st.text(f"{fmt_time(reminder['fire_at'])} {reminder['title']}")
