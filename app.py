"""
Random Access Protocol Simulator - Dashboard
Modes:
- Single Simulation: one run with live progress, metric cards and time series
- Protocol Comparison: slotted ALOHA vs CSMA/CA over a load sweep
- Statistical Validation: independent replications and confidence intervals
- SimPy Validation: slot engine vs process-interaction model
"""

import streamlit as st
import pandas as pd
import numpy as np
import plotly.express as px
import plotly.graph_objects as go

from random_access_engine import (
    Protocol,
    RandomAccessSimulator,
    SimulationConfig,
    SimulationConfigError,
    run_load_sweep,
    run_replications,
)
from reporting import build_metrics_figure, format_summary
from compare_simpy import run_head_to_head_validation

st.set_page_config(
    page_title="Random Access Simulator",
    page_icon="📡",
    layout="wide"
)

st.title("Random Access Simulation 📡")
st.markdown("### Slotted ALOHA and CSMA/CA on a shared slotted channel")

with st.expander("📘 Concept Guide: reading the curves"):
    st.markdown("""
    **1. Running averages:**
    * Every curve is a cumulative ratio up to the current slot, so early slots are noisy.
    * Mean delay is plotted at the full simulation length until the first packet is acknowledged.

    **2. Carrier sense:**
    * Under CSMA/CA a source leaving backlog defers again when the previous slot carried a success.
    """)

st.markdown("---")

mode = st.sidebar.radio(
    "Select Mode",
    ["Single Simulation", "Protocol Comparison", "Statistical Validation", "SimPy Validation"],
    index=0
)


def config_widgets(prefix: str, with_protocol: bool = True) -> SimulationConfig:
    protocol = Protocol.SLOTTED_ALOHA
    if with_protocol:
        protocol = Protocol(st.selectbox("Protocol", [p.value for p in Protocol], key=f"{prefix}_protocol"))
    sources = st.number_input("Sources (N)", 1, 500, 10, key=f"{prefix}_sources")
    prob = st.slider("Packet ready probability (p)", 0.0, 1.0, 0.05, 0.005, key=f"{prefix}_prob")
    max_backoff = st.number_input("Max backoff (slots)", 1, 1024, 16, key=f"{prefix}_backoff")
    slots = st.number_input("Simulation time (slots)", 1, 200000, 2000, key=f"{prefix}_slots")
    seed = st.number_input("Random Seed", 1, 99999, 42, key=f"{prefix}_seed")
    use_lcg = st.checkbox("Use Custom LCG", False, key=f"{prefix}_lcg")
    return SimulationConfig(protocol=protocol, source_number=int(sources), packet_ready_prob=prob,
                            max_backoff=int(max_backoff), simulation_time=int(slots),
                            random_seed=int(seed), use_lcg=use_lcg)


# ==========================================
# MODE 1: SINGLE SIMULATION
# ==========================================
if mode == "Single Simulation":
    with st.sidebar:
        st.header("Simulation Parameters")
        cfg = config_widgets("single")
        run_btn = st.button("Run Simulation", type="primary", use_container_width=True)

    if run_btn:
        try:
            sim = RandomAccessSimulator(cfg)
        except SimulationConfigError as e:
            st.error(str(e))
            st.stop()

        bar = st.progress(0.0, text="Generating traffic...")

        def on_progress(done, total, attempts, successes):
            if done % max(1, total // 100) == 0 or done == total:
                bar.progress(done / total, text=f"Packets sent: {attempts}; packets acknowledged: {successes}.")

        result = sim.run(progress=on_progress)
        bar.empty()

        m1, m2, m3, m4 = st.columns(4)
        m1.metric("Traffic Offered (G)", f"{result.traffic_offered:.3f}")
        m2.metric("Throughput (S)", f"{result.throughput:.3f}")
        m3.metric("Mean Delay (D)", f"{result.mean_delay:.2f} slots")
        m4.metric("Collision Prob (P_c)", f"{result.collision_probability:.3f}")
        if result.successes == 0:
            st.warning("No packet was acknowledged: mean delay shows the simulation length as a placeholder.")

        tab1, tab2, tab3 = st.tabs(["📊 Visualization", "📋 Detailed Stats", "📂 Export"])

        with tab1:
            st.plotly_chart(build_metrics_figure(result), use_container_width=True)
            if result.delays:
                fig_d = px.histogram(x=result.delays, nbins=30, title="Packet Delay Distribution", labels={'x': 'Delay (slots)'})
                st.plotly_chart(fig_d, use_container_width=True)

        with tab2:
            st.text(format_summary(result))
            st.dataframe(pd.DataFrame({
                'Metric': ['Attempts', 'Acknowledged', 'Collisions', 'Max Delay', 'StdDev Delay'],
                'Value': [result.attempts, result.successes, result.collisions,
                          max(result.delays) if result.delays else 0,
                          f"{np.std(result.delays):.3f}" if result.delays else "0"]
            }), hide_index=True, use_container_width=True)
            st.subheader("Source states at end of run")
            st.dataframe(sim.get_source_dataframe(), hide_index=True)

        with tab3:
            ts_df = result.get_time_series_dataframe()
            st.dataframe(ts_df.tail(200), use_container_width=True)
            st.download_button("Download CSV", ts_df.to_csv(index=False), "time_series.csv", "text/csv")
            st.download_button("Download JSON", result.export_to_json(), "simulation.json", "application/json")

# ==========================================
# MODE 2: PROTOCOL COMPARISON
# ==========================================
elif mode == "Protocol Comparison":
    st.header("Slotted ALOHA vs CSMA/CA")
    with st.sidebar:
        cfg = config_widgets("cmp", with_protocol=False)
        p_lo, p_hi = st.slider("Ready probability range", 0.0, 1.0, (0.005, 0.2), 0.005)
        steps = st.number_input("Sweep points", 2, 50, 10)

    if st.button("Run Comparison"):
        probs = np.linspace(p_lo, p_hi, int(steps))
        frames = []
        with st.spinner("Sweeping load..."):
            for protocol in Protocol:
                cfg.protocol = protocol
                frames.append(run_load_sweep(cfg, probs))
        df = pd.concat(frames, ignore_index=True)

        fig = go.Figure()
        for protocol, group in df.groupby('protocol'):
            fig.add_trace(go.Scatter(x=group['traffic_offered'], y=group['throughput'], mode='lines+markers', name=protocol))
        g = np.linspace(0, max(df['traffic_offered'].max(), 0.1), 100)
        fig.add_trace(go.Scatter(x=g, y=g * np.exp(-g),
                                 mode='lines', name='G·e^(-G)', line=dict(dash='dash')))
        fig.update_layout(xaxis_title="Traffic Offered (G)", yaxis_title="Throughput (S)")
        st.plotly_chart(fig, use_container_width=True)
        st.dataframe(df, hide_index=True, use_container_width=True)

# ==========================================
# MODE 3: STATISTICAL VALIDATION
# ==========================================
elif mode == "Statistical Validation":
    st.header("Confidence Intervals")
    st.markdown("Run multiple **Replications** to reduce variance and find the true mean.")
    with st.sidebar:
        cfg = config_widgets("rep")
    n_reps = st.number_input("Replications", 5, 100, 20)
    conf = st.slider("Confidence Level", 0.8, 0.99, 0.95)

    if st.button("Run Validation"):
        with st.spinner("Running replications..."):
            res = run_replications(cfg, int(n_reps), conf)

        st.success(f"Throughput CI: [{res['throughput']['lower']:.4f}, {res['throughput']['upper']:.4f}]")
        fig = px.histogram(res['throughput']['values'], nbins=10, title="Distribution of Throughput")
        fig.add_vline(x=res['throughput']['mean'], line_color='red')
        st.plotly_chart(fig, use_container_width=True)
        st.dataframe(pd.DataFrame([{'Metric': k, 'Mean': v['mean'], 'Lower': v['lower'], 'Upper': v['upper'], 'Std': v['std']}
                                   for k, v in res.items()]), hide_index=True)

# ==========================================
# MODE 4: SIMPY VALIDATION
# ==========================================
elif mode == "SimPy Validation":
    st.header("Slot Engine vs SimPy (slotted ALOHA)")
    with st.sidebar:
        cfg = config_widgets("simpy", with_protocol=False)

    if st.button("Run Head-to-Head"):
        with st.spinner("Running both models..."):
            res = run_head_to_head_validation(cfg)
        st.dataframe(pd.DataFrame({
            'Metric': ['Throughput', 'Traffic Offered', 'Mean Delay', 'Collision Prob'],
            'Slot Engine': [res['engine_throughput'], res['engine_traffic_offered'],
                            res['engine_mean_delay'], res['engine_collision_probability']],
            'SimPy': [res['simpy_throughput'], res['simpy_traffic_offered'],
                      res['simpy_mean_delay'], res['simpy_collision_probability']],
        }), hide_index=True)
        st.metric("Finite-population theory (S)", f"{res['theoretical_throughput']:.4f}")
        if res['diff'] < 0.01:
            st.success("The slot engine matches the SimPy model.")
        else:
            st.warning("Significant divergence detected; try a longer run.")
