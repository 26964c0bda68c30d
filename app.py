"""
Memory Partitioning Visualizer — Static & Dynamic Partitions

This application provides an interactive simulation and visualization of
contiguous memory allocation as taught in Operating Systems courses:
    - Static (fixed) partitioning with first-fit placement
    - Dynamic (variable) partitioning with first, best and worst fit
    - Block splitting on allocation and coalescing of free blocks

Built with Streamlit for the web interface and Plotly for visualizations.
Run with:  streamlit run app.py
"""

# =============================================================================
# IMPORTS
# =============================================================================

import streamlit as st                       # Web application framework
import plotly.graph_objects as go            # Interactive plotting library

from engine import FitAlgorithm, Mode, SimulationError
from simulation import SimulationController
from utils import UNITS, format_bytes, get_color, to_bytes


# =============================================================================
# STREAMLIT UI - Web Application Interface
# =============================================================================

st.set_page_config(page_title="Memory Partitioning Visualizer", layout="wide")

page = st.sidebar.radio("Choose View", ["Simulator", "Concepts"])

st.title("Memory Partitioning Visualizer — Static & Dynamic Partitions")

# =============================================================================
# CONCEPTS PAGE - Educational Content
# =============================================================================

if page == "Concepts":
    st.header("Operating System Concepts Used in This Project")
    st.markdown(
        """
        ## 📘 Key Concepts

        ### **1. Static Partitioning**
        - Memory is split into fixed partitions when the system starts (here 1, 2, 4, 8 and 1 MiB).
        - Each partition holds at most one process.
        - Space left over inside a partition is **internal fragmentation**.

        ### **2. Dynamic Partitioning**
        - Memory starts as one free block.
        - Each process gets a block of exactly its size, split off a free block.
        - Freed blocks leave holes, causing **external fragmentation**.

        ### **3. Fit Algorithms**
        - **First Fit**: the first free block that is large enough.
        - **Best Fit**: the free block that leaves the smallest remainder.
        - **Worst Fit**: the free block that leaves the largest remainder.

        ### **4. Coalescing**
        - After a block is freed, neighbouring free blocks are merged into one.
        - Larger holes make it more likely that big requests fit.
        """
    )
    st.stop()

# -----------------------------------------------------------------------------
# SESSION STATE - Controller Persistence
# -----------------------------------------------------------------------------

if 'controller' not in st.session_state:
    st.session_state.controller = SimulationController()
    st.session_state.controller.load_default_processes()

controller: SimulationController = st.session_state.controller

# -----------------------------------------------------------------------------
# SIDEBAR - Simulation Settings
# -----------------------------------------------------------------------------

st.sidebar.header("Simulation Settings")

mode = st.sidebar.selectbox(
    "Partitioning",
    options=list(Mode.ALL),
    index=list(Mode.ALL).index(controller.mode),
    format_func=lambda m: "Static partitions" if m == Mode.STATIC else "Dynamic partitions",
)

if mode == Mode.DYNAMIC:
    fit = st.sidebar.selectbox(
        "Fit algorithm",
        options=list(FitAlgorithm.ALL),
        index=list(FitAlgorithm.ALL).index(controller.fit),
        format_func=lambda f: f"{f.capitalize()} Fit",
    )
    coalesce = st.sidebar.checkbox("Coalesce free blocks", value=controller.coalesce)
else:
    fit, coalesce = controller.fit, controller.coalesce
    st.sidebar.caption("Partitions: " + ", ".join(
        format_bytes(r.size) for r in controller.region_snapshot()))

# Any change of settings rebuilds memory from scratch
if mode != controller.mode:
    controller.switch_mode(mode, fit, coalesce)
elif mode == Mode.DYNAMIC and (fit != controller.fit or coalesce != controller.coalesce):
    controller.set_dynamic_options(fit, coalesce)

if st.sidebar.button("Reset Memory"):
    controller.reset()
    st.sidebar.success("Memory reset")

st.sidebar.markdown("---")

# -----------------------------------------------------------------------------
# SIDEBAR - Process Creation
# -----------------------------------------------------------------------------

st.sidebar.header("Add Process")

size_value = st.sidebar.number_input("Process size", min_value=0.0, value=1.0, step=1.0)
size_unit = st.sidebar.selectbox("Unit", options=list(UNITS), index=2)

if st.sidebar.button("Add Process"):
    try:
        process = controller.add_process(to_bytes(size_value, size_unit))
        st.sidebar.success(f"Created {process.name} ({format_bytes(process.size)})")
    except SimulationError as e:
        st.sidebar.error(str(e))

# =============================================================================
# MAIN CONTENT AREA - Two Column Layout
# =============================================================================

col1, col2 = st.columns([1, 2])

# -----------------------------------------------------------------------------
# LEFT COLUMN - Process List and Event Log
# -----------------------------------------------------------------------------

with col1:
    st.subheader("Processes")

    if len(controller.processes) == 0:
        st.write("No processes yet — add one from the sidebar")

    for proc in controller.process_snapshot():
        label_col, button_col = st.columns([2, 1])
        label_col.write(f"{proc.name} ({format_bytes(proc.size)})")

        if proc.allocated:
            if button_col.button("Deallocate", key=f"dealloc-{proc.pid}"):
                controller.deallocate(proc.pid)
                st.rerun()
        elif button_col.button("Allocate", key=f"alloc-{proc.pid}"):
            try:
                controller.allocate(proc.pid)
                st.rerun()
            except SimulationError as e:
                st.error(str(e))

    st.subheader("Event Log")
    for ev in controller.event_log[-20:][::-1]:
        st.write(ev)

# -----------------------------------------------------------------------------
# RIGHT COLUMN - Visualizations
# -----------------------------------------------------------------------------

with col2:
    st.subheader("Memory Layout")

    fig = go.Figure()

    # Reserved prefix drawn first so it sits at the bottom of the stack
    if controller.reserved:
        fig.add_trace(go.Bar(
            x=["Memory"],
            y=[controller.reserved],
            marker_color="dimgray",
            text=f"OS<br>{format_bytes(controller.reserved)}",
            hoverinfo='text',
            hovertext=f"Reserved: {format_bytes(controller.reserved)}",
        ))

    for region in controller.region_snapshot():
        name = region.owner_name if region.occupied else "Free"
        label = f"{name}<br>{format_bytes(region.size)}"
        fig.add_trace(go.Bar(
            x=["Memory"],
            y=[region.size],
            marker_color=get_color(region.occupied, region.owner_id),
            marker_line=dict(color="black", width=1),
            text=label,
            textposition="inside",
            hoverinfo='text',
            hovertext=f"{label}<br>start 0x{region.start:08x}",
        ))

    fig.update_layout(
        barmode="stack",
        height=600,
        showlegend=False,
        yaxis=dict(showticklabels=False, range=[0, controller.total_size]),
        xaxis=dict(showticklabels=False),
    )
    st.plotly_chart(fig, use_container_width=True)

    # ----- Region Table -----
    st.subheader("Regions")
    rows = []
    for region in controller.region_snapshot():
        rows.append({
            "start": f"0x{region.start:08x}",
            "size": format_bytes(region.size),
            "state": "occupied" if region.occupied else "free",
            "process": region.owner_name or "",
        })
    st.table(rows)

    # ----- Statistics Display -----
    st.subheader("Statistics")
    stats = controller.fragmentation_metrics()

    m1, m2, m3 = st.columns(3)
    m1.metric("Utilization", f"{stats['utilization']:.1%}")
    m2.metric("External Fragmentation", f"{stats['external']:.1%}")
    m3.metric("Internal Fragmentation", f"{stats['internal']:.1%}")

    st.write(
        f"Free: {format_bytes(stats['free_bytes'])} in {stats['free_regions']} region(s), "
        f"largest {format_bytes(stats['largest_free'])}"
    )

# =============================================================================
# FOOTER - Usage Tips
# =============================================================================

st.markdown("---")
st.markdown(
    "**Usage tips**:\n"
    "- Add processes from the sidebar, then allocate and deallocate them from the list.\n"
    "- Switching partitioning, fit algorithm or coalescing resets memory.\n"
    "- Try dynamic mode without coalescing to watch external fragmentation build up."
)
