"""
Reporting collaborators for the random access engine:
progress bar (tqdm), text summary, plotly metric figure, and the
saloha() / csma_ca() entry points that wire them around a run.
"""

import logging
import signal
import threading
from typing import Optional, Tuple

import plotly.graph_objects as go
from plotly.subplots import make_subplots
from tqdm import tqdm

from random_access_engine import (
    CancellationToken,
    Protocol,
    RandomAccessSimulator,
    SimulationConfig,
    SimulationResult,
)

logger = logging.getLogger(__name__)


class TqdmProgressReporter:
    """Progress bar showing packets sent and acknowledged.

    While active (used as a context manager) Ctrl+C sets the cancellation
    token instead of interrupting the slot loop, so the run stops cleanly at
    the next slot boundary.
    """

    def __init__(self, total_slots: int, desc: str = "Generating traffic", token: Optional[CancellationToken] = None):
        self.total_slots = total_slots
        self.desc = desc
        self.token = token if token is not None else CancellationToken()
        self.pbar = None
        self._previous_handler = None

    def __enter__(self):
        self.pbar = tqdm(total=self.total_slots, desc=self.desc, unit="slot")
        if threading.current_thread() is threading.main_thread():
            self._previous_handler = signal.signal(signal.SIGINT, self._on_interrupt)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._previous_handler is not None:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._previous_handler = None
        self.pbar.close()
        if self.token.cancelled:
            tqdm.write("\nWarning: terminated by user!")
        return False

    def _on_interrupt(self, signum, frame):
        self.token.cancel()

    def __call__(self, slots_completed: int, total_slots: int, attempts: int, successes: int):
        self.pbar.update(slots_completed - self.pbar.n)
        self.pbar.set_postfix(sent=attempts, acked=successes, refresh=False)


def format_summary(result: SimulationResult) -> str:
    return ("\nTraffic offered (G): %.3f,\nThroughput (S): %.3f,\nMean delay (D): %.2f slots,\n"
            "Collision probability (P_c): %.3f." % (result.traffic_offered, result.throughput,
                                                   result.mean_delay, result.collision_probability))


def build_metrics_figure(result: SimulationResult, title: Optional[str] = None) -> go.Figure:
    df = result.get_time_series_dataframe()
    panels = [
        ('traffic_offered', 'Traffic Offered', 'Traffic Offered (G)'),
        ('throughput', 'Throughput', 'Throughput (S)'),
        ('mean_delay', 'Mean Delay', 'Mean Delay (D)'),
        ('collision_probability', 'Packet Collision Probability', 'Collision Probability (P_c)'),
    ]
    fig = make_subplots(rows=2, cols=2, subplot_titles=[p[1] for p in panels])
    for i, (column, name, y_label) in enumerate(panels):
        row, col = divmod(i, 2)
        fig.add_trace(go.Scatter(x=df['slot'], y=df[column], mode='lines', name=name), row=row + 1, col=col + 1)
        fig.update_xaxes(title_text='Time Slot', row=row + 1, col=col + 1)
        fig.update_yaxes(title_text=y_label, row=row + 1, col=col + 1)
    fig.update_layout(title_text=title or result.config.protocol.value, showlegend=False)
    return fig


def simulate(config: SimulationConfig, show_progress_bar: bool = False, nice_output: bool = False,
             plot: bool = False, plot_path: Optional[str] = None) -> SimulationResult:
    """Run the engine with the optional progress, summary and plot collaborators.

    Failures in printing or plotting are logged and never change the result.
    """
    sim = RandomAccessSimulator(config)
    if show_progress_bar:
        with TqdmProgressReporter(config.simulation_time) as reporter:
            result = sim.run(progress=reporter, cancel_token=reporter.token)
    else:
        result = sim.run()

    if nice_output:
        try:
            print(format_summary(result))
        except Exception:
            logger.exception("Could not print simulation summary")

    if plot or plot_path:
        try:
            fig = build_metrics_figure(result)
            if plot_path:
                fig.write_html(plot_path)
            else:
                fig.show()
        except Exception:
            logger.exception("Could not plot simulation time series")
    return result


def _run_protocol(protocol: Protocol, source_number, packet_ready_prob, max_backoff, simulation_time,
                  show_progress_bar, nice_output, plot, plot_path, seed) -> Tuple[float, float, float, float]:
    config = SimulationConfig(protocol=protocol, source_number=source_number,
                              packet_ready_prob=packet_ready_prob, max_backoff=max_backoff,
                              simulation_time=simulation_time, random_seed=seed)
    return simulate(config, show_progress_bar, nice_output, plot, plot_path).as_tuple()


def saloha(source_number, packet_ready_prob, max_backoff, simulation_time,
           show_progress_bar=False, nice_output=False, plot=False, plot_path=None, seed=None):
    """Slotted ALOHA run.

    Returns (throughput, mean delay, traffic offered, packet collision probability).
    """
    return _run_protocol(Protocol.SLOTTED_ALOHA, source_number, packet_ready_prob, max_backoff,
                         simulation_time, show_progress_bar, nice_output, plot, plot_path, seed)


def csma_ca(source_number, packet_ready_prob, max_backoff, simulation_time,
            show_progress_bar=False, nice_output=False, plot=False, plot_path=None, seed=None):
    """CSMA/CA run; same arguments and return order as saloha()."""
    return _run_protocol(Protocol.CSMA_CA, source_number, packet_ready_prob, max_backoff,
                         simulation_time, show_progress_bar, nice_output, plot, plot_path, seed)
