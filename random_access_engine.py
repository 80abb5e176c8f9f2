"""
Slotted Random Access Simulation Engine
Features:
- Slotted ALOHA and CSMA/CA on one slot-driven engine (channel sensing is a config flag)
- LCG RNG (Linear Congruential Generator) or NumPy Generator, seeded for reproducibility
- Explicit source states (Idle / Ready / Backlogged) with per-stage transitions
- Running metrics per slot: offered traffic, throughput, mean delay, collision probability
- Cooperative cancellation and progress callbacks, no UI dependency
- Replications with confidence intervals, load sweeps, comparative analysis
"""

import json
import logging
import math
import multiprocessing
import numbers
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats as scipy_stats

logger = logging.getLogger(__name__)


class Protocol(Enum):
    SLOTTED_ALOHA = "Slotted ALOHA"
    CSMA_CA = "CSMA/CA"


# --- ERRORS ---
class SimulationConfigError(ValueError):
    """Raised when run parameters cannot describe a valid simulation."""


class InvalidSourceCount(SimulationConfigError):
    pass


class InvalidProbability(SimulationConfigError):
    pass


class InvalidDuration(SimulationConfigError):
    pass


def _as_count(value, name: str, error_cls) -> int:
    if isinstance(value, bool):
        raise error_cls(f"{name} must be a positive integer, got {value!r}")
    if isinstance(value, numbers.Integral):
        count = int(value)
    elif isinstance(value, numbers.Real) and math.isfinite(value) and float(value).is_integer():
        count = int(value)
    else:
        raise error_cls(f"{name} must be a positive integer, got {value!r}")
    if count < 1:
        raise error_cls(f"{name} must be a positive integer, got {value!r}")
    return count


# --- CORE COMPONENT: Linear Congruential Generator ---
class LCG:
    def __init__(self, seed: int, a: int = 16807, c: int = 0, m: int = 2147483647):
        self.state = seed if seed != 0 else 1
        self.a = a
        self.c = c
        self.m = m

    def random(self) -> float:
        self.state = (self.a * self.state + self.c) % self.m
        return self.state / self.m


@dataclass
class SimulationConfig:
    protocol: Protocol = Protocol.SLOTTED_ALOHA
    source_number: int = 10
    packet_ready_prob: float = 0.05
    max_backoff: int = 16
    simulation_time: int = 1000
    random_seed: Optional[int] = 42

    use_lcg: bool = False
    lcg_a: int = 16807
    lcg_c: int = 0
    lcg_m: int = 2147483647

    @property
    def channel_sensing(self) -> bool:
        return self.protocol == Protocol.CSMA_CA

    def validate(self) -> "SimulationConfig":
        """Check every parameter and normalise integral values in place.

        Raises InvalidSourceCount, InvalidProbability or InvalidDuration.
        """
        self.source_number = _as_count(self.source_number, "source_number", InvalidSourceCount)
        p = self.packet_ready_prob
        if isinstance(p, bool) or not isinstance(p, numbers.Real) or not 0.0 <= p <= 1.0:
            raise InvalidProbability(f"packet_ready_prob must be a real number in [0, 1], got {p!r}")
        self.packet_ready_prob = float(p)
        self.max_backoff = _as_count(self.max_backoff, "max_backoff", InvalidDuration)
        self.simulation_time = _as_count(self.simulation_time, "simulation_time", InvalidDuration)
        return self

    def to_dict(self) -> Dict:
        d = {k: v for k, v in self.__dict__.items() if not k.startswith('_')}
        d['protocol'] = self.protocol.value
        return d


class RandomGenerator:
    """Single shared random source of a run."""

    def __init__(self, config: SimulationConfig):
        self.config = config
        self.np_rng = np.random.default_rng(config.random_seed)
        if config.use_lcg:
            self.lcg = LCG(seed=config.random_seed if config.random_seed else 12345,
                           a=config.lcg_a, c=config.lcg_c, m=config.lcg_m)

    def uniform(self) -> float:
        if self.config.use_lcg: return self.lcg.random()
        return float(self.np_rng.random())

    def backoff(self, max_backoff: int) -> int:
        """Uniform integer on {1, ..., max_backoff}."""
        if self.config.use_lcg:
            return min(max_backoff, 1 + int(self.lcg.random() * max_backoff))
        return int(self.np_rng.integers(1, max_backoff + 1))


# --- SOURCE STATES ---
@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Ready:
    since_slot: int


@dataclass(frozen=True)
class Backlogged:
    # countdown ticks left before the source is Ready again
    remaining: int
    since_slot: int


SourceState = Union[Idle, Ready, Backlogged]

IDLE = Idle()


def backlog(ticks: int, since_slot: int) -> SourceState:
    if ticks <= 0:
        return Ready(since_slot)
    return Backlogged(ticks, since_slot)


def countdown(state: SourceState) -> SourceState:
    if isinstance(state, Backlogged):
        return backlog(state.remaining - 1, state.since_slot)
    return state


@dataclass
class Source:
    source_id: int
    state: SourceState = IDLE
    backoff: int = 0

    @property
    def status(self) -> int:
        """Integer encoding: 0 idle, 1 ready, >1 slots left in backlog."""
        if isinstance(self.state, Ready): return 1
        if isinstance(self.state, Backlogged): return self.state.remaining + 1
        return 0

    @property
    def ready_timestamp(self) -> Optional[int]:
        return getattr(self.state, 'since_slot', None)


@dataclass
class SystemState:
    sources: List[Source] = field(default_factory=list)
    channel_busy: bool = False
    current_slot: int = 0
    total_attempts: int = 0
    total_successes: int = 0
    total_collisions: int = 0
    delays: List[int] = field(default_factory=list)
    delay_total: int = 0

    def attempters(self) -> List[Source]:
        return [s for s in self.sources if isinstance(s.state, Ready)]


class CancellationToken:
    """Cooperative stop request, checked by the engine at every slot boundary."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    def reset(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled


# (slots_completed, total_slots, attempts_so_far, successes_so_far)
ProgressCallback = Callable[[int, int, int, int], None]


@dataclass
class SimulationResult:
    config: SimulationConfig
    throughput: float
    mean_delay: float
    traffic_offered: float
    collision_probability: float
    slots_completed: int
    cancelled: bool
    attempts: int
    successes: int
    collisions: int
    delays: List[int]
    traffic_offered_series: np.ndarray
    throughput_series: np.ndarray
    mean_delay_series: np.ndarray
    collision_probability_series: np.ndarray

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return self.throughput, self.mean_delay, self.traffic_offered, self.collision_probability

    def get_time_series_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({
            'slot': np.arange(1, self.slots_completed + 1),
            'traffic_offered': self.traffic_offered_series,
            'throughput': self.throughput_series,
            'mean_delay': self.mean_delay_series,
            'collision_probability': self.collision_probability_series,
        })

    def get_delay_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({'packet': np.arange(1, len(self.delays) + 1), 'delay': self.delays})

    def to_dict(self) -> Dict:
        return {
            'protocol': self.config.protocol.value,
            'throughput': self.throughput,
            'mean_delay': self.mean_delay,
            'traffic_offered': self.traffic_offered,
            'collision_probability': self.collision_probability,
            'slots_completed': self.slots_completed,
            'cancelled': self.cancelled,
            'total_attempts': self.attempts,
            'total_successes': self.successes,
            'total_collisions': self.collisions,
        }

    def export_to_json(self) -> str:
        export_data = {'config': self.config.to_dict(), 'statistics': self.to_dict(),
            'time_series': self.get_time_series_dataframe().to_dict(orient='records')}
        return json.dumps(export_data, indent=2, default=str)


class RandomAccessSimulator:
    def __init__(self, config: SimulationConfig, rng: Optional[RandomGenerator] = None):
        self.config = config.validate()
        self.rng = rng if rng is not None else RandomGenerator(self.config)
        self.state = SystemState()

    # --- Traffic Generator ---
    def generate_traffic(self):
        c = self.config
        slot = self.state.current_slot
        busy = c.channel_sensing and self.state.channel_busy
        for source in self.state.sources:
            if isinstance(source.state, Idle):
                if self.rng.uniform() <= c.packet_ready_prob:
                    source.state = Ready(slot)
                    source.backoff = self.rng.backoff(c.max_backoff)
            elif isinstance(source.state, Ready):
                if busy:
                    # deferred on the backoff already held, no fresh draw
                    source.state = backlog(source.backoff - 1, source.state.since_slot)
                else:
                    source.backoff = self.rng.backoff(c.max_backoff)

    # --- Access Controller ---
    def select_attempters(self) -> List[Source]:
        attempters = self.state.attempters()
        self.state.total_attempts += len(attempters)
        return attempters

    # --- Collision Resolver ---
    def resolve(self, attempters: List[Source]):
        st = self.state
        if len(attempters) == 1:
            winner = attempters[0]
            delay = st.current_slot - winner.state.since_slot
            st.total_successes += 1
            st.delays.append(delay)
            st.delay_total += delay
            winner.state = IDLE
            st.channel_busy = True
        elif len(attempters) > 1:
            st.total_collisions += 1
            for source in attempters:
                source.state = Backlogged(source.backoff, source.state.since_slot)
            st.channel_busy = False
        else:
            st.channel_busy = False

        for source in st.sources:
            source.state = countdown(source.state)

    # --- Statistics Accumulator ---
    def record_statistics(self):
        st = self.state
        i = st.current_slot - 1
        self.traffic_offered_series[i] = st.total_attempts / st.current_slot
        self.throughput_series[i] = st.total_successes / st.current_slot
        self.collision_probability_series[i] = st.total_collisions / st.current_slot
        if st.total_successes == 0:
            self.mean_delay_series[i] = self.config.simulation_time
        else:
            self.mean_delay_series[i] = st.delay_total / st.total_successes

    def step(self):
        """Advance one slot through generator, controller, resolver and accumulator."""
        self.state.current_slot += 1
        self.generate_traffic()
        attempters = self.select_attempters()
        self.resolve(attempters)
        self.record_statistics()

    def reset(self):
        n = self.config.simulation_time
        self.state = SystemState(sources=[Source(i) for i in range(self.config.source_number)])
        self.traffic_offered_series = np.zeros(n)
        self.throughput_series = np.zeros(n)
        self.mean_delay_series = np.zeros(n)
        self.collision_probability_series = np.zeros(n)

    def run(self, progress: Optional[ProgressCallback] = None,
            cancel_token: Optional[CancellationToken] = None) -> SimulationResult:
        c = self.config
        self.reset()
        logger.debug("Starting %s run: %s", c.protocol.value, c.to_dict())

        cancelled = False
        while self.state.current_slot < c.simulation_time:
            if cancel_token is not None and cancel_token.cancelled:
                cancelled = True
                logger.warning("Run cancelled after %d of %d slots", self.state.current_slot, c.simulation_time)
                break
            self.step()
            if progress is not None:
                progress(self.state.current_slot, c.simulation_time,
                         self.state.total_attempts, self.state.total_successes)

        result = self.compute_statistics(cancelled)
        logger.info("%s finished %d slots: S=%.4f G=%.4f D=%.2f Pc=%.4f", c.protocol.value,
                    result.slots_completed, result.throughput, result.traffic_offered,
                    result.mean_delay, result.collision_probability)
        return result

    def compute_statistics(self, cancelled: bool = False) -> SimulationResult:
        st = self.state
        k = st.current_slot
        series = [a[:k].copy() for a in (self.traffic_offered_series, self.throughput_series,
                                          self.mean_delay_series, self.collision_probability_series)]
        if k > 0:
            final = [float(s[-1]) for s in series]
        else:
            final = [0.0, 0.0, float(self.config.simulation_time), 0.0]
        return SimulationResult(
            config=self.config,
            traffic_offered=final[0], throughput=final[1],
            mean_delay=final[2], collision_probability=final[3],
            slots_completed=k, cancelled=cancelled,
            attempts=st.total_attempts, successes=st.total_successes,
            collisions=st.total_collisions, delays=list(st.delays),
            traffic_offered_series=series[0], throughput_series=series[1],
            mean_delay_series=series[2], collision_probability_series=series[3])

    def get_source_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([{
            'source_id': s.source_id, 'state': type(s.state).__name__,
            'status': s.status, 'backoff': s.backoff,
            'ready_timestamp': s.ready_timestamp} for s in self.state.sources])


def run_simulation(config: SimulationConfig, progress: Optional[ProgressCallback] = None,
                   cancel_token: Optional[CancellationToken] = None) -> SimulationResult:
    return RandomAccessSimulator(config).run(progress=progress, cancel_token=cancel_token)


# --- ANALYSIS HELPERS ---
def compute_aloha_theoretical(source_number: int, attempt_prob: float) -> Dict:
    """Slotted ALOHA throughput for N sources each attempting with probability q per slot.

    Returns the finite-population throughput S = N q (1-q)^(N-1), the offered
    load G = N q and the Poisson (infinite population) reference G e^(-G).
    """
    n, q = source_number, attempt_prob
    g = n * q
    s = n * q * (1 - q) ** (n - 1)
    return {'G': g, 'S': s, 'S_poisson': g * math.exp(-g),
            'P_idle': (1 - q) ** n, 'P_collision': 1 - (1 - q) ** n - s}


def compute_confidence_interval(data: List[float], confidence: float = 0.95) -> Tuple[float, float, float]:
    if len(data) < 2: return 0.0, 0.0, 0.0
    n = len(data)
    m = float(np.mean(data))
    se = scipy_stats.sem(data)
    if se == 0: return m, m, m
    h = se * scipy_stats.t.ppf((1 + confidence) / 2, n - 1)
    return m, m - h, m + h


METRICS = ('throughput', 'mean_delay', 'traffic_offered', 'collision_probability')


def run_replications(config: SimulationConfig, num_reps: int = 10, confidence: float = 0.95) -> Dict:
    results = {m: [] for m in METRICS}
    base_seed = config.random_seed if config.random_seed else 12345
    for i in range(num_reps):
        res = run_simulation(replace(config, random_seed=base_seed + i * 997))
        for m in METRICS:
            results[m].append(getattr(res, m))
    ci_results = {}
    for key, vals in results.items():
        m, lo, hi = compute_confidence_interval(vals, confidence)
        ci_results[key] = {'mean': m, 'lower': lo, 'upper': hi, 'std': float(np.std(vals)), 'values': vals}
    return ci_results


def _sweep_point(config: SimulationConfig) -> Dict:
    res = run_simulation(config)
    row = {'packet_ready_prob': config.packet_ready_prob}
    row.update(res.to_dict())
    return row


def run_load_sweep(config: SimulationConfig, probabilities: Sequence[float], workers: int = 1) -> pd.DataFrame:
    """One independent run per packet ready probability, optionally across worker processes."""
    configs = [replace(config, packet_ready_prob=p).validate() for p in probabilities]
    if workers > 1 and len(configs) > 1:
        with multiprocessing.Pool(processes=min(workers, len(configs))) as pool:
            rows = pool.map(_sweep_point, configs)
    else:
        rows = [_sweep_point(cfg) for cfg in configs]
    return pd.DataFrame(rows)


def run_comparative_analysis(configs: List[SimulationConfig]) -> List[Dict]:
    results = []
    for cfg in configs:
        res = run_simulation(cfg)
        row = res.to_dict()
        row.update(cfg.to_dict())
        row['time_series_df'] = res.get_time_series_dataframe()
        results.append(row)
    return results
