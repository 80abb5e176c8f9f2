import pytest

from compare_simpy import SimPyAlohaModel, run_head_to_head_validation
from random_access_engine import Protocol, SimulationConfig, run_simulation


def test_single_always_ready_source_matches_engine():
    cfg = SimulationConfig(source_number=1, packet_ready_prob=1.0, max_backoff=4, simulation_time=10)
    stats = SimPyAlohaModel(cfg).run()
    assert stats == {'traffic_offered': 1.0, 'throughput': 1.0, 'mean_delay': 0.0, 'collision_probability': 0.0}


def test_permanent_collision_matches_engine():
    cfg = SimulationConfig(source_number=2, packet_ready_prob=1.0, max_backoff=1, simulation_time=30)
    model = SimPyAlohaModel(cfg)
    stats = model.run()
    engine = run_simulation(cfg)
    assert stats['throughput'] == engine.throughput == 0.0
    assert stats['collision_probability'] == engine.collision_probability == 1.0
    assert stats['traffic_offered'] == engine.traffic_offered == 2.0
    assert stats['mean_delay'] == engine.mean_delay == 30
    assert len(model.time_series) == 30


def test_idle_run_records_every_slot():
    cfg = SimulationConfig(source_number=3, packet_ready_prob=0.0, simulation_time=12)
    model = SimPyAlohaModel(cfg)
    model.run()
    assert [row['slot'] for row in model.time_series] == list(range(1, 13))
    assert all(row['mean_delay'] == 12 for row in model.time_series)


def test_csma_is_not_modelled():
    with pytest.raises(ValueError):
        SimPyAlohaModel(SimulationConfig(protocol=Protocol.CSMA_CA))


def test_head_to_head_agreement():
    cfg = SimulationConfig(source_number=10, packet_ready_prob=0.02, max_backoff=10,
                           simulation_time=20000, random_seed=1)
    res = run_head_to_head_validation(cfg)
    assert res['diff'] < 0.03
    assert abs(res['engine_traffic_offered'] - res['simpy_traffic_offered']) < 0.05
    assert 0 < res['theoretical_throughput'] < 1
