import pytest

from random_access_engine import Protocol, SimulationConfig


class ScriptedRandom:
    """Stand-in random source replaying fixed draws and recording the call order."""

    def __init__(self, uniforms=(), backoffs=()):
        self.uniforms = list(uniforms)
        self.backoffs = list(backoffs)
        self.calls = []

    def uniform(self):
        self.calls.append('u')
        return self.uniforms.pop(0)

    def backoff(self, max_backoff):
        self.calls.append('b')
        value = self.backoffs.pop(0)
        assert 1 <= value <= max_backoff
        return value


@pytest.fixture
def scripted():
    return ScriptedRandom


@pytest.fixture(params=[Protocol.SLOTTED_ALOHA, Protocol.CSMA_CA], ids=["aloha", "csma"])
def protocol(request):
    return request.param


@pytest.fixture
def busy_config():
    return SimulationConfig(source_number=8, packet_ready_prob=0.1, max_backoff=8,
                            simulation_time=500, random_seed=7)
