import random

import pytest

from kaibrain.telemetry import MoveRecord


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


def make_move(direction="UP", position=(5, 5), length=1, boundary=5, turn=0, reaction=100.0, timestamp=0.0):
    return MoveRecord(
        timestamp=timestamp,
        direction=direction,
        position=position,
        length=length,
        distance_to_objective=3,
        near_boundary=boundary <= 1,
        boundary_distance=boundary,
        turn_angle=turn,
        reaction_ms=reaction,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)
