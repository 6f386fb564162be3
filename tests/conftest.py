"""Shared fixtures: a deterministic profiler writing to memory."""

import pytest

from nested_profile import MemorySink, ProfileConfig, Profiler, VirtualClock


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def config() -> ProfileConfig:
    return ProfileConfig(should_profile=True)


@pytest.fixture
def profiler(config: ProfileConfig, clock: VirtualClock, sink: MemorySink) -> Profiler:
    return Profiler(config, clock=clock, sink=sink)
