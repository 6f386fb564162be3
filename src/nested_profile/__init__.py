"""nested-profile: Nested call-stack profiling with GC accounting.

Provides:
- Profiler: Brackets units of work in nested frames and renders the timing tree
- ProfileConfig: Shared settings (enable switch, significance thresholds, tags)
- FrameRecorder: Significance filtering and indented rendering
- GcAccounting: Attributes garbage-collection pauses to the open frame
- RealClock / VirtualClock: Production and deterministic time sources
- FileSink / MemorySink / LoguruSink: Output destinations
- initialize, enable_profiling, profile_function, ...: Host commands

Usage:
    from nested_profile import MemorySink, ProfileConfig, Profiler

    profiler = Profiler(ProfileConfig(should_profile=True), sink=MemorySink())

    with profiler.frame("build index"):
        profiler.profile("load rows", load_rows)
        profiler.profile(lambda: f"sort {n} rows", sort_rows)

    print(profiler.sink.text)
"""

from nested_profile._clock import Clock, RealClock, VirtualClock
from nested_profile._commands import (
    WrapperRegistry,
    default_profiler,
    disable_profiling,
    enable_profiling,
    frame,
    initialize,
    profile,
    profile_block,
    profile_function,
    profiled,
    registry,
    toggle_profiling,
    unprofile_function,
)
from nested_profile._config import ProfileConfig, StartLocation, format_span, parse_span
from nested_profile._engine import Profiler
from nested_profile._gc import GC_TEST_SPAN, GcAccounting
from nested_profile._recorder import FrameRecorder, RecordedFrame
from nested_profile._sink import FileSink, LoguruSink, MemorySink, Sink, SinkState
from nested_profile._tags import memory_tag

__all__ = [
    "GC_TEST_SPAN",
    "Clock",
    "FileSink",
    "FrameRecorder",
    "GcAccounting",
    "LoguruSink",
    "MemorySink",
    "ProfileConfig",
    "Profiler",
    "RealClock",
    "RecordedFrame",
    "Sink",
    "SinkState",
    "StartLocation",
    "VirtualClock",
    "WrapperRegistry",
    "default_profiler",
    "disable_profiling",
    "enable_profiling",
    "format_span",
    "frame",
    "initialize",
    "memory_tag",
    "parse_span",
    "profile",
    "profile_block",
    "profile_function",
    "profiled",
    "registry",
    "toggle_profiling",
    "unprofile_function",
]

__version__ = "0.1.0"
