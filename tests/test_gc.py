"""Tests for GC accounting."""

import gc

import pytest

from nested_profile import (
    GC_TEST_SPAN,
    GcAccounting,
    MemorySink,
    ProfileConfig,
    Profiler,
    RealClock,
)

MS = 1_000_000
STAMP = "[00:00:00.000000 2000-01-01]"


@pytest.fixture
def accounting(profiler):
    return GcAccounting(profiler, gc_counter=lambda: 7)


class TestDeterministicGc:
    def test_fixed_span_is_ten_milliseconds(self):
        assert GC_TEST_SPAN == 10 * MS

    def test_gc_frame_nests_under_open_frame(self, profiler, clock, sink, accounting):
        def body():
            clock.advance(by=100 * MS)
            accounting.record_gc()

        profiler.profile("outer", body)

        assert sink.text == f"110ms outer  {STAMP}\n  10ms gc gcs_done=<opaque>\n"

    def test_clock_advances_by_exactly_the_gc_span(self, clock, accounting):
        before = clock.now()
        accounting.record_gc()
        assert clock.now() - before == 10 * MS

    def test_gc_frame_is_a_sibling_not_a_new_level(self, profiler, clock, sink, accounting):
        def body():
            profiler.profile("step", lambda: clock.advance(by=5 * MS))
            accounting.record_gc()
            clock.advance(by=100 * MS)

        profiler.profile("outer", body)

        assert sink.text.splitlines()[1:] == ["  5ms step", "  10ms gc gcs_done=<opaque>"]

    def test_top_level_gc_frame_is_filtered(self, sink, accounting):
        accounting.record_gc()
        assert sink.blocks == []

    def test_noop_when_profiling_disabled(self, config, clock, sink, accounting):
        config.should_profile = False
        accounting.record_gc()
        assert clock.now() == 0
        assert sink.blocks == []

    def test_counter_leaves_shared_switch_alone(self, profiler, config):
        seen = []
        accounting = GcAccounting(
            profiler, gc_counter=lambda: seen.append(config.should_profile) or 3
        )
        accounting.record_gc()
        assert seen == [True]
        assert config.should_profile is True

    def test_collection_during_counting_is_not_recorded_again(self, profiler, clock, sink):
        def counter():
            accounting.record_gc()
            return 3

        accounting = GcAccounting(profiler, gc_counter=counter)

        def body():
            clock.advance(by=100 * MS)
            accounting.record_gc()

        profiler.profile("outer", body)

        assert sink.text == f"110ms outer  {STAMP}\n  10ms gc gcs_done=<opaque>\n"

    def test_other_profiles_still_record_while_counting(self, profiler, clock, sink):
        def counter():
            profiler.profile("concurrent", lambda: clock.advance(by=150 * MS))
            return 3

        accounting = GcAccounting(profiler, gc_counter=counter)
        accounting.record_gc()

        assert sink.text == "150ms concurrent  [00:00:00.010000 2000-01-01]\n"

    def test_internal_failure_is_swallowed(self, profiler):
        def broken_counter():
            raise RuntimeError("stats unavailable")

        accounting = GcAccounting(profiler, gc_counter=broken_counter)
        accounting.record_gc()
        assert profiler.depth == 0


class TestGcCallbacks:
    def test_install_registers_once(self, profiler):
        accounting = GcAccounting(profiler)
        try:
            accounting.install()
            accounting.install()
            assert gc.callbacks.count(accounting._on_gc) == 1
            assert accounting.installed
        finally:
            accounting.uninstall()
        assert not accounting.installed

    def test_real_collection_is_attributed_to_open_frame(self):
        config = ProfileConfig(
            should_profile=True, hide_if_less_than=0, hide_top_level_if_less_than=0
        )
        sink = MemorySink()
        profiler = Profiler(config, clock=RealClock(), sink=sink)
        accounting = GcAccounting(profiler)
        accounting.install()
        try:
            with profiler.frame("collect"):
                gc.collect()
        finally:
            accounting.uninstall()

        # Automatic collections outside the frame may add top-level gc blocks.
        block = next(b for b in sink.blocks if b.split(" ")[1] == "collect")
        lines = block.splitlines()
        assert any(line.startswith("  ") and " gc gcs_done=" in line for line in lines[1:])
        assert accounting.gc_elapsed_total >= 0

    def test_disabled_collection_still_tracks_total(self, profiler, config):
        config.should_profile = False
        accounting = GcAccounting(profiler)
        accounting.install()
        try:
            gc.collect()
        finally:
            accounting.uninstall()
        assert accounting.gc_elapsed_total > 0
