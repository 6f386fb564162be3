"""Profiler configuration and duration strings.

One ``ProfileConfig`` is shared by the engine, the frame recorder and the GC
hook. Durations are stored as integer nanoseconds but may be set from
strings such as ``"1ms"``, ``"100ms"`` or ``"1.5s"``.
"""

import enum
import os
import re
from collections.abc import Callable, Generator, Mapping
from contextlib import contextmanager
from typing import Any

from beartype import beartype

NANOSECONDS_PER_UNIT: dict[str, int] = {
    "ns": 1,
    "us": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
    "d": 86400 * 1_000_000_000,
}

# (unit, value at which rendering moves up to the next unit)
_UNIT_LADDER: tuple[tuple[str, int | None], ...] = (
    ("ns", 1_000),
    ("us", 1_000),
    ("ms", 1_000),
    ("s", 60),
    ("m", 60),
    ("h", None),
)

_SPAN_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*(ns|us|ms|s|m|h|d)\s*$")

ENV_PREFIX = "NESTED_PROFILE_"


@beartype
def parse_span(text: str) -> int:
    """Parse a duration string into nanoseconds.

    Accepts a non-negative number followed by one of ns, us, ms, s, m, h, d.
    A bare ``"0"`` is also accepted.

    Raises:
        ValueError: if the string is not a duration.
    """
    if text.strip() == "0":
        return 0
    match = _SPAN_RE.match(text)
    if match is None:
        raise ValueError(f"Not a duration: {text!r} (expected e.g. '1ms', '1.5s')")
    number, unit = match.groups()
    return round(float(number) * NANOSECONDS_PER_UNIT[unit])


@beartype
def format_span(ns: int) -> str:
    """Render nanoseconds compactly, e.g. ``10ms``, ``1.5ms``, ``250us``."""
    assert ns >= 0, f"Duration must be non-negative: {ns}ns"
    if ns == 0:
        return "0s"
    # Round within a unit before deciding whether it overflows into the next.
    for unit, limit in _UNIT_LADDER:
        value = round(ns / NANOSECONDS_PER_UNIT[unit], 3)
        if limit is None or value < limit:
            break
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return f"{text}{unit}"


class StartLocation(enum.Enum):
    """Where a profile's start time is rendered."""

    END_OF_PROFILE_FIRST_LINE = "end-of-profile-first-line"
    LINE_PRECEDING_PROFILE = "line-preceding-profile"

    @property
    def description(self) -> str:
        if self is StartLocation.END_OF_PROFILE_FIRST_LINE:
            return "put the time at the end of the profile's first line"
        return "put the time on its own line, before the profile"

    @classmethod
    def from_string(cls, text: str) -> "StartLocation":
        normalized = text.strip().lower().replace("_", "-")
        for location in cls:
            if location.value == normalized:
                return location
        choices = ", ".join(location.value for location in cls)
        raise ValueError(f"Unknown start location {text!r}; expected one of: {choices}")


TagFunction = Callable[[], Any]


class ProfileConfig:
    """Mutable, process-wide profiler settings.

    Args:
        should_profile: Master switch (default: False)
        hide_if_less_than: Frames shorter than this are dropped (default: "1ms")
        hide_top_level_if_less_than: Frames with no open parent shorter than
            this are dropped (default: "100ms")
        start_location: Where the block's start time is rendered
        tag_frames_with: Zero-argument callable invoked once per top-level
            frame; a non-None result is rendered after the frame's message

    Example:
        config = ProfileConfig(should_profile=True, hide_if_less_than="5ms")
        with config.temporarily(should_profile=False):
            ...
    """

    @beartype
    def __init__(
        self,
        should_profile: bool = False,
        hide_if_less_than: str | int = "1ms",
        hide_top_level_if_less_than: str | int = "100ms",
        start_location: StartLocation | str = StartLocation.END_OF_PROFILE_FIRST_LINE,
        tag_frames_with: TagFunction | None = None,
    ) -> None:
        self.should_profile = should_profile
        self.tag_frames_with = tag_frames_with
        self.hide_if_less_than = hide_if_less_than
        self.hide_top_level_if_less_than = hide_top_level_if_less_than
        self.start_location = start_location

    def __repr__(self) -> str:
        return (
            f"ProfileConfig(should_profile={self.should_profile}, "
            f"hide_if_less_than={format_span(self.hide_if_less_than)!r}, "
            f"hide_top_level_if_less_than={format_span(self.hide_top_level_if_less_than)!r}, "
            f"start_location={self.start_location.value!r})"
        )

    @staticmethod
    def _to_ns(value: str | int, name: str) -> int:
        ns = parse_span(value) if isinstance(value, str) else value
        if ns < 0:
            raise ValueError(f"{name} must be non-negative: {ns}ns")
        return ns

    # Assigning a setting (directly, through a set_* method or through
    # temporarily()) always goes through these parsing setters.

    @property
    def hide_if_less_than(self) -> int:
        return self._hide_if_less_than

    @hide_if_less_than.setter
    @beartype
    def hide_if_less_than(self, value: str | int) -> None:
        self._hide_if_less_than = self._to_ns(value, "hide_if_less_than")

    @property
    def hide_top_level_if_less_than(self) -> int:
        return self._hide_top_level_if_less_than

    @hide_top_level_if_less_than.setter
    @beartype
    def hide_top_level_if_less_than(self, value: str | int) -> None:
        self._hide_top_level_if_less_than = self._to_ns(value, "hide_top_level_if_less_than")

    @property
    def start_location(self) -> StartLocation:
        return self._start_location

    @start_location.setter
    @beartype
    def start_location(self, value: StartLocation | str) -> None:
        if isinstance(value, str):
            value = StartLocation.from_string(value)
        self._start_location = value

    def set_hide_if_less_than(self, value: str | int) -> None:
        self.hide_if_less_than = value

    def set_hide_top_level_if_less_than(self, value: str | int) -> None:
        self.hide_top_level_if_less_than = value

    def set_start_location(self, value: StartLocation | str) -> None:
        self.start_location = value

    @contextmanager
    def temporarily(self, **overrides: Any) -> Generator["ProfileConfig", None, None]:
        """Apply attribute overrides for the duration of a ``with`` block."""
        saved = {}
        for name in overrides:
            if name.startswith("_") or not hasattr(self, name):
                raise AttributeError(f"ProfileConfig has no setting {name!r}")
            saved[name] = getattr(self, name)
        try:
            for name, value in overrides.items():
                setattr(self, name, value)
            yield self
        finally:
            for name, value in saved.items():
                setattr(self, name, value)

    @classmethod
    @beartype
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProfileConfig":
        """Build a config from ``NESTED_PROFILE_*`` environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        config = cls()
        flag = env.get(ENV_PREFIX + "SHOULD_PROFILE")
        if flag is not None:
            config.should_profile = flag.strip().lower() in {"1", "true", "yes", "on"}
        hide = env.get(ENV_PREFIX + "HIDE_IF_LESS_THAN")
        if hide is not None:
            config.set_hide_if_less_than(hide)
        hide_top = env.get(ENV_PREFIX + "HIDE_TOP_LEVEL_IF_LESS_THAN")
        if hide_top is not None:
            config.set_hide_top_level_if_less_than(hide_top)
        location = env.get(ENV_PREFIX + "START_LOCATION")
        if location is not None:
            config.set_start_location(location)
        return config
