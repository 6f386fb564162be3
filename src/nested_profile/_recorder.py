"""Frame recording: significance filtering, tree rendering, sink output.

Nested frames that survive the filter are attached to the frame that was
open when they closed. A surviving top-level frame is rendered together with
its recorded descendants as one indented block and written to the sink.
"""

from collections.abc import Callable, Mapping, Sequence
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

from beartype import beartype
from loguru import logger

from nested_profile._clock import Clock
from nested_profile._config import ProfileConfig, StartLocation, format_span
from nested_profile._sink import Sink

# A message, a structured message, or a zero-argument callable producing one.
Label = str | Mapping[Any, Any] | Sequence[Any] | Callable[[], Any]

INDENT = "  "


def format_message(message: Any) -> str:
    """Render a structured message as a single line of text."""
    if isinstance(message, str):
        return message
    if isinstance(message, Mapping):
        return " ".join(f"{key}={format_message(value)}" for key, value in message.items())
    if isinstance(message, (list, tuple)):
        return " ".join(format_message(item) for item in message)
    return repr(message)


def force_label(label: Label) -> Any:
    return label() if callable(label) else label


@dataclass
class OpenFrame:
    """A stack entry for a frame whose body is still running."""

    start: int
    label: Label
    depth: int
    tag: Any = None
    children: list["RecordedFrame"] = field(default_factory=list)


@dataclass
class RecordedFrame:
    """A closed frame that passed the significance filter."""

    start: int
    duration: int
    label: Label
    depth: int
    tag: Any = None
    children: list["RecordedFrame"] = field(default_factory=list)

    def message(self) -> str:
        text = format_message(force_label(self.label))
        if self.tag is not None:
            text = f"{text} {format_message(self.tag)}"
        return text


class FrameRecorder:
    """Decides which frames are reported and writes them out.

    Args:
        config: Shared profiler settings (thresholds, start location)
        clock: Clock whose instants are being recorded
        sink: Destination for rendered top-level blocks

    Design by Contract:
        - stop >= start for every recorded frame
        - a label is forced at most once, and only for reported frames
        - sink failures never propagate to the caller
    """

    @beartype
    def __init__(self, config: ProfileConfig, clock: Clock, sink: Sink) -> None:
        self.config = config
        self.clock = clock
        self.sink = sink
        self._stack: ContextVar[tuple[OpenFrame, ...]] = ContextVar(
            f"nested_profile_stack_{id(self):x}", default=()
        )

    # Active-frame stack -------------------------------------------------

    @property
    def depth(self) -> int:
        return len(self._stack.get())

    def push(self, frame: OpenFrame) -> Token:
        return self._stack.set(self._stack.get() + (frame,))

    def pop(self, token: Token) -> None:
        self._stack.reset(token)

    # Recording ----------------------------------------------------------

    def is_significant(self, duration: int, is_top_level: bool) -> bool:
        if is_top_level and duration < self.config.hide_top_level_if_less_than:
            return False
        return duration >= self.config.hide_if_less_than

    @beartype
    def record_frame(
        self,
        start: int,
        stop: int,
        message: Label,
        tag: Any = None,
        children: list[RecordedFrame] | None = None,
    ) -> None:
        """Record a closed frame against whatever frame is currently open.

        Args:
            start: Instant the frame opened
            stop: Instant the frame closed (MUST be >= start)
            message: Label, forced only if the frame is reported
            tag: Optional extra context rendered after the message
            children: Already-recorded frames nested inside this one
        """
        assert stop >= start, f"Frame stop precedes start: start={start}, stop={stop}"
        duration = stop - start
        stack = self._stack.get()
        is_top_level = not stack
        if not self.is_significant(duration, is_top_level):
            return

        frame = RecordedFrame(
            start=start,
            duration=duration,
            label=message,
            depth=len(stack),
            tag=tag,
            children=children if children is not None else [],
        )
        if not is_top_level:
            stack[-1].children.append(frame)
            return

        try:
            self.sink.write(self.render(frame))
        except Exception as exc:
            logger.warning(f"unable to output profile: {exc!r}")

    # Rendering ----------------------------------------------------------

    def start_stamp(self, instant: int) -> str:
        wall = self.clock.wall_time(instant)
        # Time of day first, date second.
        return f"[{wall:%H:%M:%S.%f} {wall:%Y-%m-%d}]"

    def render(self, frame: RecordedFrame) -> str:
        lines: list[str] = []

        def walk(node: RecordedFrame, indent: int) -> None:
            lines.append(f"{INDENT * indent}{format_span(node.duration)} {node.message()}")
            for child in node.children:
                walk(child, indent + 1)

        walk(frame, frame.depth)
        stamp = self.start_stamp(frame.start)
        if self.config.start_location is StartLocation.LINE_PRECEDING_PROFILE:
            lines.insert(0, stamp)
        else:
            lines[0] = f"{lines[0]}  {stamp}"
        return "\n".join(lines) + "\n"
