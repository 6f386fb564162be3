"""The profiling engine: brackets units of work with nested frames."""

import functools
import inspect
from collections.abc import Awaitable, Callable, Generator
from contextlib import contextmanager
from contextvars import Token
from typing import Any, TypeVar

from beartype import beartype
from loguru import logger

from nested_profile._clock import Clock, RealClock
from nested_profile._config import ProfileConfig
from nested_profile._recorder import FrameRecorder, Label, OpenFrame
from nested_profile._sink import LoguruSink, Sink

T = TypeVar("T")


class Profiler:
    """Nested call-stack profiler.

    Every profiled unit of work becomes a frame. Frames opened while another
    frame is running nest beneath it; when a top-level frame closes, the whole
    tree that passed the significance filter is rendered to the sink.

    Args:
        config: Shared settings (default: a fresh ProfileConfig, disabled)
        clock: Time source (default: RealClock)
        sink: Output destination (default: LoguruSink)

    Example:
        profiler = Profiler(ProfileConfig(should_profile=True), sink=MemorySink())
        result = profiler.profile("load rows", lambda: load(path))

        with profiler.frame(lambda: f"parse {path}"):
            parse(path)

    Design by Contract:
        - when disabled, the body runs with no clock reads and no stack change
        - the enable flag is read once, when the frame opens
        - the stack entry is popped on return, exception and cancellation
        - exceptions from the body propagate unchanged
    """

    @beartype
    def __init__(
        self,
        config: ProfileConfig | None = None,
        clock: Clock | None = None,
        sink: Sink | None = None,
    ) -> None:
        self.config = config if config is not None else ProfileConfig()
        self.clock = clock if clock is not None else RealClock()
        self.recorder = FrameRecorder(
            self.config, self.clock, sink if sink is not None else LoguruSink()
        )

    @property
    def sink(self) -> Sink:
        return self.recorder.sink

    @property
    def depth(self) -> int:
        """Number of frames currently open in this context."""
        return self.recorder.depth

    def _tag(self) -> Any:
        tag_frames_with = self.config.tag_frames_with
        if tag_frames_with is None:
            return None
        try:
            return tag_frames_with()
        except Exception as exc:
            logger.warning(f"profile frame tag function failed: {exc!r}")
            return None

    def _open(self, label: Label) -> tuple[OpenFrame, Token]:
        depth = self.recorder.depth
        tag = self._tag() if depth == 0 else None
        frame = OpenFrame(start=self.clock.now(), label=label, depth=depth, tag=tag)
        return frame, self.recorder.push(frame)

    def _close(self, frame: OpenFrame, token: Token) -> None:
        try:
            stop = self.clock.now()
        finally:
            self.recorder.pop(token)
        try:
            self.recorder.record_frame(
                frame.start, stop, frame.label, tag=frame.tag, children=frame.children
            )
        except Exception as exc:
            logger.warning(f"unable to output profile: {exc!r}")

    @beartype
    def profile(self, label: Label, body: Callable[[], T]) -> T:
        """Run ``body`` inside a frame and return its result.

        Args:
            label: Frame message, or a zero-argument callable producing it.
                A callable is only invoked if the frame is reported.
            body: The unit of work
        """
        if not self.config.should_profile:
            return body()
        frame, token = self._open(label)
        try:
            return body()
        finally:
            self._close(frame, token)

    @beartype
    async def profile_async(self, label: Label, body: Callable[[], Awaitable[T]]) -> T:
        """Async variant of ``profile``; the frame stays open across awaits."""
        if not self.config.should_profile:
            return await body()
        frame, token = self._open(label)
        try:
            return await body()
        finally:
            self._close(frame, token)

    @contextmanager
    def frame(self, label: Label) -> Generator[None, None, None]:
        """Context manager form of ``profile``."""
        if not self.config.should_profile:
            yield
            return
        frame, token = self._open(label)
        try:
            yield
        finally:
            self._close(frame, token)

    def profiled(self, label: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator profiling every call of a sync or async function.

        The label defaults to the function's qualified name.
        """

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            name = label if label is not None else fn.__qualname__
            return profiling_wrapper(fn, lambda args, kwargs: name, lambda: self)

        return decorator


def profiling_wrapper(
    fn: Callable[..., Any],
    make_label: Callable[[tuple, dict], Label],
    resolve: Callable[[], Profiler],
) -> Callable[..., Any]:
    """Wrap ``fn`` so each call runs in a frame of the profiler ``resolve()`` returns.

    Coroutine functions get an async wrapper using ``profile_async``.
    """
    if inspect.iscoroutinefunction(fn):

        @functools.wraps(fn)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            return await resolve().profile_async(
                make_label(args, kwargs), lambda: fn(*args, **kwargs)
            )

        return async_wrapper

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return resolve().profile(make_label(args, kwargs), lambda: fn(*args, **kwargs))

    return wrapper
