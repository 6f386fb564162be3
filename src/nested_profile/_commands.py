"""Host-facing commands around a process-wide default profiler.

``initialize()`` builds the default profiler (file sink, GC hook). The
module-level commands act on it unless a profiler is passed explicitly.
"""

import inspect
import types
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from beartype import beartype
from loguru import logger

from nested_profile._clock import Clock
from nested_profile._config import ProfileConfig
from nested_profile._engine import Profiler, profiling_wrapper
from nested_profile._gc import GcAccounting
from nested_profile._recorder import Label
from nested_profile._sink import FileSink, Sink

T = TypeVar("T")

_default_profiler: Profiler | None = None
_default_gc_accounting: GcAccounting | None = None


@beartype
def initialize(
    directory: Path | None = None,
    config: ProfileConfig | None = None,
    clock: Clock | None = None,
    sink: Sink | None = None,
    install_gc_hook: bool = True,
) -> Profiler:
    """Create the default profiler and register the GC hook.

    Calling again replaces the default profiler; the previous GC hook is
    removed so only one is ever registered.

    Args:
        directory: Where ``profile.log`` lives when no sink is given
            (default: current working directory)
        config: Settings (default: ProfileConfig.from_env())
        clock: Time source (default: RealClock)
        sink: Output destination (default: FileSink in ``directory``)
        install_gc_hook: Register GC accounting in ``gc.callbacks``
    """
    global _default_profiler, _default_gc_accounting

    if _default_gc_accounting is not None:
        _default_gc_accounting.uninstall()
        _default_gc_accounting = None

    if sink is None:
        sink = FileSink(directory if directory is not None else Path.cwd())
    profiler = Profiler(
        config if config is not None else ProfileConfig.from_env(), clock=clock, sink=sink
    )
    if isinstance(sink, FileSink):
        # Start creating the log now so it exists when the first profile lands.
        sink.destination()
    if install_gc_hook:
        _default_gc_accounting = GcAccounting(profiler)
        _default_gc_accounting.install()
    _default_profiler = profiler
    return profiler


def default_profiler() -> Profiler:
    """Return the default profiler, initializing it on first use."""
    if _default_profiler is None:
        return initialize()
    return _default_profiler


def default_gc_accounting() -> GcAccounting | None:
    return _default_gc_accounting


# ---------------------------------------------------------------------------
# Enable / disable
# ---------------------------------------------------------------------------


@beartype
def set_should_profile(value: bool, profiler: Profiler | None = None) -> None:
    profiler = profiler if profiler is not None else default_profiler()
    profiler.config.should_profile = value
    verb = "enabled" if profiler.config.should_profile else "disabled"
    logger.info(f"You just {verb} profiling")


def enable_profiling(profiler: Profiler | None = None) -> None:
    set_should_profile(True, profiler)


def disable_profiling(profiler: Profiler | None = None) -> None:
    set_should_profile(False, profiler)


def toggle_profiling(profiler: Profiler | None = None) -> None:
    profiler = profiler if profiler is not None else default_profiler()
    set_should_profile(not profiler.config.should_profile, profiler)


def profile(label: Label, body: Callable[[], T]) -> T:
    return default_profiler().profile(label, body)


@contextmanager
def frame(label: Label) -> Generator[None, None, None]:
    with default_profiler().frame(label):
        yield


def profiled(label: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator form bound to whichever profiler is the default at call time."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        name = label if label is not None else fn.__qualname__
        return profiling_wrapper(fn, lambda args, kwargs: name, default_profiler)

    return decorator


@beartype
def profile_block(
    description: str, fn: Callable[[], T], profiler: Profiler | None = None
) -> T:
    """Profile one call of ``fn`` under the label ``description``."""
    profiler = profiler if profiler is not None else default_profiler()
    return profiler.profile(description, fn)


# ---------------------------------------------------------------------------
# Wrapping named functions
# ---------------------------------------------------------------------------


@dataclass
class InstalledWrapper:
    name: str
    original: Any
    wrapper: Any
    # Whether the attribute lived in the owner's own __dict__ before wrapping.
    owned: bool = True


def _call_label(name: str, args: tuple, kwargs: dict) -> Callable[[], str]:
    def label() -> str:
        parts = [name, *(repr(arg) for arg in args)]
        parts.extend(f"{key}={value!r}" for key, value in kwargs.items())
        return " ".join(parts)

    return label


class WrapperRegistry:
    """Tracks profiling wrappers installed on module, class or instance attributes.

    Installing on an attribute that already carries a wrapper replaces it;
    the original callable is kept so ``uninstall`` can restore it. An
    attribute found through a class (an inherited method, or a method looked
    up on an instance) is shadowed by the wrapper and unshadowed again on
    ``uninstall``.
    """

    def __init__(self) -> None:
        self._installed: dict[tuple[Any, str], InstalledWrapper] = {}

    def __contains__(self, key: tuple[Any, str]) -> bool:
        return key in self._installed

    def __len__(self) -> int:
        return len(self._installed)

    def get(self, owner: Any, name: str) -> InstalledWrapper | None:
        return self._installed.get((owner, name))

    @staticmethod
    def _lookup(owner: Any, name: str) -> tuple[Any, bool]:
        owned = name in getattr(owner, "__dict__", {})
        original = inspect.getattr_static(owner, name)
        if not owned and not isinstance(owner, (type, types.ModuleType)):
            # Bind through the class, the way owner.<name> would.
            original = getattr(owner, name)
        return original, owned

    @beartype
    def install(self, owner: Any, name: str, profiler: Profiler | None = None) -> InstalledWrapper:
        key = (owner, name)
        existing = self._installed.get(key)
        if existing is not None:
            original, owned = existing.original, existing.owned
        else:
            original, owned = self._lookup(owner, name)

        def resolve() -> Profiler:
            return profiler if profiler is not None else default_profiler()

        def make_label(args: tuple, kwargs: dict) -> Label:
            return _call_label(name, args, kwargs)

        if isinstance(original, (staticmethod, classmethod)):
            wrapper: Any = type(original)(profiling_wrapper(original.__func__, make_label, resolve))
        elif callable(original):
            wrapper = profiling_wrapper(original, make_label, resolve)
        else:
            raise TypeError(f"{name!r} is not callable: {original!r}")

        setattr(owner, name, wrapper)
        entry = InstalledWrapper(
            name=f"profile-wrapper-for-{name}", original=original, wrapper=wrapper, owned=owned
        )
        self._installed[key] = entry
        return entry

    @beartype
    def uninstall(self, owner: Any, name: str) -> bool:
        entry = self._installed.pop((owner, name), None)
        if entry is None:
            return False
        if entry.owned:
            setattr(owner, name, entry.original)
        else:
            delattr(owner, name)
        return True


registry = WrapperRegistry()


@beartype
def profile_function(owner: Any, name: str, profiler: Profiler | None = None) -> None:
    """Profile every call of ``owner.<name>``.

    Applying this twice to the same attribute leaves exactly one wrapper.
    """
    registry.install(owner, name, profiler)
    logger.info(f"You just added profiling of [{name}]")


@beartype
def unprofile_function(owner: Any, name: str) -> bool:
    """Restore the original ``owner.<name>``; returns False if not wrapped."""
    removed = registry.uninstall(owner, name)
    if removed:
        logger.info(f"You just removed profiling of [{name}]")
    return removed
