"""
In-process host: components, their scheduled callbacks, and module discovery.

This is the plugin-host side of the system. The guard only needs three
things from it (enumerate a module's live components, suspend one, ask
whether one is suspended) plus a way to list candidate modules, but a
working host makes the whole flow usable and testable.

Everything runs on the caller's thread. Scheduled callbacks fire from
tick(), never from a background thread.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Iterable, Iterator, Protocol, Sequence, runtime_checkable

from .instructions import ModuleSnapshot
from .reader import module_identity, read_module

logger = logging.getLogger(__name__)


@runtime_checkable
class ComponentHostProtocol(Protocol):
    """What the enforcer needs from a host."""

    def enumerate_component_instances(self, identity: str) -> Sequence[Any]: ...

    def suspend(self, handle: Any) -> None: ...

    def is_suspended(self, handle: Any) -> bool: ...


@dataclass
class ScheduledCallback:
    due: float
    callback: Callable[[], None]


class Component:
    """
    Base class for plugin behaviors.

    Subclasses override on_awake() to acquire resources and on_destroy() to
    release them. A disabled component receives no scheduled callbacks.
    """

    def __init__(self) -> None:
        self.enabled = True
        self.host: ComponentHost | None = None
        self._scheduled: list[ScheduledCallback] = []

    def on_awake(self) -> None:
        pass

    def on_destroy(self) -> None:
        pass

    def invoke(self, callback: Callable[[], None], delay: float = 0.0) -> None:
        """Schedule a callback `delay` seconds of host time from now."""
        now = self.host.clock if self.host is not None else 0.0
        self._scheduled.append(ScheduledCallback(due=now + delay, callback=callback))

    def cancel_invoke(self) -> None:
        self._scheduled.clear()

    @property
    def pending_callbacks(self) -> int:
        return len(self._scheduled)


def component_identity(cls: type) -> str:
    """Identity of the module that defines a component class."""
    module = sys.modules.get(cls.__module__)
    filename = getattr(module, "__file__", None)
    if filename:
        return module_identity(Path(filename))
    return f"python:{cls.__module__}"


class ComponentHost:
    """Registry of live component instances, keyed by defining module."""

    def __init__(self) -> None:
        self.clock = 0.0
        self._instances: dict[str, list[Component]] = {}

    def spawn(self, cls: type[Component], *args: Any, **kwargs: Any) -> Component:
        """Create, register and activate a component."""
        instance = cls(*args, **kwargs)
        self.register(instance)
        instance.on_awake()
        return instance

    def register(self, instance: Component, identity: str | None = None) -> None:
        if identity is None:
            identity = component_identity(type(instance))
        instance.host = self
        self._instances.setdefault(identity, []).append(instance)

    def destroy(self, instance: Component) -> None:
        for instances in self._instances.values():
            if instance in instances:
                instances.remove(instance)
                instance.cancel_invoke()
                instance.on_destroy()
                return

    def enumerate_component_instances(self, identity: str) -> list[Component]:
        return list(self._instances.get(identity, ()))

    def is_suspended(self, handle: Component) -> bool:
        return not handle.enabled

    def suspend(self, handle: Component) -> None:
        """
        Disable a component, drop its pending callbacks and run its teardown.

        Suspending an already-suspended component does nothing.
        """
        if not handle.enabled:
            return
        handle.enabled = False
        handle.cancel_invoke()
        try:
            handle.on_destroy()
        except Exception as e:
            logger.warning(f"Teardown of {type(handle).__name__} failed: {e}")

    def tick(self, delta: float = 0.0) -> int:
        """Advance host time and run due callbacks of enabled components."""
        self.clock += delta
        fired = 0
        for instances in list(self._instances.values()):
            for instance in list(instances):
                if not instance.enabled:
                    continue
                due = [s for s in instance._scheduled if s.due <= self.clock]
                if not due:
                    continue
                instance._scheduled = [s for s in instance._scheduled if s.due > self.clock]
                for scheduled in due:
                    scheduled.callback()
                    fired += 1
        return fired


# --- Candidate discovery ---


def _defines_component(module: ModuleType, base: type) -> bool:
    for value in vars(module).values():
        if (
            isinstance(value, type)
            and value is not base
            and issubclass(value, base)
            and value.__module__ == module.__name__
        ):
            return True
    return False


def discover_loaded_modules(
    base: type = Component,
    modules: dict[str, ModuleType] | None = None,
) -> Iterator[ModuleSnapshot]:
    """Yield snapshots of loaded modules that define a component class."""
    if modules is None:
        modules = sys.modules
    for name, module in list(modules.items()):
        try:
            filename = getattr(module, "__file__", None)
            if not filename or not _defines_component(module, base):
                continue
        except Exception as e:
            logger.debug(f"Skipping module {name} during discovery: {e}")
            continue
        yield read_module(Path(filename))


def discover_plugin_dir(root: Path, pattern: str = "*.py") -> Iterator[ModuleSnapshot]:
    """Yield snapshots of every module file under a plugin directory."""
    for path in sorted(root.rglob(pattern)):
        if "__pycache__" in path.parts or not path.is_file():
            continue
        yield read_module(path)


def snapshots_from(
    entries: Iterable[tuple[str, bytes | None, Iterable[Any]]],
) -> Iterator[ModuleSnapshot]:
    """Adapt (identity, content, instruction stream) triples into snapshots."""
    for identity, content, instructions in entries:
        yield ModuleSnapshot.capture(identity, content, instructions)
