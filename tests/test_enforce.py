"""Tests for suspending components of unpermitted violators."""

from __future__ import annotations

from typing import Any

from conftest import Recorder
from netwarden.enforce import enforce
from netwarden.host import Component, ComponentHost, ComponentHostProtocol, component_identity

A = "mod://plugins/A"
B = "mod://plugins/B"


def _host_with(*identities: str) -> tuple[ComponentHost, dict[str, Recorder]]:
    host = ComponentHost()
    components = {}
    for identity in identities:
        component = Recorder()
        host.register(component, identity=identity)
        component.on_awake()
        components[identity] = component
    return host, components


class BrokenHost:
    """Host whose enumeration fails for one identity and suspension for another."""

    def __init__(self, inner: ComponentHost, bad_enumerate: str, bad_suspend: str):
        self.inner = inner
        self.bad_enumerate = bad_enumerate
        self.bad_suspend = bad_suspend

    def enumerate_component_instances(self, identity: str) -> list[Any]:
        if identity == self.bad_enumerate:
            raise RuntimeError("assembly unloaded")
        return [(identity, c) for c in self.inner.enumerate_component_instances(identity)]

    def suspend(self, handle: Any) -> None:
        identity, component = handle
        if identity == self.bad_suspend:
            raise RuntimeError("component destroyed")
        self.inner.suspend(component)

    def is_suspended(self, handle: Any) -> bool:
        return self.inner.is_suspended(handle[1])


class TestEnforce:
    def test_suspends_unpermitted_violator(self):
        host, components = _host_with(A)
        suspended = enforce({A}, {A: False}, host)

        recorder = components[A]
        assert suspended == [recorder]
        assert recorder.enabled is False
        assert recorder.pending_callbacks == 0
        assert recorder.destroy_calls == 1

    def test_missing_permission_means_denied(self):
        host, components = _host_with(A)
        enforce({A}, {}, host)
        assert components[A].enabled is False

    def test_permitted_violator_untouched(self):
        host, components = _host_with(A)
        assert enforce({A}, {A: True}, host) == []
        assert components[A].enabled is True
        assert components[A].pending_callbacks == 1

    def test_non_violators_untouched(self):
        host, components = _host_with(A, B)
        enforce({A}, {A: False, B: False}, host)
        assert components[B].enabled is True

    def test_idempotent(self):
        host, components = _host_with(A)
        enforce({A}, {A: False}, host)
        assert enforce({A}, {A: False}, host) == []
        assert components[A].destroy_calls == 1

    def test_suspended_component_receives_no_callbacks(self):
        host, components = _host_with(A, B)
        enforce({A}, {}, host)
        assert host.tick(1.0) == 1
        assert components[A].ticks == 0
        assert components[B].ticks == 1

    def test_later_spawned_component_suspended_on_next_call(self):
        host, first = _host_with(A)
        enforce({A}, {}, host)
        late = Recorder()
        host.register(late, identity=A)

        assert enforce({A}, {}, host) == [late]
        assert first[A].destroy_calls == 1

    def test_host_errors_skip_only_affected_items(self):
        host, components = _host_with(A, B, "mod://plugins/C")
        broken = BrokenHost(host, bad_enumerate=A, bad_suspend=B)

        suspended = enforce({A, B, "mod://plugins/C"}, {}, broken)

        assert [identity for identity, _ in suspended] == ["mod://plugins/C"]
        assert components[A].enabled is True
        assert components[B].enabled is True
        assert components["mod://plugins/C"].enabled is False


class TestComponentHost:
    def test_satisfies_protocol(self):
        assert isinstance(ComponentHost(), ComponentHostProtocol)

    def test_failing_teardown_still_suspends(self):
        class Fragile(Component):
            def on_destroy(self) -> None:
                raise RuntimeError("socket already closed")

        host = ComponentHost()
        fragile = Fragile()
        host.register(fragile, identity=A)
        host.suspend(fragile)
        assert host.is_suspended(fragile)

    def test_spawn_runs_awake(self):
        host = ComponentHost()
        recorder = host.spawn(Recorder)
        assert recorder.awake_calls == 1
        assert host.enumerate_component_instances(component_identity(Recorder)) == [recorder]

    def test_destroy_runs_teardown(self):
        host, components = _host_with(A)
        host.destroy(components[A])
        assert components[A].destroy_calls == 1
        assert host.enumerate_component_instances(A) == []

    def test_tick_fires_due_callbacks_once(self):
        host, components = _host_with(A)
        assert host.tick(0.5) == 0
        assert host.tick(0.5) == 1
        assert host.tick(5.0) == 0
        assert components[A].ticks == 1
