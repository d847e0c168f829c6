"""Tests for candidate module discovery."""

from __future__ import annotations

from pathlib import Path
from types import ModuleType

from conftest import make_type
from netwarden.fingerprint import fingerprint
from netwarden.host import (
    Component,
    discover_loaded_modules,
    discover_plugin_dir,
    snapshots_from,
)
from netwarden.instructions import Instruction, OpCode
from netwarden.reader import module_identity


def _loaded(name: str, path: Path | None, with_component: bool) -> ModuleType:
    module = ModuleType(name)
    if path is not None:
        path.write_text("x = 1\n", encoding="utf-8")
        module.__file__ = str(path)
    if with_component:
        behavior = type("Behavior", (Component,), {"__module__": name})
        module.Behavior = behavior
    module.Component = Component
    return module


class TestDiscoverLoadedModules:
    def test_only_modules_defining_components(self, plugin_dir: Path):
        modules = {
            "chat": _loaded("chat", plugin_dir / "chat.py", with_component=True),
            "helpers": _loaded("helpers", plugin_dir / "helpers.py", with_component=False),
            "builtin_like": _loaded("builtin_like", None, with_component=True),
        }
        snapshots = list(discover_loaded_modules(modules=modules))
        assert [s.identity for s in snapshots] == [module_identity(plugin_dir / "chat.py")]

    def test_reimported_base_is_not_a_definition(self, plugin_dir: Path):
        module = _loaded("reexport", plugin_dir / "reexport.py", with_component=False)
        assert list(discover_loaded_modules(modules={"reexport": module})) == []


class TestDiscoverPluginDir:
    def test_walks_tree_and_skips_bytecode_cache(self, plugin_dir: Path):
        (plugin_dir / "maps").mkdir()
        (plugin_dir / "maps" / "world.py").write_text("pass\n", encoding="utf-8")
        (plugin_dir / "chat.py").write_text("pass\n", encoding="utf-8")
        (plugin_dir / "notes.txt").write_text("not a module\n", encoding="utf-8")
        (plugin_dir / "__pycache__").mkdir()
        (plugin_dir / "__pycache__" / "chat.py").write_text("pass\n", encoding="utf-8")

        identities = [s.identity for s in discover_plugin_dir(plugin_dir)]
        assert identities == [
            module_identity(plugin_dir / "chat.py"),
            module_identity(plugin_dir / "maps" / "world.py"),
        ]

    def test_empty_directory(self, plugin_dir: Path):
        assert list(discover_plugin_dir(plugin_dir)) == []


class TestSnapshotsFrom:
    def test_adapts_triples(self):
        stream = [make_type("Plugin", ("Start", [Instruction(OpCode.CALL, "socket.socket")]))]
        snapshots = list(snapshots_from([("mod://plugins/A", b"abc", stream), ("mod://plugins/B", None, [])]))

        assert snapshots[0].content_fingerprint == fingerprint(b"abc")
        assert snapshots[0].instructions is stream
        assert snapshots[1].content_fingerprint is None
