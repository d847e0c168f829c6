"""
Capability scanning for plugin modules.

A module is a violator when any method declared on any of its types contains
a call-like instruction whose target names a networking namespace. The first
such call decides the verdict; classification is per module, not per method.

Only modules living under the plugin root are considered. Host and platform
code outside that root is never scanned and never classified as a violator.

Detection is static. Reflection, dynamically built call targets and code
loaded after the scan are out of reach by construction.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence, TypeVar

from .instructions import MethodBody, ModuleSnapshot, TypeDef

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PLUGIN_ROOT_MARKER = "plugins"

# a pattern may not continue an identifier or a dotted name
_SEGMENT_START = r"(?<![\w.])"


@dataclass(frozen=True)
class CapabilityRule:
    """A call-target namespace that indicates network capability."""

    pattern: str
    category: str  # "network-io", "engine-network", "engine-fetch"
    description: str = ""

    def matches(self, target: str) -> bool:
        """True if the pattern starts a name segment of the target.

        `socket.` matches `socket.socket` and `System.Void System.Net.Sockets...`
        style targets, but not `websocket.connect` or `self.socket.close`.
        """
        return re.search(_SEGMENT_START + re.escape(self.pattern), target) is not None


DEFAULT_RULES: tuple[CapabilityRule, ...] = (
    # CLR plugin namespaces
    CapabilityRule("System.Net", "network-io", "Managed sockets, web clients and DNS"),
    CapabilityRule("UnityEngine.Network", "engine-network", "Engine multiplayer networking"),
    CapabilityRule("UnityEngine.WWW", "engine-fetch", "Engine HTTP fetch"),
    # Python plugins
    CapabilityRule("socket.", "network-io", "Raw sockets and name resolution"),
    CapabilityRule("ssl.", "network-io", "TLS-wrapped sockets"),
    CapabilityRule("socketserver.", "network-io", "Socket servers"),
    CapabilityRule("asyncio.open_connection", "network-io", "Async stream connections"),
    CapabilityRule("asyncio.start_server", "network-io", "Async stream servers"),
    CapabilityRule("ftplib.", "network-io", "FTP client"),
    CapabilityRule("smtplib.", "network-io", "SMTP client"),
    CapabilityRule("telnetlib.", "network-io", "Telnet client"),
    CapabilityRule("xmlrpc.client.", "network-io", "XML-RPC client"),
    CapabilityRule("websockets.", "engine-network", "WebSocket connections"),
    CapabilityRule("http.client.", "engine-fetch", "HTTP client connections"),
    CapabilityRule("http.server.", "engine-fetch", "HTTP servers"),
    CapabilityRule("urllib.request.", "engine-fetch", "URL fetching"),
    CapabilityRule("urllib3.", "engine-fetch", "HTTP connection pools"),
    CapabilityRule("requests.", "engine-fetch", "HTTP requests"),
    CapabilityRule("httpx.", "engine-fetch", "HTTP requests"),
    CapabilityRule("aiohttp.", "engine-fetch", "Async HTTP client/server"),
)


@dataclass(frozen=True)
class CapabilityMatch:
    """The call that made a module a violator."""

    identity: str
    type_name: str
    method_name: str
    target: str
    rule: CapabilityRule
    line: int | None = None

    def describe(self) -> str:
        where = f"{self.type_name}.{self.method_name}"
        if self.line is not None:
            where += f" (line {self.line})"
        return f"{where} calls {self.target} [{self.rule.category}: {self.rule.pattern}]"


def _iter_logged(items: Iterable[T], what: str) -> Iterator[T]:
    """Iterate, logging and stopping at the first failure instead of raising."""
    try:
        iterator = iter(items)
    except Exception as e:
        logger.warning(f"Skipping unreadable {what}: {e}")
        return
    while True:
        try:
            item = next(iterator)
        except StopIteration:
            return
        except Exception as e:
            logger.warning(f"Skipping unreadable {what}: {e}")
            return
        yield item


class CapabilityScanner:
    """Pattern-matches call targets of plugin modules against capability rules."""

    def __init__(
        self,
        rules: Sequence[CapabilityRule] = DEFAULT_RULES,
        plugin_root_marker: str | None = DEFAULT_PLUGIN_ROOT_MARKER,
    ):
        self.rules = tuple(rules)
        self.plugin_root_marker = plugin_root_marker

    def is_eligible(self, identity: str) -> bool:
        """Only modules under the plugin root are ever scanned (None: every module)."""
        if self.plugin_root_marker is None:
            return True
        return bool(self.plugin_root_marker) and self.plugin_root_marker in identity

    def match_target(self, target: str) -> CapabilityRule | None:
        for rule in self.rules:
            if rule.matches(target):
                return rule
        return None

    def scan(self, module: ModuleSnapshot) -> bool:
        """Return True if the module calls into any forbidden namespace."""
        return self.find_violation(module) is not None

    def find_violation(self, module: ModuleSnapshot) -> CapabilityMatch | None:
        """Return the first forbidden call in the module, or None."""
        if not self.is_eligible(module.identity):
            return None

        for type_def in _iter_logged(module.instructions, f"types of {module.identity}"):
            try:
                match = self._scan_type(module.identity, type_def)
            except Exception as e:
                logger.warning(f"Skipping type in {module.identity}: {e}")
                continue
            if match is not None:
                return match
        return None

    def _scan_type(self, identity: str, type_def: TypeDef) -> CapabilityMatch | None:
        for method in _iter_logged(type_def.methods, f"methods of {type_def.name}"):
            # inherited methods are scanned in their declaring module
            if method is None or method.declaring_type != type_def.name:
                continue
            match = self._scan_method(identity, type_def, method)
            if match is not None:
                return match
        return None

    def _scan_method(
        self, identity: str, type_def: TypeDef, method: MethodBody
    ) -> CapabilityMatch | None:
        if method.instructions is None:
            return None

        label = f"body of {type_def.name}.{method.name}"
        for instruction in _iter_logged(method.instructions, label):
            if not instruction.opcode.is_call or not instruction.target:
                continue
            rule = self.match_target(instruction.target)
            if rule is not None:
                return CapabilityMatch(
                    identity=identity,
                    type_name=type_def.name,
                    method_name=method.name,
                    target=instruction.target,
                    rule=rule,
                    line=instruction.line,
                )
        return None
