"""netwarden - static network-capability gate for host plugins."""

__version__ = "0.1.0"
