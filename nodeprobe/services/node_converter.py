"""Conversion of caller-supplied node dicts into core-ready configurations.

Schema conversion between proxy formats belongs to the caller; the converter
here only checks that a node is something the core can run (a known proxy
type with a server and a valid port) and normalises the port to an int.
Nodes that fail are reported with ``NodeConversionError`` and left out of the
batch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from nodeprobe.middleware.error_handler import NodeConversionError

SUPPORTED_TYPES: frozenset[str] = frozenset(
    {
        "http",
        "socks5",
        "ss",
        "ssr",
        "vmess",
        "vless",
        "trojan",
        "snell",
        "hysteria",
        "hysteria2",
        "tuic",
        "wireguard",
        "ssh",
        "anytls",
    }
)


class NodeConverter(ABC):
    """Turns one caller node into the configuration submitted to the core."""

    @abstractmethod
    def convert(self, raw: object) -> dict:
        """Return the core configuration for *raw*.

        Raises
        ------
        NodeConversionError
            If the node cannot be run by the core.
        """
        ...


class CoreNodeConverter(NodeConverter):
    """Validates nodes that are already in the core's (Clash-style) schema."""

    def __init__(self, supported_types: frozenset[str] = SUPPORTED_TYPES) -> None:
        self._supported_types = supported_types

    def convert(self, raw: object) -> dict:
        if not isinstance(raw, dict):
            raise NodeConversionError(f"Node must be a mapping, got {type(raw).__name__}")

        name = raw.get("name", "")
        proxy_type = str(raw.get("type", "")).strip().lower()
        if proxy_type not in self._supported_types:
            raise NodeConversionError(f"Unsupported proxy type {proxy_type!r}", node=name)

        server = raw.get("server")
        if not isinstance(server, str) or not server.strip():
            raise NodeConversionError("Node has no server", node=name)

        try:
            port = int(raw.get("port"))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise NodeConversionError(f"Invalid port {raw.get('port')!r}", node=name) from None
        if not 0 < port < 65536:
            raise NodeConversionError(f"Port out of range: {port}", node=name)

        config = dict(raw)
        config["type"] = proxy_type
        config["port"] = port
        return config
