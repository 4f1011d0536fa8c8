"""Concurrent availability probing of proxy nodes through a local proxy core."""

__version__ = "1.0.0"
