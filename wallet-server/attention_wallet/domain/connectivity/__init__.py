"""Connectivity domain exports"""

from .monitor import ConnectivityMonitor, tcp_probe

__all__ = ["ConnectivityMonitor", "tcp_probe"]
