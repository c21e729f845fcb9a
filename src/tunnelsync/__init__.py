"""TunnelSync — tunnel network settings reconciliation for mesh VPN clients."""

__version__ = "0.1.0"
