"""kubechat -- an authenticated chat agent for a portfolio site and its cluster."""

__version__ = "0.1.0"
