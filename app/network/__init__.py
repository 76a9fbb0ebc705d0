"""
Investor connections derived from shared portfolio companies.
"""
from app.network.connections import ConnectionsEngine

__all__ = ["ConnectionsEngine"]
