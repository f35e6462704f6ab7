"""
Slashwatch RPC Module

JSON-RPC 2.0 transport to the settlement chain's execution endpoints.
"""

from .client import EthRpcClient

__all__ = [
    "EthRpcClient",
]
