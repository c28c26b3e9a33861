"""web3.py integration: the tipping contract as an event source.

Usage:
    >>> from tipstream.integrations.web3 import ChainConfiguration, Web3LogSource
    >>> source = Web3LogSource(ChainConfiguration())
"""

from .abi import TIPPING_EVENTS_ABI, delegation_id
from .config import ChainConfiguration
from .source import RPC_RETRYABLE_EXCEPTIONS, Web3LogSource, to_raw_event

__all__ = [
    "ChainConfiguration",
    "RPC_RETRYABLE_EXCEPTIONS",
    "TIPPING_EVENTS_ABI",
    "Web3LogSource",
    "delegation_id",
    "to_raw_event",
]
