"""Chain connection configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class ChainConfiguration(BaseSettings):
    """Settings for reading the tipping contract's logs over JSON-RPC.

    All settings can be configured via environment variables with the
    TIPSTREAM_CHAIN_ prefix. For example:
    - TIPSTREAM_CHAIN_RPC_URL=https://testnet-rpc.monad.xyz
    - TIPSTREAM_CHAIN_CONTRACT_ADDRESS=0x...
    - TIPSTREAM_CHAIN_CONFIRMATIONS=3

    Attributes:
        rpc_url: HTTP JSON-RPC endpoint.
        contract_address: Address of the tipping contract.
        start_block: First block to scan when no checkpoint exists.
        confirmations: Blocks behind the chain head that are considered
            final; logs newer than that are not read yet.
        block_range: Maximum number of blocks per ``eth_getLogs`` call.
        poll_interval_seconds: Wait between polls once caught up.
        rpc_max_attempts: Attempts per RPC call before giving up.
    """

    rpc_url: str = "http://localhost:8545"
    contract_address: str = "0x0000000000000000000000000000000000000000"
    start_block: int = Field(default=0, ge=0)
    confirmations: int = Field(default=2, ge=0)
    block_range: int = Field(default=1000, ge=1)
    poll_interval_seconds: float = Field(default=2.0, gt=0)
    rpc_max_attempts: int = Field(default=5, ge=1)

    model_config = {"env_prefix": "TIPSTREAM_CHAIN_"}
