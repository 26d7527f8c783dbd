"""Networks the wallet backend can transact on.

Only chains whose native currency is ETH are listed, since every amount in
the API is denominated in ether.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class Chain:
    """One EVM network: where to reach it and how to link to its explorer."""

    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str
    native_symbol: str = "ETH"
    poa: bool = False  # blocks carry oversized extraData

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"

    def with_overrides(self, rpc_url: str = "", chain_id: Optional[int] = None) -> Chain:
        """Copy with a private RPC endpoint and/or a pinned chain id."""
        return replace(
            self,
            rpc_url=rpc_url or self.rpc_url,
            chain_id=chain_id or self.chain_id,
        )


_KNOWN = (
    Chain("ethereum", 1, "https://eth.llamarpc.com", "https://etherscan.io"),
    Chain("sepolia", 11155111, "https://rpc.sepolia.org", "https://sepolia.etherscan.io"),
    Chain("base", 8453, "https://mainnet.base.org", "https://basescan.org", poa=True),
)

CHAINS: dict[str, Chain] = {chain.name: chain for chain in _KNOWN}


def get_chain(name: str) -> Chain:
    try:
        return CHAINS[name]
    except KeyError:
        raise KeyError(f"Unknown chain '{name}'. Available: {', '.join(CHAINS)}") from None
