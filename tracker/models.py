from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import config
from utils import iso_from_epoch, safe_float, safe_int


@dataclass(frozen=True)
class TokenTransfer:
    from_account: str
    to_account: str
    mint: str
    amount: float               # source units, not decimals-adjusted


@dataclass(frozen=True)
class NativeTransfer:
    from_account: str
    to_account: str
    amount: int                 # lamports


@dataclass(frozen=True)
class RawTransaction:
    """One enhanced transaction as returned by the indexer."""
    signature: str
    timestamp: int
    token_transfers: List[TokenTransfer] = field(default_factory=list)
    native_transfers: List[NativeTransfer] = field(default_factory=list)

    @classmethod
    def from_helius(cls, tx: Dict[str, Any]) -> "RawTransaction":
        token_transfers = [
            TokenTransfer(
                from_account=t.get("fromUserAccount") or "",
                to_account=t.get("toUserAccount") or "",
                mint=t.get("mint") or "",
                amount=safe_float(t.get("tokenAmount")),
            )
            for t in (tx.get("tokenTransfers") or [])
            if isinstance(t, dict)
        ]
        native_transfers = [
            NativeTransfer(
                from_account=n.get("fromUserAccount") or "",
                to_account=n.get("toUserAccount") or "",
                amount=safe_int(n.get("amount")),
            )
            for n in (tx.get("nativeTransfers") or [])
            if isinstance(n, dict)
        ]
        return cls(
            signature=tx.get("signature") or "",
            timestamp=safe_int(tx.get("timestamp")),
            token_transfers=token_transfers,
            native_transfers=native_transfers,
        )


@dataclass(frozen=True)
class TokenMetadata:
    symbol: str
    name: str
    decimals: Optional[int] = None


@dataclass(frozen=True)
class TransactionEvent:
    """A normalized buy: the wallet spent SOL and received a token."""
    signature: str
    wallet: str
    token_address: str
    token_amount: float
    sol_spent: float            # whole SOL
    timestamp: int              # unix seconds, ordering key
    token_symbol: str = config.DEFAULT_SYMBOL
    token_name: str = config.DEFAULT_NAME
    type: str = "BUY"

    @property
    def time(self) -> str:
        return iso_from_epoch(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "wallet": self.wallet,
            "tokenAddress": self.token_address,
            "tokenSymbol": self.token_symbol,
            "tokenName": self.token_name,
            "tokenAmount": self.token_amount,
            "solSpent": self.sol_spent,
            "time": self.time,
            "type": self.type,
            "timestamp": self.timestamp,
        }


class TransactionSource(Protocol):
    def fetch_recent(self, wallet: str) -> List[RawTransaction]:
        """Recent transactions for a wallet. Raises FetchError on failure."""


class TokenMetadataSource(Protocol):
    def fetch(self, token_address: str) -> Optional[TokenMetadata]:
        """Metadata for a mint, None if unknown. Raises FetchError on transport errors."""
