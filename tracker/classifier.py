"""
Buy classification for enhanced Solana transactions.

A transaction is a BUY for `wallet` when the wallet both
  - receives a non-SOL token (tokenTransfers[].toUserAccount == wallet), and
  - sends a positive amount of SOL (nativeTransfers[].fromUserAccount == wallet).

When the wallet receives several tokens in one transaction only the first
matching transfer, in record order, becomes the event.
TODO: emit one event per received token once the feed can key on (signature, mint).
"""
from __future__ import annotations

from typing import Optional

import config
from tracker.models import RawTransaction, TokenTransfer, TransactionEvent


def find_buy_transfer(tx: RawTransaction, wallet: str) -> Optional[TokenTransfer]:
    """First token transfer into `wallet` that isn't SOL."""
    for t in tx.token_transfers:
        if t.to_account == wallet and t.mint != config.SOL_MINT:
            return t
    return None


def sol_spent_by(tx: RawTransaction, wallet: str) -> float:
    lamports = sum(n.amount for n in tx.native_transfers if n.from_account == wallet)
    return lamports / config.LAMPORTS_PER_SOL


def is_buy(tx: RawTransaction, wallet: str) -> bool:
    if find_buy_transfer(tx, wallet) is None:
        return False
    return any(n.from_account == wallet and n.amount > 0 for n in tx.native_transfers)


def classify(tx: RawTransaction, wallet: str, token_cache) -> Optional[TransactionEvent]:
    """Normalize `tx` into a TransactionEvent, or None if it isn't a buy."""
    if not is_buy(tx, wallet):
        return None
    transfer = find_buy_transfer(tx, wallet)

    info = token_cache.lookup(transfer.mint)
    return TransactionEvent(
        signature=tx.signature,
        wallet=wallet,
        token_address=transfer.mint,
        token_symbol=(info.symbol if info and info.symbol else config.DEFAULT_SYMBOL),
        token_name=(info.name if info and info.name else config.DEFAULT_NAME),
        token_amount=transfer.amount,
        sol_spent=sol_spent_by(tx, wallet),
        timestamp=tx.timestamp,
    )
