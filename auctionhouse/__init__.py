"""
Auction House

Escrowed English auctions for unique assets:
- Item registry with custody hand-off
- Escrowed bidding with a refund ledger for outbid funds
- Seller cancellation (fee-gated) and finalization
- Atomic, per-auction serialized operations
"""
