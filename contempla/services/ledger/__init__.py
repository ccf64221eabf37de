"""Credit ledger and balance usage."""
