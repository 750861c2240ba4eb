"""Per-wallet operation catalog used by the account pipeline."""
