"""In-memory ledgers for tokens, non-fungible tokens, reward pools and price oracles."""

__version__ = "0.1.0"