"""
Solana Launchpad Package Initialization

This package provides a fixed-price token launchpad for Solana built on the Model
Context Protocol (MCP). Creators open a sale for a new token, buyers purchase at a
fixed price (optionally behind a Merkle allowlist window), and a completed sale is
settled and migrated into an external liquidity pool, after which buyers claim
their tokens.

The package includes:
- Global sale parameters under a single administrator authority
- The per-token sale state machine with checked u64/u128 arithmetic
- In-memory native, token, metadata and pool collaborators
- Keccak Merkle allowlist verification and tree building
- Custom error handling with stable error codes
- MCP server implementation for easy integration
"""
