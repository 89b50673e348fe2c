"""
Allowlist Merkle proofs.

The hash is pinned to keccak-256 (the Ethereum variant, legacy Keccak padding,
not NIST SHA3-256) so that proofs generated off-system with common Merkle tooling
verify here. Interior nodes hash the two children in ascending byte order, which
makes a proof independent of the order the tree was built in.

Leaves:
    leaf(address)         = keccak(address_bytes)
    leaf(address, amount) = keccak(address_bytes || amount as 8 little-endian bytes)

The amount-bound leaf is not used by the buy flow; it exists for a per-address
purchase cap allowlist.
"""
from typing import Dict, Iterable, List, Optional, Sequence

from eth_utils import keccak
from solders.pubkey import Pubkey

from mcp_solana_launchpad.utils import to_u64
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes, smaller first."""
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def get_leaf_hash(address: Pubkey, amount: Optional[int] = None) -> bytes:
    """
    Leaf for an allowlisted address, optionally bound to a purchase amount.

    Raises:
        MathOverflowError: If ``amount`` does not fit in u64.
    """
    if amount is None:
        return keccak(bytes(address))
    return keccak(bytes(address) + to_u64(amount).to_bytes(8, "little"))


def verify_merkle_proof(proof: Sequence[bytes], root: bytes, leaf: bytes) -> bool:
    """
    Fold the proof over the leaf and compare the result with the root.

    Args:
        proof: Sibling nodes from the leaf level up to (not including) the root.
        root: Expected 32-byte root.
        leaf: 32-byte leaf hash.

    Returns:
        True if the proof reconstructs the root.
    """
    computed = leaf
    for node in proof:
        computed = hash_pair(computed, node)
    return computed == root


class MerkleTree:
    """
    Sorted-pair keccak Merkle tree used to produce allowlist roots and proofs.

    Leaves are sorted and deduplicated before building. An odd node at the end of a
    level is promoted to the next level unchanged.
    """

    def __init__(self, leaves: Iterable[bytes]):
        self.leaves: List[bytes] = sorted(set(leaves))
        if not self.leaves:
            raise ValueError("Cannot build a Merkle tree without leaves")
        self.levels: List[List[bytes]] = [self.leaves]
        level = self.leaves
        while len(level) > 1:
            next_level = []
            for i in range(0, len(level), 2):
                if i + 1 < len(level):
                    next_level.append(hash_pair(level[i], level[i + 1]))
                else:
                    next_level.append(level[i])
            self.levels.append(next_level)
            level = next_level

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    def proof(self, leaf: bytes) -> List[bytes]:
        try:
            index = self.leaves.index(leaf)
        except ValueError:
            raise ValueError(f"Leaf {leaf.hex()} is not part of the tree")
        proof = []
        for level in self.levels[:-1]:
            sibling = index ^ 1
            if sibling < len(level):
                proof.append(level[sibling])
            index //= 2
        return proof


def build_allowlist(addresses: Iterable[Pubkey]) -> Dict[str, object]:
    """
    Build the allowlist root and a proof for every address.

    Returns:
        {"root": hex, "proofs": {base58 address: [hex node, ...]}}
    """
    addresses = list(addresses)
    tree = MerkleTree(get_leaf_hash(address) for address in addresses)
    proofs = {
        str(address): [node.hex() for node in tree.proof(get_leaf_hash(address))]
        for address in addresses
    }
    logger.debug(f"Built allowlist over {len(tree.leaves)} addresses, root={tree.root.hex()}")
    return {"root": tree.root.hex(), "proofs": proofs}
