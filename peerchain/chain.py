"""Blocks, proof-of-work mining and chain validation."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from itertools import pairwise
from typing import Any, Sequence

logger = logging.getLogger(__name__)

DIFFICULTY_PREFIX = "00"
GENESIS_HASH = "0000f816a87f806bb0073dcf026a64fb40c946b5abee2573702828694d5b4c43"
GENESIS_PREVIOUS_HASH = "Genesis"
GENESIS_DATA = "genesis!"
GENESIS_NONCE = 2836

_PROGRESS_INTERVAL = 100_000
_U64_MAX = 2**64 - 1
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

_FIELDS: tuple[tuple[str, type], ...] = (
    ("id", int),
    ("hash", str),
    ("previous_hash", str),
    ("timestamp", int),
    ("data", str),
    ("nonce", int),
)


class InvalidChainError(Exception):
    """Raised when neither of two competing chains is valid."""


@dataclass(frozen=True)
class Block:
    """One block of the chain."""

    id: int
    hash: str
    previous_hash: str
    timestamp: int
    data: str
    nonce: int

    def to_dict(self) -> dict[str, Any]:
        """Return the block as a JSON-ready mapping, in wire field order."""
        return {name: getattr(self, name) for name, _ in _FIELDS}

    @classmethod
    def from_dict(cls, data: Any) -> Block:
        """Build a block from a mapping, raising ValueError when it does not fit."""
        if not isinstance(data, dict):
            raise ValueError("a block must be a JSON object")
        values: dict[str, Any] = {}
        for name, kind in _FIELDS:
            if name not in data:
                raise ValueError(f"block is missing field {name!r}")
            value = data[name]
            if kind is int:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"block field {name!r} must be an integer")
            elif not isinstance(value, str):
                raise ValueError(f"block field {name!r} must be a string")
            values[name] = value
        for name in ("id", "nonce"):
            if not 0 <= values[name] <= _U64_MAX:
                raise ValueError(f"block field {name!r} is out of range")
        if not _I64_MIN <= values["timestamp"] <= _I64_MAX:
            raise ValueError("block field 'timestamp' is out of range")
        return cls(**values)


def hash_to_binary_representation(digest: bytes) -> str:
    """Concatenate the unpadded binary form of every byte."""
    return "".join(format(byte, "b") for byte in digest)


def calculate_hash(
    block_id: int, timestamp: int, previous_hash: str, data: str, nonce: int
) -> bytes:
    """SHA-256 of the block's fields as compact JSON with sorted keys."""
    document = {
        "id": block_id,
        "previous_hash": previous_hash,
        "data": data,
        "timestamp": timestamp,
        "nonce": nonce,
    }
    text = json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(text.encode("utf-8")).digest()


def mine_block(
    block_id: int, timestamp: int, previous_hash: str, data: str
) -> tuple[int, str]:
    """Search nonces from zero until the hash meets the difficulty prefix."""
    logger.info("Mining block ...")
    nonce = 0
    while True:
        if nonce % _PROGRESS_INTERVAL == 0:
            logger.info("Nonce: %d", nonce)
        digest = calculate_hash(block_id, timestamp, previous_hash, data, nonce)
        binary = hash_to_binary_representation(digest)
        if binary.startswith(DIFFICULTY_PREFIX):
            logger.info(
                "Mined! nonce: %d, hash: %s, binary hash: %s", nonce, digest.hex(), binary
            )
            return nonce, digest.hex()
        nonce += 1


def create_block(block_id: int, previous_hash: str, data: str) -> Block:
    """Mine a new block stamped with the current time."""
    timestamp = int(time.time())
    nonce, digest = mine_block(block_id, timestamp, previous_hash, data)
    return Block(
        id=block_id,
        hash=digest,
        previous_hash=previous_hash,
        timestamp=timestamp,
        data=data,
        nonce=nonce,
    )


@dataclass
class App:
    """A local copy of the chain and the rules that govern it."""

    blocks: list[Block] = field(default_factory=list)

    def genesis(self) -> None:
        """Append the fixed genesis block."""
        self.blocks.append(
            Block(
                id=0,
                hash=GENESIS_HASH,
                previous_hash=GENESIS_PREVIOUS_HASH,
                timestamp=int(time.time()),
                data=GENESIS_DATA,
                nonce=GENESIS_NONCE,
            )
        )

    def try_add_block(self, block: Block) -> bool:
        """Append the block if it follows the latest one; report whether it did."""
        if not self.blocks:
            raise ValueError("the chain has no blocks")
        if self.is_block_valid(block, self.blocks[-1]):
            self.blocks.append(block)
            return True
        logger.error("Could not add block - Invalid")
        return False

    def is_block_valid(self, block: Block, previous_block: Block) -> bool:
        """Check linkage, difficulty, numbering and hash of a block."""
        if block.previous_hash != previous_block.hash:
            logger.warning("Block with id: %d has wrong previous hash", block.id)
            return False
        try:
            digest = bytes.fromhex(block.hash)
        except ValueError:
            logger.warning("Block with id: %d has a hash that is not hex", block.id)
            return False
        if not hash_to_binary_representation(digest).startswith(DIFFICULTY_PREFIX):
            logger.warning("Block with id: %d has invalid difficulty", block.id)
            return False
        if block.id != previous_block.id + 1:
            logger.warning(
                "Block with id: %d is not the next after latest: %d",
                block.id,
                previous_block.id,
            )
            return False
        recomputed = calculate_hash(
            block.id, block.timestamp, block.previous_hash, block.data, block.nonce
        ).hex()
        if recomputed != block.hash:
            logger.warning("Block with id: %d has invalid hash", block.id)
            return False
        return True

    def is_chain_valid(self, chain: Sequence[Block]) -> bool:
        """Every block after the first must be valid against its predecessor."""
        return all(self.is_block_valid(current, previous) for previous, current in pairwise(chain))

    def choose_chain(
        self, local: Sequence[Block], remote: Sequence[Block]
    ) -> Sequence[Block]:
        """Pick the valid chain, preferring the longer one and the local one on ties."""
        local_valid = self.is_chain_valid(local)
        remote_valid = self.is_chain_valid(remote)
        if local_valid and remote_valid:
            return local if len(local) >= len(remote) else remote
        if remote_valid:
            return remote
        if local_valid:
            return local
        raise InvalidChainError("Local and remote chains are both invalid")