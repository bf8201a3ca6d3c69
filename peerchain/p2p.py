"""Messages exchanged between peers and the node that reacts to them."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from peerchain.chain import App, Block, create_block

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    """Topics every node subscribes to."""

    CHAIN = "chains"
    BLOCK = "blocks"


def _field(obj: Any, key: str, kind: type) -> Any:
    if not isinstance(obj, dict) or not isinstance(obj.get(key), kind):
        raise ValueError(f"expected a JSON object with {key!r}")
    return obj[key]


@dataclass
class ChainResponse:
    """A copy of a node's chain, addressed to one peer."""

    blocks: list[Block]
    receiver: str

    def to_json(self) -> str:
        return json.dumps(
            {"blocks": [block.to_dict() for block in self.blocks], "receiver": self.receiver},
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> ChainResponse:
        return cls._from_object(json.loads(text))

    @classmethod
    def _from_object(cls, obj: Any) -> ChainResponse:
        blocks = _field(obj, "blocks", list)
        receiver = _field(obj, "receiver", str)
        return cls(blocks=[Block.from_dict(item) for item in blocks], receiver=receiver)


@dataclass
class LocalChainRequest:
    """A request that the named peer send its chain."""

    from_peer_id: str

    def to_json(self) -> str:
        return json.dumps({"from_peer_id": self.from_peer_id}, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | bytes) -> LocalChainRequest:
        return cls._from_object(json.loads(text))

    @classmethod
    def _from_object(cls, obj: Any) -> LocalChainRequest:
        return cls(from_peer_id=_field(obj, "from_peer_id", str))


class Node:
    """A peer: its chain, the peers it knows and its reactions to messages."""

    def __init__(self, app: App | None = None, peer_id: str | None = None) -> None:
        self.app = app if app is not None else App()
        self.peer_id = peer_id or uuid.uuid4().hex
        self._peers: set[str] = set()
        self._lock = threading.RLock()

    def discovered(self, peers: Iterable[str]) -> None:
        """Remember newly seen peers."""
        with self._lock:
            self._peers.update(peers)

    def expired(self, peers: Iterable[str]) -> None:
        """Forget peers that went away."""
        with self._lock:
            self._peers.difference_update(peers)

    def peers(self) -> list[str]:
        """Known peers, each once, in sorted order."""
        with self._lock:
            return sorted(self._peers)

    def handle_message(self, source: str, payload: str | bytes) -> ChainResponse | None:
        """React to a message; return a chain response when one must be published."""
        try:
            obj = json.loads(payload)
        except ValueError:
            return None

        with self._lock:
            try:
                response = ChainResponse._from_object(obj)
            except ValueError:
                response = None
            if response is not None:
                if response.receiver == self.peer_id:
                    logger.info("Response from %s:", source)
                    for block in response.blocks:
                        logger.info("%r", block)
                    self.app.blocks = list(
                        self.app.choose_chain(list(self.app.blocks), response.blocks)
                    )
                return None

            try:
                request = LocalChainRequest._from_object(obj)
            except ValueError:
                request = None
            if request is not None:
                if request.from_peer_id != self.peer_id:
                    return None
                logger.info("Sending local chain to %s", source)
                return ChainResponse(blocks=list(self.app.blocks), receiver=source)

            try:
                block = Block.from_dict(obj)
            except ValueError:
                return None
            logger.info("Received new block from %s", source)
            self.app.try_add_block(block)
            return None

    def initial_request(self) -> LocalChainRequest | None:
        """Start the chain and ask the last known peer for its copy, if any."""
        with self._lock:
            self.app.genesis()
            peers = self.peers()
            logger.info("Connected nodes: %d", len(peers))
            return LocalChainRequest(from_peer_id=peers[-1]) if peers else None

    def create_block(self, data: str) -> Block:
        """Mine a block on top of the latest one and append it."""
        with self._lock:
            if not self.app.blocks:
                raise ValueError("the chain has no blocks")
            latest = self.app.blocks[-1]
            block = create_block(latest.id + 1, latest.hash, data)
            self.app.blocks.append(block)
            return block