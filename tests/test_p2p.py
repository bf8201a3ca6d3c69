import dataclasses
import json

import pytest

from peerchain.chain import GENESIS_HASH, App, Block, InvalidChainError
from peerchain.p2p import ChainResponse, LocalChainRequest, Node, Topic


@pytest.fixture(scope="module")
def mined_chain():
    node = Node(peer_id="peer-b")
    node.initial_request()
    node.create_block("payload")
    return list(node.app.blocks)


def _genesis_node(peer_id):
    node = Node(peer_id=peer_id)
    node.app.genesis()
    return node


def test_topic_lookup_by_name():
    assert Topic("chains") is Topic.CHAIN
    assert Topic("blocks") is Topic.BLOCK
    with pytest.raises(ValueError):
        Topic("other")


def test_created_block_follows_latest(mined_chain):
    block = mined_chain[1]
    assert block.id == 1
    assert block.previous_hash == GENESIS_HASH
    assert block.data == "payload"
    assert App().is_chain_valid(mined_chain)


def test_create_block_on_empty_chain_raises():
    with pytest.raises(ValueError):
        Node(peer_id="peer-a").create_block("x")


def test_chain_response_round_trip(mined_chain):
    response = ChainResponse(blocks=mined_chain, receiver="peer-a")
    assert ChainResponse.from_json(response.to_json()) == response
    assert ChainResponse.from_json(response.to_json().encode()) == response


def test_chain_response_requires_fields():
    with pytest.raises(ValueError):
        ChainResponse.from_json('{"blocks": []}')


def test_local_chain_request_round_trip():
    request = LocalChainRequest(from_peer_id="peer-a")
    assert json.loads(request.to_json()) == {"from_peer_id": "peer-a"}
    assert LocalChainRequest.from_json(request.to_json()) == request


def test_local_chain_request_rejects_other_json():
    with pytest.raises(ValueError):
        LocalChainRequest.from_json("[1, 2]")


def test_peers_discovered_and_expired():
    node = Node(peer_id="peer-a")
    node.discovered(["peer-c", "peer-b", "peer-c"])
    assert node.peers() == ["peer-b", "peer-c"]
    node.expired(["peer-c"])
    assert node.peers() == ["peer-b"]


def test_initial_request_without_peers():
    node = Node(peer_id="peer-a")
    assert node.initial_request() is None
    assert [block.hash for block in node.app.blocks] == [GENESIS_HASH]


def test_initial_request_asks_last_peer():
    node = Node(peer_id="peer-a")
    node.discovered(["peer-b", "peer-d", "peer-c"])
    assert node.initial_request() == LocalChainRequest(from_peer_id="peer-d")
    assert len(node.app.blocks) == 1


def test_request_for_this_node_returns_local_chain(mined_chain):
    node = Node(app=App(blocks=list(mined_chain)), peer_id="peer-a")
    response = node.handle_message("peer-c", LocalChainRequest("peer-a").to_json())
    assert response == ChainResponse(blocks=mined_chain, receiver="peer-c")


def test_request_for_other_node_is_ignored(mined_chain):
    node = Node(app=App(blocks=list(mined_chain)), peer_id="peer-a")
    assert node.handle_message("peer-c", LocalChainRequest("peer-b").to_json()) is None


def test_response_adopts_longer_chain(mined_chain):
    node = _genesis_node("peer-a")
    payload = ChainResponse(blocks=mined_chain, receiver="peer-a").to_json()
    assert node.handle_message("peer-b", payload) is None
    assert node.app.blocks == mined_chain


def test_response_for_other_receiver_is_ignored(mined_chain):
    node = _genesis_node("peer-a")
    before = list(node.app.blocks)
    payload = ChainResponse(blocks=mined_chain, receiver="peer-z").to_json()
    node.handle_message("peer-b", payload)
    assert node.app.blocks == before


def test_response_with_both_chains_invalid_raises(mined_chain):
    bad = [mined_chain[0], dataclasses.replace(mined_chain[1], data="forged")]
    node = Node(app=App(blocks=list(bad)), peer_id="peer-a")
    payload = ChainResponse(blocks=bad, receiver="peer-a").to_json()
    with pytest.raises(InvalidChainError):
        node.handle_message("peer-b", payload)


def test_block_message_is_appended(mined_chain):
    node = _genesis_node("peer-a")
    payload = json.dumps(mined_chain[1].to_dict()).encode()
    assert node.handle_message("peer-b", payload) is None
    assert node.app.blocks[-1] == mined_chain[1]


def test_invalid_block_message_is_rejected(mined_chain):
    node = _genesis_node("peer-a")
    forged = dataclasses.replace(mined_chain[1], data="forged")
    node.handle_message("peer-b", json.dumps(forged.to_dict()))
    assert len(node.app.blocks) == 1


def test_garbage_is_ignored():
    node = _genesis_node("peer-a")
    assert node.handle_message("peer-b", b"not json") is None
    assert node.handle_message("peer-b", '{"other": 1}') is None
    assert len(node.app.blocks) == 1


def test_block_from_message_matches_dict(mined_chain):
    block = mined_chain[1]
    assert Block.from_dict(json.loads(json.dumps(block.to_dict()))) == block