# peerchain

A small proof-of-work blockchain. Each node keeps its own chain. It shares new
blocks and whole chains with the other nodes it finds in a UDP multicast group
on the local network.

## How the chain works

- The chain starts with a fixed genesis block. Its id is `0`, its previous hash
  is `"Genesis"` and its data is `"genesis!"`.
- Every block holds these fields:
  - `id`
  - `hash`
  - `previous_hash`
  - `timestamp` (Unix seconds)
  - `data`
  - `nonce`
- A block's hash is the SHA-256 of its fields, serialised as compact JSON with
  sorted keys (`peerchain.chain.calculate_hash`).
- Mining (`mine_block`, `create_block`) tries nonces from zero upwards. It stops
  when the binary form of the hash starts with `00`. In that binary form each
  byte is written without leading zeros (`hash_to_binary_representation`).
- `App.is_block_valid` accepts a block only if all of these hold:
  - it points at the hash of the previous block;
  - its hash meets the difficulty;
  - its id is the next one;
  - its hash matches its contents.
- `App.choose_chain` settles a disagreement between two chains:
  - If both are valid, it keeps the longer one. On equal length it keeps the
    local one.
  - If only one is valid, it keeps that one.
  - If neither is valid, it raises `InvalidChainError`.

## Installing

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Running a node

```
peerchain
```

You can run it in several terminals, or on several machines on the same
network. It takes these options:

| Option            | Default         | Meaning                                  |
|-------------------|-----------------|------------------------------------------|
| `--group`         | `239.255.42.99` | multicast group to join                  |
| `--port`          | `47200`         | UDP port                                 |
| `--peer-id`       | random hex id   | identifier of this node                  |
| `--startup-delay` | `1.0`           | seconds to wait for peers before starting |

How a node gets started:

1. On start, a node announces itself to the group.
2. Nodes that hear it answer, and then each side knows the other.
3. A node that leaves sends a goodbye, and the others forget it.
4. After the startup delay, the node creates its genesis block.
5. If it already knows peers, it asks the last one, in sorted order, for its
   chain. It then keeps whichever chain `choose_chain` picks.

Type commands on standard input:

| Command           | What it does                                             |
|-------------------|----------------------------------------------------------|
| `ls p`            | print the peers this node knows, one per line            |
| `ls c`            | print the local chain as JSON                            |
| `create b<data>`  | mine a block holding everything after `create b` and broadcast it |

Any other input is logged as an unknown command.

With `create b`, the data includes the space you type after `b`. For example,
`create b hello` stores ` hello`.

When a node receives a block from a peer, it appends the block only if the
block is valid on top of its own latest block.

## Using it as a library

```python
from peerchain.chain import App, create_block

app = App()
app.genesis()

latest = app.blocks[-1]
block = create_block(latest.id + 1, latest.hash, "hello")
app.try_add_block(block)

assert app.is_chain_valid(app.blocks)
```

`peerchain.p2p.Node` holds a node's state:

- its `App`;
- its `peer_id`;
- the peers it knows (`discovered`, `expired`, `peers`).

`Node.handle_message(source, payload)` reacts to a JSON message. The message
can be one of three things:

- A `ChainResponse` addressed to this node. The node replaces its chain with
  the one `choose_chain` picks.
- A `LocalChainRequest` naming this node. The node returns a `ChainResponse`,
  which the caller should publish.
- A single block. The node passes it to `try_add_block`.

`peerchain.cli.UdpTransport` carries messages between nodes on the topics
`Topic.CHAIN` and `Topic.BLOCK`. `peerchain.cli.run` and `handle_command` drive
a node from any iterable of command lines.

## What it does not do

- Chains live in memory only and are lost when a node stops.
- Peers are not authenticated and messages are not encrypted.
- Every message must fit into a single UDP datagram (65,507 bytes). A chain
  too large for that cannot be sent.
- Peers outside the multicast group cannot be reached.