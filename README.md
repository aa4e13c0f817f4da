# lightnode

Asyncio building blocks for a data-availability light client. The package has
no runtime dependencies.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## What is inside

- `lightnode.shutdown` provides a graceful-shutdown `Controller`. It records the
  reason for a shutdown. A second `trigger_shutdown` raises `ShutdownHasStarted`.
  A `DelayToken` from `delay_token()` holds completion back until it is released
  (directly or by leaving its `with` block). Asking for one after the shutdown
  has completed raises `ShutdownHasCompleted`. A `TriggerToken` from
  `trigger_token(reason)` starts the shutdown when `trigger()` is called or when
  its `with` block exits, unless it was `forget()`-ten. Awaiting
  `triggered_shutdown()` (a `Signal`) or `completed_shutdown()` (a `Completed`)
  returns the reason.
- `lightnode.cancel.with_cancel(source, awaitable)` awaits an awaitable until it
  finishes or until a shutdown is triggered. `source` is a `Controller` or a
  `Signal`. If the shutdown comes first, the awaitable is cancelled and
  `ShutdownCancelled` is raised with the reason.
- `lightnode.kad_store.MemoryStore` is an in-memory Kademlia record and provider
  store. Providers are kept ordered by `kbucket_distance` to the key. The limits
  in `MemoryStoreConfig` are enforced by raising `ValueTooLarge`, `MaxRecords`
  and `MaxProvidedKeys` (all subclasses of `StoreError`).
- `lightnode.dht` parses DHT keys: `parse_dht_key` returns a `RowKey` or a
  `CellKey`, or raises `InvalidDHTKey`. `PutTracker` and `BlockStat` track PUT
  results per block, and `record_result` returns the block's success rate once
  its last record is accounted for. `RelayState` holds relay selection.
  `count_records_per_block` counts record keys per block.
- `lightnode.sampling` provides `cell_count_for_confidence`, which works out how
  many cells a requested confidence needs, and `generate_random_cells`, which
  picks distinct random positions. It also defines `Position`, `Cell`, `Node`
  and `Nodes`.
- `lightnode.telemetry` defines metric names (`MetricCounter`, `MetricValue`) and
  `InMemoryMetrics`, which keeps counters and the latest gauge values.
- `lightnode.proof.verify(block_num, cells, commitments, verifier)` runs a
  caller-supplied verifier for each cell in worker threads. It returns the
  verified and unverified positions.
- `lightnode.dht_client.DHTClient` fetches and inserts cells and rows. It works
  through the record getter and putter callables that you supply. `cell_record`
  and `row_record` build the records.

## Example

```python
import asyncio
from lightnode.shutdown import Controller

async def main():
    controller = Controller()
    delay = controller.delay_token()
    controller.trigger_shutdown("done")
    print(await controller.triggered_shutdown())  # "done"
    delay.release()
    print(await controller.completed_shutdown())  # "done"

asyncio.run(main())
```

```python
from lightnode.sampling import cell_count_for_confidence

cell_count_for_confidence(99.9)  # 10
```

## What it does not do

This is a library of parts, not a running client. It has no command-line
program. It opens no network connections: it has no peer-to-peer swarm and no
RPC client. Records reach the DHT only through the callables you pass to
`DHTClient`. It has no persistent storage, and it does no KZG proof
verification of its own, so the verifier for `proof.verify` must be supplied.