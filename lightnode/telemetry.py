"""Metric names and an in-memory metrics sink."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Union


class MetricCounter(Enum):
    """Counters, named as they are exported."""

    SESSION_BLOCK = "session_block_counter"
    OUTGOING_CONNECTION_ERROR = "outgoing_connection_errors"
    INCOMING_CONNECTION_ERROR = "incoming_connection_errors"
    INCOMING_CONNECTION = "incoming_connections"
    CONNECTION_ESTABLISHED = "established_connections"
    INCOMING_PUT_RECORD = "incoming_put_record_counter"
    INCOMING_GET_RECORD = "incoming_get_record_counter"

    def __str__(self) -> str:
        return self.value


class MetricValue(Enum):
    """Gauges, named as they are exported."""

    TOTAL_BLOCK_NUMBER = "total_block_number"
    DHT_FETCHED = "dht_fetched"
    DHT_FETCHED_PERCENTAGE = "dht_fetched_percentage"
    DHT_FETCH_DURATION = "dht_fetch_duration"
    NODE_RPC_FETCHED = "node_rpc_fetched"
    NODE_RPC_FETCH_DURATION = "node_rpc_fetch_duration"
    BLOCK_CONFIDENCE = "block_confidence"
    BLOCK_CONFIDENCE_TRESHOLD = "block_confidence_treshold"
    RPC_CALL_DURATION = "rpc_call_duration"
    DHT_PUT_DURATION = "dht_put_duration"
    DHT_PUT_SUCCESS = "dht_put_success"
    CONNECTED_PEERS_NUM = "connected_peers_num"
    HEALTH_CHECK = "up"
    BLOCK_PROCESSING_DELAY = "block_processing_delay"
    PING_LATENCY = "ping_latency"
    REPLICATION_FACTOR = "replication_factor"
    QUERY_TIMEOUT = "query_timeout"
    CRAWL_CELLS_SUCCESS_RATE = "crawl_cells_success_rate"
    CRAWL_ROWS_SUCCESS_RATE = "crawl_rows_success_rate"
    CRAWL_BLOCK_DELAY = "crawl_block_delay"

    def __str__(self) -> str:
        return self.value


_INTEGER_VALUES = frozenset(
    {
        MetricValue.TOTAL_BLOCK_NUMBER,
        MetricValue.CONNECTED_PEERS_NUM,
        MetricValue.REPLICATION_FACTOR,
        MetricValue.QUERY_TIMEOUT,
    }
)

Number = Union[int, float]


class InMemoryMetrics:
    """Keeps counters and the latest gauge values in memory."""

    def __init__(self) -> None:
        self.counters: Dict[MetricCounter, int] = {counter: 0 for counter in MetricCounter}
        self.values: Dict[MetricValue, Number] = {}
        self.multiaddress = ""

    async def count(self, counter: MetricCounter) -> None:
        """Increment ``counter`` by one."""
        self.counters[MetricCounter(counter)] += 1

    async def record(self, name: Union[MetricValue, str], value: Optional[Number] = None) -> None:
        """Record the latest ``value`` of gauge ``name``.

        The health check always records 1. Counts must be non-negative integers.
        """
        metric = MetricValue(name)
        if metric is MetricValue.HEALTH_CHECK:
            self.values[metric] = 1
            return
        if value is None:
            raise ValueError(f"metric {metric} needs a value")
        if metric in _INTEGER_VALUES:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"metric {metric} takes an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"metric {metric} takes a non-negative value, got {value}")
            self.values[metric] = value
            return
        self.values[metric] = float(value)

    async def set_multiaddress(self, multiaddr: str) -> None:
        """Set the multiaddress reported with every metric."""
        self.multiaddress = multiaddr