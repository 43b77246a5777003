"""anvil storage - local run records and the remote result sink."""

from anvil.storage.json_store import RunStore
from anvil.storage.sink import HttpResultSink, NullSink, ResultSink, SinkReceipt, build_sink

__all__ = [
    "HttpResultSink",
    "NullSink",
    "ResultSink",
    "RunStore",
    "SinkReceipt",
    "build_sink",
]
