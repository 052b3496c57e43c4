# serialplot/interfaces/batch_sink.py
from typing import Protocol, Sequence

from serialplot.model.sample import Sample


class BatchSink(Protocol):
    def on_batch(self, batch: Sequence[Sample]) -> None: ...
    def close(self) -> None: ...
