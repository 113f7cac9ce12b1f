# Copyright The OpenTelemetry Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import abc
import logging
import sys
import threading
from enum import Enum
from typing import IO, Callable, Generic, List, Sequence, Tuple, TypeVar

from opentelemetry.sdk.extension.pipeline.records import FinishedSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

logger = logging.getLogger(__name__)

_R = TypeVar("_R")


class ExportResult(Enum):
    SUCCESS = 0
    FAILURE = 1


class RecordExporter(abc.ABC, Generic[_R]):
    """Interface for exporting finished records.

    Interface to be implemented by services that want to export records
    handed over by a processor in their own format. A processor never
    calls ``export`` concurrently on the same exporter instance.
    """

    @abc.abstractmethod
    def export(self, batch: Sequence[_R]) -> ExportResult:
        """Exports a batch of finished records.

        Args:
            batch: The list of records to be exported

        Returns:
            The result of the export. Raising is treated as a failure
            whose reason is the exception.
        """

    def shutdown(self) -> None:
        """Shuts down the exporter.

        Called once, after the last call to ``export``.
        """

    # pylint: disable=no-self-use,unused-argument
    def event_enabled(self, level: int, target: str, name: str) -> bool:
        """Tells producers whether a record would be exported at all.

        Lets a log producer skip building a record nobody wants. ``target``
        is the logger name and ``name`` the emitting function.
        """
        return True


class InMemoryRecordExporter(RecordExporter[_R]):
    """Keeps exported records in a list; meant for tests."""

    def __init__(self) -> None:
        self._finished_records: List[_R] = []
        self._stopped = False
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self._finished_records.clear()

    def get_finished_records(self) -> Tuple[_R, ...]:
        with self._lock:
            return tuple(self._finished_records)

    def export(self, batch: Sequence[_R]) -> ExportResult:
        if self._stopped:
            return ExportResult.FAILURE
        with self._lock:
            self._finished_records.extend(batch)
        return ExportResult.SUCCESS

    def shutdown(self) -> None:
        self._stopped = True


class ConsoleRecordExporter(RecordExporter):
    """Writes every record as one line to a stream, ``sys.stdout`` by
    default.
    """

    def __init__(
        self,
        out: IO = sys.stdout,
        formatter: Callable[[object], str] = lambda record: f"{record}\n",
    ):
        self.out = out
        self.formatter = formatter

    def export(self, batch: Sequence[object]) -> ExportResult:
        for record in batch:
            self.out.write(self.formatter(record))
        self.out.flush()
        return ExportResult.SUCCESS


class SpanExporterAdapter(RecordExporter[FinishedSpan]):
    """Hands batches of :class:`FinishedSpan` to an SDK ``SpanExporter``.

    Any exporter written for ``opentelemetry-sdk`` (OTLP, Zipkin, console,
    ...) can sit behind a :class:`BatchProcessor` this way.
    """

    def __init__(self, span_exporter: SpanExporter):
        self.span_exporter = span_exporter

    def export(self, batch: Sequence[FinishedSpan]) -> ExportResult:
        result = self.span_exporter.export(
            [span.to_readable_span() for span in batch]
        )
        if result is SpanExportResult.SUCCESS:
            return ExportResult.SUCCESS
        logger.debug("%s reported %s", type(self.span_exporter).__name__, result)
        return ExportResult.FAILURE

    def shutdown(self) -> None:
        self.span_exporter.shutdown()
