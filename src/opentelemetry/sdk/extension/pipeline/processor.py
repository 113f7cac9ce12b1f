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

"""
Processors receive finished records from application threads and deliver
them to a :class:`~opentelemetry.sdk.extension.pipeline.export.RecordExporter`.

:class:`BatchProcessor` buffers records in a bounded queue and exports
them from a single background thread, either when a full batch is
available, when the scheduled delay elapses, or when a flush or shutdown
is requested. Producers never block: a record that does not fit in the
queue is dropped and counted.

:class:`SimpleRecordProcessor` exports every record synchronously from the
calling thread, which is mostly useful for tests and debugging.
"""

import abc
import logging
import queue
import threading
import time
from enum import Enum
from typing import Generic, List, Optional, TypeVar, Union

from opentelemetry.sdk.extension.pipeline.config import BatchConfig
from opentelemetry.sdk.extension.pipeline.export import (
    ExportResult,
    RecordExporter,
)

logger = logging.getLogger(__name__)

_R = TypeVar("_R")


class ProcessorResult(Enum):
    SUCCESS = 0
    TIMEOUT = 1
    ALREADY_SHUTDOWN = 2


class _State(Enum):
    RUNNING = 0
    SHUTTING_DOWN = 1
    SHUTDOWN = 2


class _Enqueue:
    __slots__ = ("record",)

    def __init__(self, record):
        self.record = record


class _ForceFlush:
    __slots__ = ("done",)

    def __init__(self):
        self.done = threading.Event()


class _Shutdown:
    __slots__ = ("done",)

    def __init__(self):
        self.done = threading.Event()


_Message = Union[_Enqueue, _ForceFlush, _Shutdown]


class _ExportCall:
    """An exporter call handed to the export thread."""

    __slots__ = ("function", "args", "done", "result", "error")

    def __init__(self, function, args):
        self.function = function
        self.args = args
        self.done = threading.Event()
        self.result = None
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.result = self.function(*self.args)
        except Exception as error:  # pylint: disable=broad-exception-caught
            self.error = error
        finally:
            self.done.set()


class RecordProcessor(abc.ABC, Generic[_R]):
    """Receives finished records and hands them to an exporter."""

    @abc.abstractmethod
    def on_finish(self, record: _R) -> None:
        """Called by the application once ``record`` is complete.

        Must neither block for long nor raise.
        """

    @abc.abstractmethod
    def force_flush(
        self, timeout_millis: Optional[float] = None
    ) -> ProcessorResult:
        """Exports every record received so far."""

    @abc.abstractmethod
    def shutdown(
        self, timeout_millis: Optional[float] = None
    ) -> ProcessorResult:
        """Exports pending records and releases the exporter.

        Records received afterwards are dropped.
        """


class _Counter:
    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def increment(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class BatchProcessor(RecordProcessor[_R]):
    """Batches finished records and exports them from a worker thread.

    Args:
        exporter: Receives the batches. Its ``export`` is only ever called
            from one thread at a time.
        config: Queue, batch and timing settings. Read from the
            ``OTEL_BSP_*`` environment variables when omitted.
    """

    WORKER_THREAD_NAME = "OtelBatchProcessor"
    EXPORT_THREAD_NAME = "OtelBatchProcessorExport"

    def __init__(
        self,
        exporter: RecordExporter,
        config: Optional[BatchConfig] = None,
    ):
        if exporter is None:
            raise ValueError("exporter must not be None")
        self._exporter = exporter
        self._config = config if config is not None else BatchConfig.from_env()

        self._queue: "queue.Queue[_Message]" = queue.Queue(
            maxsize=self._config.max_queue_size
        )
        self._state = _State.RUNNING
        self._state_lock = threading.Lock()
        # set when the shutdown message could not be queued in time
        self._stop_now = threading.Event()
        self._queue_full_warning_logged = False

        self._dropped_records = _Counter()
        self._exported_records = _Counter()
        self._failed_exports = _Counter()
        self._timed_out_exports = _Counter()

        # a single export thread keeps exporter calls serialized, also while
        # an abandoned export is still running
        self._export_queue: "queue.Queue[Optional[_ExportCall]]" = (
            queue.Queue()
        )
        self._export_thread = threading.Thread(
            name=self.EXPORT_THREAD_NAME,
            target=self._export_worker,
            daemon=True,
        )
        self._worker_thread = threading.Thread(
            name=self.WORKER_THREAD_NAME, target=self._worker, daemon=True
        )
        self._export_thread.start()
        self._worker_thread.start()

    @property
    def config(self) -> BatchConfig:
        return self._config

    @property
    def exporter(self) -> RecordExporter:
        return self._exporter

    @property
    def dropped_records(self) -> int:
        return self._dropped_records.value

    @property
    def exported_records(self) -> int:
        return self._exported_records.value

    @property
    def failed_exports(self) -> int:
        return self._failed_exports.value

    @property
    def timed_out_exports(self) -> int:
        return self._timed_out_exports.value

    @property
    def is_shutdown(self) -> bool:
        return self._state is not _State.RUNNING

    def on_finish(self, record: _R) -> None:
        if self._state is not _State.RUNNING:
            self._dropped_records.increment()
            return

        try:
            self._queue.put_nowait(_Enqueue(record))
        except queue.Full:
            self._dropped_records.increment()
            self._warn_queue_full()
            return

        if self._state is _State.SHUTDOWN:
            # the worker stopped in the meantime, nothing else will
            # take the record off the queue
            self._drain()

    def _warn_queue_full(self) -> None:
        with self._state_lock:
            if self._queue_full_warning_logged:
                return
            self._queue_full_warning_logged = True
        logger.warning(
            "Queue is full, records are being dropped (max_queue_size=%s)",
            self._config.max_queue_size,
        )

    def force_flush(
        self, timeout_millis: Optional[float] = None
    ) -> ProcessorResult:
        if self._state is not _State.RUNNING:
            return ProcessorResult.ALREADY_SHUTDOWN

        deadline = self._deadline(timeout_millis)
        flush = _ForceFlush()
        try:
            self._queue.put(flush, timeout=self._remaining(deadline))
        except queue.Full:
            logger.warning("Timeout was exceeded in force_flush().")
            return ProcessorResult.TIMEOUT

        if self._state is _State.SHUTDOWN:
            self._drain()
        if flush.done.wait(self._remaining(deadline)):
            return ProcessorResult.SUCCESS
        logger.warning("Timeout was exceeded in force_flush().")
        return ProcessorResult.TIMEOUT

    def shutdown(
        self, timeout_millis: Optional[float] = None
    ) -> ProcessorResult:
        with self._state_lock:
            if self._state is not _State.RUNNING:
                logger.debug("Processor is already shut down")
                return ProcessorResult.ALREADY_SHUTDOWN
            self._state = _State.SHUTTING_DOWN

        deadline = self._deadline(timeout_millis)
        message = _Shutdown()
        try:
            self._queue.put(message, timeout=self._remaining(deadline))
        except queue.Full:
            self._stop_now.set()

        self._worker_thread.join(self._remaining(deadline))
        if self._worker_thread.is_alive():
            logger.warning("Timeout was exceeded in shutdown().")
            return ProcessorResult.TIMEOUT
        return ProcessorResult.SUCCESS

    def _deadline(self, timeout_millis: Optional[float]) -> float:
        if timeout_millis is None:
            timeout_millis = self._config.max_export_timeout_millis
        return time.monotonic() + timeout_millis / 1e3

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(deadline - time.monotonic(), 0.0)

    def _worker(self) -> None:
        shutdown = None
        try:
            shutdown = self._process_messages()
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Batch processor worker stopped unexpectedly.")
        finally:
            # SHUTDOWN is set before draining so a producer that enqueues
            # after the drain sees it and drains on its own
            self._state = _State.SHUTDOWN
            self._export_queue.put(None)
            self._drain()
            if shutdown is not None:
                shutdown.done.set()

    def _process_messages(self) -> Optional[_Shutdown]:
        """Runs until shutdown, returns the shutdown message if one came."""
        staged: List[_R] = []
        delay = self._config.scheduled_delay
        next_export = time.monotonic() + delay

        while not self._stop_now.is_set():
            try:
                message = self._queue.get(
                    timeout=self._remaining(next_export)
                )
            except queue.Empty:
                message = None

            if message is None:
                staged = self._export_staged(staged)
                next_export = time.monotonic() + delay
                continue

            if isinstance(message, _Enqueue):
                staged.append(message.record)
                if len(staged) >= self._config.max_export_batch_size:
                    staged = self._export_staged(staged)
            elif isinstance(message, _ForceFlush):
                staged = self._export_staged(staged)
                message.done.set()
            elif isinstance(message, _Shutdown):
                self._export_staged(staged)
                self._shutdown_exporter()
                return message

            if time.monotonic() >= next_export:
                staged = self._export_staged(staged)
                next_export = time.monotonic() + delay

        self._export_staged(staged)
        self._shutdown_exporter()
        return None

    def _export_worker(self) -> None:
        while True:
            call = self._export_queue.get()
            if call is None:
                return
            call.run()

    def _call_exporter(self, function, *args) -> _ExportCall:
        """Runs ``function`` on the export thread, waiting at most the
        export timeout for it to return.
        """
        call = _ExportCall(function, args)
        self._export_queue.put(call)
        call.done.wait(self._config.max_export_timeout)
        return call

    def _export_staged(self, staged: List[_R]) -> List[_R]:
        """Exports ``staged`` and returns a fresh, empty buffer."""
        if staged:
            self._export_batch(staged)
        return []

    def _export_batch(self, batch: List[_R]) -> None:
        call = self._call_exporter(self._exporter.export, batch)
        if not call.done.is_set():
            self._timed_out_exports.increment()
            logger.warning(
                "Export of %d records timed out after %sms, not waiting for it",
                len(batch),
                self._config.max_export_timeout_millis,
            )
            return
        if call.error is not None:
            self._failed_exports.increment()
            logger.error(
                "Exception while exporting %d records.",
                len(batch),
                exc_info=call.error,
            )
            return

        if call.result is ExportResult.SUCCESS:
            self._exported_records.increment(len(batch))
            return

        self._failed_exports.increment()
        logger.error(
            "%s failed to export %d records: %s",
            type(self._exporter).__name__,
            len(batch),
            call.result,
        )

    def _shutdown_exporter(self) -> None:
        call = self._call_exporter(self._exporter.shutdown)
        if not call.done.is_set():
            logger.warning(
                "Exporter shutdown did not finish within %sms",
                self._config.max_export_timeout_millis,
            )
        elif call.error is not None:
            logger.error(
                "Exception while shutting down the exporter.",
                exc_info=call.error,
            )

    def _drain(self) -> None:
        """Releases whatever is still queued once the worker stops."""
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(message, _Enqueue):
                self._dropped_records.increment()
            else:
                message.done.set()


class SimpleRecordProcessor(RecordProcessor[_R]):
    """Exports each record as soon as it finishes, in the calling thread.

    Export calls are serialized with a lock. Failures are logged and never
    raised to the caller.
    """

    def __init__(self, exporter: RecordExporter):
        if exporter is None:
            raise ValueError("exporter must not be None")
        self._exporter = exporter
        self._lock = threading.Lock()
        self._shutdown = False
        self._dropped_records = _Counter()

    @property
    def dropped_records(self) -> int:
        return self._dropped_records.value

    def on_finish(self, record: _R) -> None:
        with self._lock:
            if self._shutdown:
                self._dropped_records.increment()
                return
            try:
                result = self._exporter.export((record,))
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Exception while exporting record.")
                return
        if result is not ExportResult.SUCCESS:
            logger.error(
                "%s failed to export a record: %s",
                type(self._exporter).__name__,
                result,
            )

    def force_flush(
        self, timeout_millis: Optional[float] = None
    ) -> ProcessorResult:
        if self._shutdown:
            return ProcessorResult.ALREADY_SHUTDOWN
        return ProcessorResult.SUCCESS

    def shutdown(
        self, timeout_millis: Optional[float] = None
    ) -> ProcessorResult:
        with self._lock:
            if self._shutdown:
                return ProcessorResult.ALREADY_SHUTDOWN
            self._shutdown = True
            try:
                self._exporter.shutdown()
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Exception while shutting down the exporter.")
        return ProcessorResult.SUCCESS
