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
A :class:`logging.Handler` that turns standard library log records into
:class:`~opentelemetry.sdk.extension.pipeline.records.FinishedLogRecord`
snapshots and hands them to a record processor.

.. code-block:: python

    import logging

    from opentelemetry.sdk.extension.pipeline import (
        BatchConfig,
        BatchProcessor,
        ConsoleRecordExporter,
        LoggingHandler,
    )

    exporter = ConsoleRecordExporter()
    processor = BatchProcessor(exporter, BatchConfig.from_env("logs"))
    logging.getLogger().addHandler(LoggingHandler(processor, exporter))

Records emitted by the pipeline's own loggers are never forwarded.
"""

import logging
import threading
import traceback
from time import time_ns
from typing import Optional

from opentelemetry.sdk._logs._internal import std_to_otel
from opentelemetry.sdk.extension.pipeline.bounded import BoundedDict
from opentelemetry.sdk.extension.pipeline.config import RecordLimits
from opentelemetry.sdk.extension.pipeline.export import RecordExporter
from opentelemetry.sdk.extension.pipeline.processor import RecordProcessor
from opentelemetry.sdk.extension.pipeline.records import FinishedLogRecord
from opentelemetry.sdk.resources import Resource
from opentelemetry.semconv._incubating.attributes import code_attributes
from opentelemetry.semconv.attributes import exception_attributes
from opentelemetry.trace import get_current_span

_PIPELINE_LOGGER_PREFIX = __name__.rpartition(".")[0]

# attributes every LogRecord carries, anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}


def _is_pipeline_logger(name: str) -> bool:
    return name == _PIPELINE_LOGGER_PREFIX or name.startswith(
        _PIPELINE_LOGGER_PREFIX + "."
    )


class LoggingHandler(logging.Handler):
    """Forwards log records to ``processor``.

    Args:
        processor: Receives one snapshot per emitted record.
        exporter: When given, its ``event_enabled`` is asked before a record
            is built, so records the exporter would discard cost nothing.
        level: Minimum level handled, as for any :class:`logging.Handler`.
        limits: Capacity of each record's attributes.
        resource: Attached to every record.
    """

    def __init__(
        self,
        processor: RecordProcessor,
        exporter: Optional[RecordExporter] = None,
        level: int = logging.NOTSET,
        limits: Optional[RecordLimits] = None,
        resource: Optional[Resource] = None,
    ) -> None:
        super().__init__(level=level)
        self._processor = processor
        self._exporter = exporter
        self._limits = limits if limits is not None else RecordLimits()
        self._resource = (
            resource if resource is not None else Resource.get_empty()
        )

    def _get_attributes(self, record: logging.LogRecord) -> BoundedDict:
        attributes = BoundedDict(self._limits.max_attributes)
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS:
                attributes[key] = value

        attributes[code_attributes.CODE_FILE_PATH] = record.pathname
        attributes[code_attributes.CODE_FUNCTION_NAME] = record.funcName
        attributes[code_attributes.CODE_LINE_NUMBER] = record.lineno

        if record.exc_info:
            exctype, value, tb = record.exc_info
            if exctype is not None:
                attributes[exception_attributes.EXCEPTION_TYPE] = (
                    exctype.__name__
                )
            if value is not None:
                attributes[exception_attributes.EXCEPTION_MESSAGE] = str(value)
            if tb is not None:
                attributes[exception_attributes.EXCEPTION_STACKTRACE] = (
                    "".join(traceback.format_exception(*record.exc_info))
                )
        return attributes

    def _translate(self, record: logging.LogRecord) -> FinishedLogRecord:
        span_context = get_current_span().get_span_context()
        level_name = (
            "WARN" if record.levelname == "WARNING" else record.levelname
        )
        if record.args:
            body = record.getMessage()
        else:
            body = record.msg

        return FinishedLogRecord(
            timestamp=int(record.created * 1e9),
            observed_timestamp=time_ns(),
            trace_id=span_context.trace_id,
            span_id=span_context.span_id,
            trace_flags=span_context.trace_flags,
            severity_text=level_name,
            severity_number=std_to_otel(record.levelno),
            body=body,
            target=record.name,
            event_name=getattr(record, "event_name", None),
            attributes=self._get_attributes(record),
            resource=self._resource,
        )

    def emit(self, record: logging.LogRecord) -> None:
        if _is_pipeline_logger(record.name):
            return
        try:
            if self._exporter is not None and not self._exporter.event_enabled(
                record.levelno, record.name, record.funcName
            ):
                return
            self._processor.on_finish(self._translate(record))
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)

    def flush(self) -> None:
        """Asks the processor to export what it holds, from a separate thread.

        :meth:`logging.Handler.flush` may be called while the handler lock is
        held, so the flush must not wait on the processor's worker.
        """
        thread = threading.Thread(
            target=self._processor.force_flush, daemon=True
        )
        thread.start()
