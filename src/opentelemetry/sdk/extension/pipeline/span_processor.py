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
Span processors that feed finished, sampled spans from an SDK
:class:`~opentelemetry.sdk.trace.TracerProvider` into a record processor.

.. code-block:: python

    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.extension.pipeline import (
        BatchSpanProcessor,
        ConsoleRecordExporter,
    )

    provider = TracerProvider()
    provider.add_span_processor(BatchSpanProcessor(ConsoleRecordExporter()))
"""

from typing import Optional

from opentelemetry.context import Context
from opentelemetry.sdk.extension.pipeline.config import (
    BatchConfig,
    RecordLimits,
)
from opentelemetry.sdk.extension.pipeline.export import RecordExporter
from opentelemetry.sdk.extension.pipeline.processor import (
    BatchProcessor,
    ProcessorResult,
    RecordProcessor,
    SimpleRecordProcessor,
)
from opentelemetry.sdk.extension.pipeline.records import FinishedSpan
from opentelemetry.sdk.trace import ReadableSpan, Span, SpanProcessor


class PipelineSpanProcessor(SpanProcessor):
    """Snapshots every sampled span when it ends and hands it to ``processor``.

    Spans that are only recorded, not sampled, are ignored.
    """

    def __init__(
        self,
        processor: RecordProcessor,
        limits: Optional[RecordLimits] = None,
    ):
        self._processor = processor
        self._limits = limits

    @property
    def processor(self) -> RecordProcessor:
        return self._processor

    def on_start(
        self, span: Span, parent_context: Optional[Context] = None
    ) -> None:
        pass

    def on_end(self, span: ReadableSpan) -> None:
        if not span.context.trace_flags.sampled:
            return
        self._processor.on_finish(
            FinishedSpan.from_readable_span(span, self._limits)
        )

    def shutdown(self) -> None:
        self._processor.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return (
            self._processor.force_flush(timeout_millis)
            is ProcessorResult.SUCCESS
        )


class BatchSpanProcessor(PipelineSpanProcessor):
    """Exports sampled spans in batches from a background thread.

    Without ``config`` the settings are read from the ``OTEL_BSP_*``
    environment variables.
    """

    def __init__(
        self,
        exporter: RecordExporter,
        config: Optional[BatchConfig] = None,
        limits: Optional[RecordLimits] = None,
    ):
        if config is None:
            config = BatchConfig.from_env("traces")
        super().__init__(BatchProcessor(exporter, config), limits)


class SimpleSpanProcessor(PipelineSpanProcessor):
    """Exports every sampled span synchronously when it ends."""

    def __init__(
        self,
        exporter: RecordExporter,
        limits: Optional[RecordLimits] = None,
    ):
        super().__init__(SimpleRecordProcessor(exporter), limits)
