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
OpenTelemetry SDK Extension - ingestion and export pipeline
-----------------------------------------------------------

This package moves finished spans and log records from application threads
to exporters without ever blocking the application:

* Samplers decide at span creation whether a trace is recorded and
  exported (always on/off, trace id ratio, parent based and a leaky bucket
  rate limiter).
* Finished records are snapshotted into bounded collections that evict the
  oldest entries and count what they dropped.
* A :class:`BatchProcessor` buffers records in a bounded queue and exports
  them in batches from a background thread, on a timer, when a batch is
  full, or when a flush or shutdown is requested.

Usage
-----

.. code-block:: python

    from opentelemetry import trace
    from opentelemetry.sdk.extension.pipeline import (
        ConsoleRecordExporter,
        PipelineRegistry,
        configure_span_pipeline,
    )

    registry = PipelineRegistry()
    provider = configure_span_pipeline(
        ConsoleRecordExporter(), registry=registry
    )
    trace.set_tracer_provider(provider)

    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span("foo"):
        print("Hello world!")

    registry.teardown()

The sampler of a provider created by :func:`configure_span_pipeline` is read
from ``OTEL_TRACES_SAMPLER`` and ``OTEL_TRACES_SAMPLER_ARG``. Batch settings
are read from the ``OTEL_BSP_*`` variables unless a :class:`BatchConfig` is
given.
"""

from typing import Optional

from opentelemetry.sdk.extension.pipeline.bounded import (
    BoundedDict,
    BoundedList,
)
from opentelemetry.sdk.extension.pipeline.config import (
    BatchConfig,
    RecordLimits,
)
from opentelemetry.sdk.extension.pipeline.export import (
    ConsoleRecordExporter,
    ExportResult,
    InMemoryRecordExporter,
    RecordExporter,
    SpanExporterAdapter,
)
from opentelemetry.sdk.extension.pipeline.handler import LoggingHandler
from opentelemetry.sdk.extension.pipeline.id_generator import (
    SeededIdGenerator,
)
from opentelemetry.sdk.extension.pipeline.processor import (
    BatchProcessor,
    ProcessorResult,
    RecordProcessor,
    SimpleRecordProcessor,
)
from opentelemetry.sdk.extension.pipeline.records import (
    FinishedLogRecord,
    FinishedRecord,
    FinishedSpan,
)
from opentelemetry.sdk.extension.pipeline.registry import PipelineRegistry
from opentelemetry.sdk.extension.pipeline.sampling import (
    ALWAYS_OFF,
    ALWAYS_ON,
    DEFAULT_OFF,
    DEFAULT_ON,
    ParentBased,
    RateLimitingSampler,
    StaticSampler,
    TraceIdRatioBased,
    sampler_from_env,
)
from opentelemetry.sdk.extension.pipeline.span_processor import (
    BatchSpanProcessor,
    PipelineSpanProcessor,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.extension.pipeline.version import __version__
from opentelemetry.sdk.trace import TracerProvider

SPAN_PIPELINE_NAME = "traces"


def configure_span_pipeline(
    exporter: RecordExporter,
    tracer_provider: Optional[TracerProvider] = None,
    config: Optional[BatchConfig] = None,
    registry: Optional[PipelineRegistry] = None,
    limits: Optional[RecordLimits] = None,
) -> TracerProvider:
    """Attaches a batching span pipeline exporting to ``exporter``.

    Args:
        exporter: Receives the finished, sampled spans.
        tracer_provider: Provider to attach to. A new one using the sampler
            configured in the environment is created when omitted.
        config: Batch settings, read from the environment when omitted.
        registry: When given, the batch processor is registered in it under
            ``"traces"`` so it can be flushed and torn down with the rest of
            the application's pipelines.
        limits: Capacity of each span snapshot's collections.

    Returns:
        The tracer provider the pipeline is attached to.
    """
    if tracer_provider is None:
        tracer_provider = TracerProvider(sampler=sampler_from_env())

    span_processor = BatchSpanProcessor(exporter, config=config, limits=limits)
    tracer_provider.add_span_processor(span_processor)
    if registry is not None:
        registry.register(SPAN_PIPELINE_NAME, span_processor.processor)
    return tracer_provider


__all__ = [
    "ALWAYS_OFF",
    "ALWAYS_ON",
    "DEFAULT_OFF",
    "DEFAULT_ON",
    "SPAN_PIPELINE_NAME",
    "BatchConfig",
    "BatchProcessor",
    "BatchSpanProcessor",
    "BoundedDict",
    "BoundedList",
    "ConsoleRecordExporter",
    "ExportResult",
    "FinishedLogRecord",
    "FinishedRecord",
    "FinishedSpan",
    "InMemoryRecordExporter",
    "LoggingHandler",
    "ParentBased",
    "PipelineRegistry",
    "PipelineSpanProcessor",
    "ProcessorResult",
    "RateLimitingSampler",
    "RecordExporter",
    "RecordLimits",
    "SeededIdGenerator",
    "SimpleRecordProcessor",
    "SimpleSpanProcessor",
    "SpanExporterAdapter",
    "StaticSampler",
    "TraceIdRatioBased",
    "__version__",
    "configure_span_pipeline",
    "sampler_from_env",
]
