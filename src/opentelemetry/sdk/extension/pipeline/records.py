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

"""Immutable snapshots of finished spans and log records.

Once a record is handed to a processor it is owned by the pipeline; the
snapshot is never mutated afterwards and is discarded when its export call
returns.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from opentelemetry._logs import SeverityNumber
from opentelemetry.sdk.extension.pipeline.bounded import (
    BoundedDict,
    BoundedList,
)
from opentelemetry.sdk.extension.pipeline.config import RecordLimits
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.util.instrumentation import InstrumentationScope
from opentelemetry.trace import (
    INVALID_SPAN_ID,
    INVALID_TRACE_ID,
    SpanContext,
    SpanKind,
    TraceFlags,
    format_span_id,
    format_trace_id,
)
from opentelemetry.trace.status import Status, StatusCode


@dataclass(frozen=True)
class FinishedSpan:
    name: str
    context: SpanContext
    parent: Optional[SpanContext] = None
    kind: SpanKind = SpanKind.INTERNAL
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    status: Status = field(default_factory=lambda: Status(StatusCode.UNSET))
    attributes: BoundedDict = field(default_factory=lambda: BoundedDict(None))
    events: BoundedList = field(default_factory=lambda: BoundedList(None))
    links: BoundedList = field(default_factory=lambda: BoundedList(None))
    resource: Resource = field(default_factory=Resource.get_empty)
    instrumentation_scope: Optional[InstrumentationScope] = None

    @property
    def trace_id(self) -> int:
        return self.context.trace_id

    @property
    def span_id(self) -> int:
        return self.context.span_id

    @property
    def parent_span_id(self) -> Optional[int]:
        if self.parent is None:
            return None
        return self.parent.span_id

    @property
    def is_sampled(self) -> bool:
        return self.context.trace_flags.sampled

    @classmethod
    def from_readable_span(
        cls, span: ReadableSpan, limits: Optional[RecordLimits] = None
    ) -> "FinishedSpan":
        """Snapshot an ended SDK span into bounded collections.

        Entries the SDK itself already discarded are added to the drop
        counters of the snapshot.
        """
        if limits is None:
            limits = RecordLimits()

        attributes = BoundedDict.from_map(
            limits.max_attributes, span.attributes
        )
        attributes.dropped += span.dropped_attributes
        events = BoundedList.from_seq(limits.max_events, span.events)
        events.dropped += span.dropped_events
        links = BoundedList.from_seq(limits.max_links, span.links)
        links.dropped += span.dropped_links

        return cls(
            name=span.name,
            context=span.context,
            parent=span.parent,
            kind=span.kind,
            start_time=span.start_time,
            end_time=span.end_time,
            status=span.status,
            attributes=attributes,
            events=events,
            links=links,
            resource=span.resource,
            instrumentation_scope=span.instrumentation_scope,
        )

    def to_readable_span(self) -> ReadableSpan:
        return ReadableSpan(
            name=self.name,
            context=self.context,
            parent=self.parent,
            resource=self.resource,
            attributes=self.attributes.copy(),
            events=tuple(self.events),
            links=tuple(self.links),
            kind=self.kind,
            status=self.status,
            start_time=self.start_time,
            end_time=self.end_time,
            instrumentation_scope=self.instrumentation_scope,
        )

    def __str__(self) -> str:
        parent = (
            format_span_id(self.parent.span_id) if self.parent else "none"
        )
        return (
            f"span name={self.name!r} trace_id={format_trace_id(self.trace_id)} "
            f"span_id={format_span_id(self.span_id)} parent_id={parent} "
            f"kind={self.kind.name} status={self.status.status_code.name} "
            f"start={self.start_time} end={self.end_time} "
            f"attributes={self.attributes.copy()} "
            f"events={[event.name for event in self.events]} "
            f"dropped_attributes={self.attributes.dropped} "
            f"dropped_events={self.events.dropped} "
            f"dropped_links={self.links.dropped}"
        )


@dataclass(frozen=True)
class FinishedLogRecord:
    timestamp: Optional[int] = None
    observed_timestamp: Optional[int] = None
    trace_id: int = INVALID_TRACE_ID
    span_id: int = INVALID_SPAN_ID
    trace_flags: TraceFlags = field(default_factory=TraceFlags.get_default)
    severity_text: Optional[str] = None
    severity_number: SeverityNumber = SeverityNumber.UNSPECIFIED
    body: Any = None
    target: Optional[str] = None
    event_name: Optional[str] = None
    attributes: BoundedDict = field(default_factory=lambda: BoundedDict(None))
    resource: Resource = field(default_factory=Resource.get_empty)

    @property
    def is_sampled(self) -> bool:
        return self.trace_flags.sampled

    def __str__(self) -> str:
        trace_id = (
            format_trace_id(self.trace_id)
            if self.trace_id != INVALID_TRACE_ID
            else "none"
        )
        return (
            f"log timestamp={self.timestamp} severity={self.severity_text} "
            f"target={self.target} trace_id={trace_id} body={self.body!r} "
            f"attributes={self.attributes.copy()} "
            f"dropped_attributes={self.attributes.dropped}"
        )


FinishedRecord = Union[FinishedSpan, FinishedLogRecord]
