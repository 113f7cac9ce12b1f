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
Samplers decide, from what is known when a span starts, whether the span
is recorded and whether it is exported.

Every sampler here is an ``opentelemetry.sdk.trace.sampling.Sampler`` and
returns one of the SDK decisions:

* ``Decision.DROP``: not recorded, not exported.
* ``Decision.RECORD_ONLY``: recorded for local processors, not exported and
  not propagated as sampled.
* ``Decision.RECORD_AND_SAMPLE``: recorded, exported, and the sampled flag
  propagates to children.

Samplers never raise: an error inside a decision is logged and the span is
dropped.

Usage::

    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.extension.pipeline.sampling import (
        ParentBased,
        TraceIdRatioBased,
    )

    # sample 1 in every 1000 traces, children follow their parent
    provider = TracerProvider(
        sampler=ParentBased(root=TraceIdRatioBased(1 / 1000))
    )

The sampler can also be picked with ``OTEL_TRACES_SAMPLER`` and
``OTEL_TRACES_SAMPLER_ARG``, see :func:`sampler_from_env`.
"""

import abc
import math
from logging import getLogger
from os import environ
from typing import Optional, Sequence

from opentelemetry.context import Context
from opentelemetry.sdk.environment_variables import (
    OTEL_TRACES_SAMPLER,
    OTEL_TRACES_SAMPLER_ARG,
)
from opentelemetry.sdk.extension.pipeline._clock import _Clock
from opentelemetry.sdk.extension.pipeline._leaky_bucket import _LeakyBucket
from opentelemetry.sdk.trace.sampling import Decision, Sampler, SamplingResult
from opentelemetry.trace import Link, SpanKind, get_current_span
from opentelemetry.trace.span import TraceState
from opentelemetry.util.types import Attributes

_logger = getLogger(__name__)

# lower 64 bits of the trace id, shifted right once, give the random value
TRACE_ID_LOW_MASK = (1 << 64) - 1
_RATIO_UPPER_BOUND = 1 << 63


def _get_parent_trace_state(
    parent_context: Optional[Context],
) -> Optional[TraceState]:
    parent_span_context = get_current_span(parent_context).get_span_context()
    if parent_span_context is None or not parent_span_context.is_valid:
        return None
    return parent_span_context.trace_state


class _PipelineSampler(Sampler):
    """Base of the samplers in this package.

    Turns any error raised while deciding into a ``DROP`` result.
    """

    def should_sample(
        self,
        parent_context: Optional[Context],
        trace_id: int,
        name: str,
        kind: Optional[SpanKind] = None,
        attributes: Attributes = None,
        links: Optional[Sequence[Link]] = None,
        trace_state: Optional[TraceState] = None,
    ) -> SamplingResult:
        try:
            return self._should_sample(
                parent_context,
                trace_id,
                name,
                kind=kind,
                attributes=attributes,
                links=links,
            )
        except Exception:  # pylint: disable=broad-exception-caught
            _logger.exception(
                "%s failed to decide for span %r, dropping it",
                self.get_description(),
                name,
            )
            return SamplingResult(Decision.DROP, None, trace_state)

    @abc.abstractmethod
    def _should_sample(
        self,
        parent_context: Optional[Context],
        trace_id: int,
        name: str,
        kind: Optional[SpanKind] = None,
        attributes: Attributes = None,
        links: Optional[Sequence[Link]] = None,
    ) -> SamplingResult:
        pass


class StaticSampler(_PipelineSampler):
    """Sampler that always returns the same decision."""

    def __init__(self, decision: Decision):
        self._decision = decision

    def _should_sample(
        self,
        parent_context: Optional[Context],
        trace_id: int,
        name: str,
        kind: Optional[SpanKind] = None,
        attributes: Attributes = None,
        links: Optional[Sequence[Link]] = None,
    ) -> SamplingResult:
        if self._decision is Decision.DROP:
            attributes = None
        return SamplingResult(
            self._decision,
            attributes,
            _get_parent_trace_state(parent_context),
        )

    def get_description(self) -> str:
        if self._decision is Decision.DROP:
            return "AlwaysOffSampler"
        return "AlwaysOnSampler"


ALWAYS_OFF = StaticSampler(Decision.DROP)
"""Sampler that never samples spans, regardless of the parent span's sampling decision."""

ALWAYS_ON = StaticSampler(Decision.RECORD_AND_SAMPLE)
"""Sampler that always samples spans, regardless of the parent span's sampling decision."""


class TraceIdRatioBased(_PipelineSampler):
    """
    Sampler that makes sampling decisions probabilistically based on `rate`.

    The decision is a pure function of the trace id, so every process
    seeing the same trace id reaches the same decision.

    Args:
        rate: Probability (between 0 and 1) that a span will be sampled.
            Values outside that range are clamped.
    """

    def __init__(self, rate: float):
        if math.isnan(rate):
            _logger.warning("Sampling rate is NaN, using 0.0")
            rate = 0.0
        elif not 0.0 <= rate <= 1.0:
            _logger.warning(
                "Sampling rate %s is outside [0.0, 1.0], clamping it", rate
            )
        self._rate = min(max(rate, 0.0), 1.0)
        self._bound = self.get_bound_for_rate(self._rate)

    @classmethod
    def get_bound_for_rate(cls, rate: float) -> int:
        return int(rate * _RATIO_UPPER_BOUND)

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def bound(self) -> int:
        return self._bound

    def _should_sample(
        self,
        parent_context: Optional[Context],
        trace_id: int,
        name: str,
        kind: Optional[SpanKind] = None,
        attributes: Attributes = None,
        links: Optional[Sequence[Link]] = None,
    ) -> SamplingResult:
        decision = Decision.DROP
        if (trace_id & TRACE_ID_LOW_MASK) >> 1 < self.bound:
            decision = Decision.RECORD_AND_SAMPLE
        if decision is Decision.DROP:
            attributes = None
        return SamplingResult(
            decision,
            attributes,
            _get_parent_trace_state(parent_context),
        )

    def get_description(self) -> str:
        return f"TraceIdRatioBased{{{self._rate}}}"


class ParentBased(_PipelineSampler):
    """
    If a parent is set, applies the respective delegate sampler.
    Otherwise, uses the root provided at initialization to make a
    decision.

    Without overrides a remote parent's sampled flag is followed, and a
    local parent's decision is inherited as is: sampled children of a
    sampled parent, record-only children of a recording but unsampled
    parent, dropped children otherwise. ``root`` is only consulted for
    root spans.

    Args:
        root: Sampler called for spans with no parent (root spans).
        remote_parent_sampled: Optional sampler called for a remote sampled parent.
        remote_parent_not_sampled: Optional sampler called for a remote unsampled parent.
        local_parent_sampled: Optional sampler called for a local sampled parent.
        local_parent_not_sampled: Optional sampler called for a local unsampled parent.
    """

    def __init__(
        self,
        root: Sampler,
        remote_parent_sampled: Optional[Sampler] = None,
        remote_parent_not_sampled: Optional[Sampler] = None,
        local_parent_sampled: Optional[Sampler] = None,
        local_parent_not_sampled: Optional[Sampler] = None,
    ):
        self._root = root
        self._remote_parent_sampled = remote_parent_sampled
        self._remote_parent_not_sampled = remote_parent_not_sampled
        self._local_parent_sampled = local_parent_sampled
        self._local_parent_not_sampled = local_parent_not_sampled

    def _should_sample(
        self,
        parent_context: Optional[Context],
        trace_id: int,
        name: str,
        kind: Optional[SpanKind] = None,
        attributes: Attributes = None,
        links: Optional[Sequence[Link]] = None,
    ) -> SamplingResult:
        parent_span = get_current_span(parent_context)
        parent_span_context = parent_span.get_span_context()
        inherited = Decision.DROP

        if parent_span_context is None or not parent_span_context.is_valid:
            sampler = self._root
        elif parent_span_context.is_remote:
            if parent_span_context.trace_flags.sampled:
                sampler = self._remote_parent_sampled
                inherited = Decision.RECORD_AND_SAMPLE
            else:
                sampler = self._remote_parent_not_sampled
        elif parent_span_context.trace_flags.sampled:
            sampler = self._local_parent_sampled
            inherited = Decision.RECORD_AND_SAMPLE
        else:
            sampler = self._local_parent_not_sampled
            inherited = (
                Decision.RECORD_ONLY
                if parent_span.is_recording()
                else Decision.DROP
            )

        if sampler is not None:
            return sampler.should_sample(
                parent_context=parent_context,
                trace_id=trace_id,
                name=name,
                kind=kind,
                attributes=attributes,
                links=links,
            )

        if inherited is Decision.DROP:
            attributes = None
        return SamplingResult(
            inherited, attributes, parent_span_context.trace_state
        )

    def get_description(self) -> str:
        def describe(sampler: Optional[Sampler]) -> str:
            if sampler is None:
                return "inherit"
            return sampler.get_description()

        return (
            f"ParentBased{{root:{self._root.get_description()},"
            f"remoteParentSampled:{describe(self._remote_parent_sampled)},"
            f"remoteParentNotSampled:{describe(self._remote_parent_not_sampled)},"
            f"localParentSampled:{describe(self._local_parent_sampled)},"
            f"localParentNotSampled:{describe(self._local_parent_not_sampled)}}}"
        )


DEFAULT_OFF = ParentBased(ALWAYS_OFF)
"""Sampler that respects its parent span's sampling decision, but otherwise never samples."""

DEFAULT_ON = ParentBased(ALWAYS_ON)
"""Sampler that respects its parent span's sampling decision, but otherwise always samples."""


class RateLimitingSampler(_PipelineSampler):
    """Samples at most ``max_traces_per_second`` spans per second.

    Decisions ignore the trace id. Up to ``bucket_size`` spans can be
    sampled in a burst; the allowance refills continuously at
    ``max_traces_per_second``.

    Args:
        max_traces_per_second: Refill rate of the bucket.
        bucket_size: Largest burst, defaults to
            ``max(max_traces_per_second, 1)``.
    """

    SAMPLER_TYPE_KEY = "sampler.type"
    SAMPLER_PARAM_KEY = "sampler.param"
    SAMPLER_TYPE = "ratelimiting"

    def __init__(
        self,
        max_traces_per_second: float,
        bucket_size: Optional[float] = None,
        clock: Optional[_Clock] = None,
    ):
        if max_traces_per_second < 0:
            raise ValueError("max_traces_per_second must be non-negative.")
        if bucket_size is None:
            bucket_size = max(max_traces_per_second, 1.0)
        self._bucket = _LeakyBucket(
            bucket_size, max_traces_per_second, clock or _Clock()
        )

    @property
    def max_traces_per_second(self) -> float:
        return self._bucket.spans_per_second

    def update(self, max_traces_per_second: float) -> None:
        self._bucket.update(max_traces_per_second)

    def _should_sample(
        self,
        parent_context: Optional[Context],
        trace_id: int,
        name: str,
        kind: Optional[SpanKind] = None,
        attributes: Attributes = None,
        links: Optional[Sequence[Link]] = None,
    ) -> SamplingResult:
        trace_state = _get_parent_trace_state(parent_context)
        if not self._bucket.try_spend():
            return SamplingResult(Decision.DROP, None, trace_state)

        sampled_attributes = dict(attributes or {})
        sampled_attributes[self.SAMPLER_TYPE_KEY] = self.SAMPLER_TYPE
        sampled_attributes[self.SAMPLER_PARAM_KEY] = float(
            self.max_traces_per_second
        )
        return SamplingResult(
            Decision.RECORD_AND_SAMPLE, sampled_attributes, trace_state
        )

    def get_description(self) -> str:
        return f"RateLimitingSampler{{{self.max_traces_per_second}}}"


def _ratio_from_env(sampler_name: str) -> float:
    rate = environ.get(OTEL_TRACES_SAMPLER_ARG)
    try:
        ratio = float(rate)
    except (TypeError, ValueError):
        ratio = None
    if ratio is None or not math.isfinite(ratio):
        _logger.warning(
            "%s is %r but %s is missing or invalid (%r), using ratio 1.0",
            OTEL_TRACES_SAMPLER,
            sampler_name,
            OTEL_TRACES_SAMPLER_ARG,
            rate,
        )
        return 1.0
    return ratio


def sampler_from_env() -> Sampler:
    """Builds the sampler named by ``OTEL_TRACES_SAMPLER``.

    Recognized names are ``always_on``, ``always_off``, ``traceidratio``,
    ``parentbased_always_on``, ``parentbased_always_off`` and
    ``parentbased_traceidratio``. Unset or unknown names give
    :data:`DEFAULT_ON`.
    """
    sampler_name = environ.get(OTEL_TRACES_SAMPLER, "").strip().lower()
    if not sampler_name or sampler_name == "parentbased_always_on":
        return DEFAULT_ON
    if sampler_name == "always_on":
        return ALWAYS_ON
    if sampler_name == "always_off":
        return ALWAYS_OFF
    if sampler_name == "parentbased_always_off":
        return DEFAULT_OFF
    if sampler_name == "traceidratio":
        return TraceIdRatioBased(_ratio_from_env(sampler_name))
    if sampler_name == "parentbased_traceidratio":
        return ParentBased(TraceIdRatioBased(_ratio_from_env(sampler_name)))

    _logger.warning(
        "Unrecognized sampler %r in %s, using %s",
        sampler_name,
        OTEL_TRACES_SAMPLER,
        DEFAULT_ON.get_description(),
    )
    return DEFAULT_ON
