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

"""Configuration for batch processing and per-record limits.

Every option has a default and, when built through ``from_env``, can be
overridden with the standard ``OTEL_BSP_*`` / ``OTEL_BLRP_*`` /
``OTEL_SPAN_*_COUNT_LIMIT`` environment variables.
"""

import logging
from dataclasses import dataclass
from os import environ
from typing import Dict, Optional

from opentelemetry.sdk.environment_variables import (
    OTEL_BLRP_EXPORT_TIMEOUT,
    OTEL_BLRP_MAX_EXPORT_BATCH_SIZE,
    OTEL_BLRP_MAX_QUEUE_SIZE,
    OTEL_BLRP_SCHEDULE_DELAY,
    OTEL_BSP_EXPORT_TIMEOUT,
    OTEL_BSP_MAX_EXPORT_BATCH_SIZE,
    OTEL_BSP_MAX_QUEUE_SIZE,
    OTEL_BSP_SCHEDULE_DELAY,
    OTEL_SPAN_ATTRIBUTE_COUNT_LIMIT,
    OTEL_SPAN_EVENT_COUNT_LIMIT,
    OTEL_SPAN_LINK_COUNT_LIMIT,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUEUE_SIZE = 2048
DEFAULT_MAX_EXPORT_BATCH_SIZE = 512
DEFAULT_SCHEDULE_DELAY_MILLIS = 5000
DEFAULT_LOGS_SCHEDULE_DELAY_MILLIS = 1000
DEFAULT_EXPORT_TIMEOUT_MILLIS = 30000
DEFAULT_LIMIT = 128

_SIGNAL_ENV_VARS = {
    "traces": {
        "max_queue_size": OTEL_BSP_MAX_QUEUE_SIZE,
        "max_export_batch_size": OTEL_BSP_MAX_EXPORT_BATCH_SIZE,
        "scheduled_delay_millis": OTEL_BSP_SCHEDULE_DELAY,
        "max_export_timeout_millis": OTEL_BSP_EXPORT_TIMEOUT,
    },
    "logs": {
        "max_queue_size": OTEL_BLRP_MAX_QUEUE_SIZE,
        "max_export_batch_size": OTEL_BLRP_MAX_EXPORT_BATCH_SIZE,
        "scheduled_delay_millis": OTEL_BLRP_SCHEDULE_DELAY,
        "max_export_timeout_millis": OTEL_BLRP_EXPORT_TIMEOUT,
    },
}


def _int_from_env(name: str, default: Optional[int]) -> Optional[int]:
    value = environ.get(name, "").strip()
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        parsed = None
    if parsed is None or parsed < 0:
        logger.warning(
            "Invalid value %r for %s, using default %s", value, name, default
        )
        return default
    return parsed


@dataclass(frozen=True)
class BatchConfig:
    """Immutable settings of a :class:`BatchProcessor`.

    Args:
        max_queue_size: records buffered before new ones are dropped.
        max_export_batch_size: upper bound of records per export call,
            must not exceed ``max_queue_size``.
        scheduled_delay_millis: interval between two periodic exports.
        max_export_timeout_millis: time an export call may take before its
            result is abandoned.
    """

    max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE
    max_export_batch_size: int = DEFAULT_MAX_EXPORT_BATCH_SIZE
    scheduled_delay_millis: float = DEFAULT_SCHEDULE_DELAY_MILLIS
    max_export_timeout_millis: float = DEFAULT_EXPORT_TIMEOUT_MILLIS

    def __post_init__(self):
        if self.max_queue_size <= 0:
            raise ValueError("max_queue_size must be a positive integer.")

        if self.max_export_batch_size <= 0:
            raise ValueError(
                "max_export_batch_size must be a positive integer."
            )

        if self.max_export_batch_size > self.max_queue_size:
            raise ValueError(
                "max_export_batch_size must be less than or equal to max_queue_size."
            )

        if self.scheduled_delay_millis <= 0:
            raise ValueError("scheduled_delay_millis must be positive.")

        if self.max_export_timeout_millis <= 0:
            raise ValueError("max_export_timeout_millis must be positive.")

    @property
    def scheduled_delay(self) -> float:
        return self.scheduled_delay_millis / 1e3

    @property
    def max_export_timeout(self) -> float:
        return self.max_export_timeout_millis / 1e3

    @classmethod
    def from_env(cls, signal: str = "traces", **overrides) -> "BatchConfig":
        """Build a config from the environment of the given signal.

        Keyword arguments that are not ``None`` take precedence over the
        environment. A batch size that exceeds the queue size is lowered to
        the queue size.
        """
        try:
            env_vars = _SIGNAL_ENV_VARS[signal]
        except KeyError:
            raise ValueError(
                f"Unknown signal {signal!r}, expected one of {sorted(_SIGNAL_ENV_VARS)}"
            ) from None

        defaults = {
            "max_queue_size": DEFAULT_MAX_QUEUE_SIZE,
            "max_export_batch_size": DEFAULT_MAX_EXPORT_BATCH_SIZE,
            "scheduled_delay_millis": (
                DEFAULT_LOGS_SCHEDULE_DELAY_MILLIS
                if signal == "logs"
                else DEFAULT_SCHEDULE_DELAY_MILLIS
            ),
            "max_export_timeout_millis": DEFAULT_EXPORT_TIMEOUT_MILLIS,
        }
        values: Dict[str, float] = {}
        for field_name, env_var in env_vars.items():
            override = overrides.pop(field_name, None)
            if override is not None:
                values[field_name] = override
            else:
                values[field_name] = _int_from_env(
                    env_var, defaults[field_name]
                )

        if overrides:
            raise TypeError(
                f"Unexpected configuration options: {sorted(overrides)}"
            )

        if values["max_export_batch_size"] > values["max_queue_size"]:
            logger.warning(
                "max_export_batch_size %s is larger than max_queue_size %s, "
                "using %s",
                values["max_export_batch_size"],
                values["max_queue_size"],
                values["max_queue_size"],
            )
            values["max_export_batch_size"] = values["max_queue_size"]

        return cls(**values)


@dataclass(frozen=True)
class RecordLimits:
    """Capacity of the bounded collections of one finished record."""

    max_attributes: Optional[int] = DEFAULT_LIMIT
    max_events: Optional[int] = DEFAULT_LIMIT
    max_links: Optional[int] = DEFAULT_LIMIT

    @classmethod
    def from_env(cls) -> "RecordLimits":
        return cls(
            max_attributes=_int_from_env(
                OTEL_SPAN_ATTRIBUTE_COUNT_LIMIT, DEFAULT_LIMIT
            ),
            max_events=_int_from_env(
                OTEL_SPAN_EVENT_COUNT_LIMIT, DEFAULT_LIMIT
            ),
            max_links=_int_from_env(OTEL_SPAN_LINK_COUNT_LIMIT, DEFAULT_LIMIT),
        )
