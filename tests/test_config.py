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

from unittest import TestCase, mock

import pytest

from opentelemetry.sdk.environment_variables import (
    OTEL_BLRP_SCHEDULE_DELAY,
    OTEL_BSP_EXPORT_TIMEOUT,
    OTEL_BSP_MAX_EXPORT_BATCH_SIZE,
    OTEL_BSP_MAX_QUEUE_SIZE,
    OTEL_BSP_SCHEDULE_DELAY,
    OTEL_SPAN_ATTRIBUTE_COUNT_LIMIT,
    OTEL_SPAN_LINK_COUNT_LIMIT,
)
from opentelemetry.sdk.extension.pipeline.config import (
    BatchConfig,
    RecordLimits,
)


class TestBatchConfig(TestCase):
    def test_defaults(self):
        config = BatchConfig()
        self.assertEqual(config.max_queue_size, 2048)
        self.assertEqual(config.max_export_batch_size, 512)
        self.assertEqual(config.scheduled_delay_millis, 5000)
        self.assertEqual(config.max_export_timeout_millis, 30000)
        self.assertEqual(config.scheduled_delay, 5.0)
        self.assertEqual(config.max_export_timeout, 30.0)

    def test_invalid_values_raise(self):
        for kwargs in (
            {"max_queue_size": 0},
            {"max_export_batch_size": 0},
            {"max_export_batch_size": -1},
            {"scheduled_delay_millis": 0},
            {"max_export_timeout_millis": -5},
            {"max_queue_size": 10, "max_export_batch_size": 11},
        ):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValueError):
                    BatchConfig(**kwargs)

    def test_immutable(self):
        config = BatchConfig()
        with self.assertRaises(AttributeError):
            config.max_queue_size = 1

    @mock.patch.dict("os.environ", {}, clear=True)
    def test_from_env_defaults(self):
        self.assertEqual(BatchConfig.from_env(), BatchConfig())
        self.assertEqual(
            BatchConfig.from_env("logs").scheduled_delay_millis, 1000
        )

    @mock.patch.dict(
        "os.environ",
        {
            OTEL_BSP_MAX_QUEUE_SIZE: "100",
            OTEL_BSP_MAX_EXPORT_BATCH_SIZE: "10",
            OTEL_BSP_SCHEDULE_DELAY: "250",
            OTEL_BSP_EXPORT_TIMEOUT: "1000",
            OTEL_BLRP_SCHEDULE_DELAY: "42",
        },
    )
    def test_from_env(self):
        config = BatchConfig.from_env()
        self.assertEqual(config.max_queue_size, 100)
        self.assertEqual(config.max_export_batch_size, 10)
        self.assertEqual(config.scheduled_delay_millis, 250)
        self.assertEqual(config.max_export_timeout_millis, 1000)

        self.assertEqual(
            BatchConfig.from_env("logs").scheduled_delay_millis, 42
        )

    @mock.patch.dict("os.environ", {OTEL_BSP_MAX_QUEUE_SIZE: "100"})
    def test_overrides_win_over_env(self):
        config = BatchConfig.from_env(max_queue_size=8, max_export_batch_size=4)
        self.assertEqual(config.max_queue_size, 8)
        self.assertEqual(config.max_export_batch_size, 4)

    @mock.patch.dict(
        "os.environ",
        {OTEL_BSP_MAX_QUEUE_SIZE: "16", OTEL_BSP_MAX_EXPORT_BATCH_SIZE: "64"},
    )
    def test_from_env_clamps_batch_size(self):
        with self.assertLogs(
            "opentelemetry.sdk.extension.pipeline.config", level="WARNING"
        ):
            config = BatchConfig.from_env()
        self.assertEqual(config.max_export_batch_size, 16)

    @mock.patch.dict(
        "os.environ",
        {OTEL_BSP_MAX_QUEUE_SIZE: "lots", OTEL_BSP_SCHEDULE_DELAY: "-3"},
    )
    def test_invalid_env_falls_back_to_default(self):
        with self.assertLogs(
            "opentelemetry.sdk.extension.pipeline.config", level="WARNING"
        ) as logs:
            config = BatchConfig.from_env()
        self.assertEqual(config.max_queue_size, 2048)
        self.assertEqual(config.scheduled_delay_millis, 5000)
        self.assertEqual(len(logs.records), 2)


def test_unknown_signal():
    with pytest.raises(ValueError):
        BatchConfig.from_env("metrics")


def test_unknown_override():
    with pytest.raises(TypeError):
        BatchConfig.from_env(max_queue=10)


@mock.patch.dict(
    "os.environ",
    {OTEL_SPAN_ATTRIBUTE_COUNT_LIMIT: "5", OTEL_SPAN_LINK_COUNT_LIMIT: ""},
)
def test_record_limits_from_env():
    limits = RecordLimits.from_env()
    assert limits.max_attributes == 5
    assert limits.max_events == 128
    assert limits.max_links == 128
