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

import logging
import threading
from unittest import TestCase, mock

from opentelemetry._logs import SeverityNumber
from opentelemetry.sdk.extension.pipeline.config import RecordLimits
from opentelemetry.sdk.extension.pipeline.export import InMemoryRecordExporter
from opentelemetry.sdk.extension.pipeline.handler import LoggingHandler
from opentelemetry.sdk.extension.pipeline.processor import (
    RecordProcessor,
    SimpleRecordProcessor,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.semconv._incubating.attributes import code_attributes
from opentelemetry.semconv.attributes import exception_attributes
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID


class _ErrorsOnlyExporter(InMemoryRecordExporter):
    def event_enabled(self, level, target, name):
        return level >= logging.ERROR


class _BrokenFilterExporter(InMemoryRecordExporter):
    def event_enabled(self, level, target, name):
        raise RuntimeError("filter failed")


def _logger(name, handler):
    logger = logging.getLogger(name)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


class TestLoggingHandler(TestCase):
    def setUp(self):
        self.exporter = InMemoryRecordExporter()
        self.handler = LoggingHandler(
            SimpleRecordProcessor(self.exporter),
            resource=Resource.create({"service.name": "handler-test"}),
        )
        self.logger = _logger("test.handler", self.handler)
        self.addCleanup(self.logger.removeHandler, self.handler)

    def test_record_fields(self):
        self.logger.warning("hello %s", "world")

        (record,) = self.exporter.get_finished_records()
        self.assertEqual(record.body, "hello world")
        self.assertEqual(record.severity_text, "WARN")
        self.assertEqual(record.severity_number, SeverityNumber.WARN)
        self.assertEqual(record.target, "test.handler")
        self.assertEqual(record.trace_id, INVALID_TRACE_ID)
        self.assertEqual(record.span_id, INVALID_SPAN_ID)
        self.assertFalse(record.is_sampled)
        self.assertIsNotNone(record.timestamp)
        self.assertGreaterEqual(record.observed_timestamp, record.timestamp)
        self.assertEqual(
            record.resource.attributes["service.name"], "handler-test"
        )
        self.assertEqual(
            record.attributes[code_attributes.CODE_FUNCTION_NAME],
            "test_record_fields",
        )
        self.assertTrue(
            record.attributes[code_attributes.CODE_FILE_PATH].endswith(
                "test_handler.py"
            )
        )
        self.assertIsInstance(
            record.attributes[code_attributes.CODE_LINE_NUMBER], int
        )

    def test_severity(self):
        self.logger.debug("debug")
        self.logger.error("error")
        self.logger.critical("critical")

        records = self.exporter.get_finished_records()
        self.assertEqual(
            [record.severity_number for record in records],
            [SeverityNumber.DEBUG, SeverityNumber.ERROR, SeverityNumber.FATAL],
        )
        self.assertEqual(
            [record.severity_text for record in records],
            ["DEBUG", "ERROR", "CRITICAL"],
        )

    def test_extra_attributes(self):
        self.logger.info("login", extra={"user": "alice", "attempt": 2})

        (record,) = self.exporter.get_finished_records()
        self.assertEqual(record.attributes["user"], "alice")
        self.assertEqual(record.attributes["attempt"], 2)
        self.assertNotIn("levelname", record.attributes)
        self.assertNotIn("msg", record.attributes)

    def test_non_string_body(self):
        self.logger.info({"event": "started"})

        (record,) = self.exporter.get_finished_records()
        self.assertEqual(record.body, {"event": "started"})

    def test_exception_attributes(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            self.logger.exception("failed")

        (record,) = self.exporter.get_finished_records()
        self.assertEqual(
            record.attributes[exception_attributes.EXCEPTION_TYPE],
            "ValueError",
        )
        self.assertEqual(
            record.attributes[exception_attributes.EXCEPTION_MESSAGE],
            "bad value",
        )
        self.assertIn(
            "Traceback",
            record.attributes[exception_attributes.EXCEPTION_STACKTRACE],
        )

    def test_trace_context(self):
        tracer = TracerProvider().get_tracer(__name__)
        with tracer.start_as_current_span("span") as span:
            self.logger.info("inside")
            span_context = span.get_span_context()

        (record,) = self.exporter.get_finished_records()
        self.assertEqual(record.trace_id, span_context.trace_id)
        self.assertEqual(record.span_id, span_context.span_id)
        self.assertEqual(record.trace_flags, span_context.trace_flags)

    def test_attribute_limits(self):
        handler = LoggingHandler(
            SimpleRecordProcessor(self.exporter),
            limits=RecordLimits(max_attributes=1),
        )
        logger = _logger("test.handler.limits", handler)
        self.addCleanup(logger.removeHandler, handler)

        logger.info("limited", extra={"user": "alice"})

        (record,) = self.exporter.get_finished_records()
        self.assertEqual(len(record.attributes), 1)
        self.assertEqual(record.attributes.dropped, 3)

    def test_event_enabled_is_checked_first(self):
        exporter = _ErrorsOnlyExporter()
        processor = mock.Mock(spec=RecordProcessor)
        handler = LoggingHandler(processor, exporter)
        logger = _logger("test.handler.filtered", handler)
        self.addCleanup(logger.removeHandler, handler)

        logger.info("ignored")
        processor.on_finish.assert_not_called()

        logger.error("kept")
        processor.on_finish.assert_called_once()

    def test_event_enabled_errors_do_not_reach_caller(self):
        processor = mock.Mock(spec=RecordProcessor)
        handler = LoggingHandler(processor, _BrokenFilterExporter())
        logger = _logger("test.handler.broken_filter", handler)
        self.addCleanup(logger.removeHandler, handler)

        with mock.patch.object(handler, "handleError") as handle_error:
            logger.info("still fine")

        handle_error.assert_called_once()
        processor.on_finish.assert_not_called()

    def test_own_loggers_are_skipped(self):
        logger = _logger(
            "opentelemetry.sdk.extension.pipeline.processor", self.handler
        )
        self.addCleanup(logger.removeHandler, self.handler)
        self.addCleanup(setattr, logger, "propagate", True)
        self.addCleanup(logger.setLevel, logging.NOTSET)

        logger.warning("internal")

        self.assertEqual(self.exporter.get_finished_records(), ())

    def test_level(self):
        handler = LoggingHandler(
            SimpleRecordProcessor(self.exporter), level=logging.WARNING
        )
        logger = _logger("test.handler.level", handler)
        self.addCleanup(logger.removeHandler, handler)

        logger.info("too low")
        logger.warning("enough")

        self.assertEqual(
            [record.body for record in self.exporter.get_finished_records()],
            ["enough"],
        )

    def test_flush_forwards_force_flush(self):
        flushed = threading.Event()
        processor = mock.Mock(spec=RecordProcessor)
        processor.force_flush.side_effect = lambda *args: flushed.set()

        LoggingHandler(processor).flush()

        self.assertTrue(flushed.wait(5))
