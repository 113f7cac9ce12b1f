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
from typing import Dict, Iterator, Mapping, Optional

from opentelemetry.sdk.extension.pipeline.processor import (
    ProcessorResult,
    RecordProcessor,
)

logger = logging.getLogger(__name__)


class PipelineRegistry:
    """Keeps the processors of an application under stable names.

    The registry is created once at startup, shared with whatever needs to
    flush or swap a pipeline, and torn down once at exit. Replacing a
    processor shuts the previous one down so its pending records are
    exported before the new one takes over.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._processors: Dict[str, RecordProcessor] = {}
        self._initialized = False
        self._torn_down = False

    def initialize(self, processors: Mapping[str, RecordProcessor]) -> None:
        with self._lock:
            if self._torn_down:
                raise RuntimeError("Registry has already been torn down")
            if self._initialized:
                raise RuntimeError("Registry is already initialized")
            self._processors.update(processors)
            self._initialized = True

    def register(self, name: str, processor: RecordProcessor) -> None:
        with self._lock:
            if self._torn_down:
                raise RuntimeError("Registry has already been torn down")
            if name in self._processors:
                raise KeyError(f"A processor named {name!r} already exists")
            self._processors[name] = processor
            self._initialized = True

    def get(self, name: str) -> RecordProcessor:
        with self._lock:
            return self._processors[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._processors

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._processors))

    def replace(
        self,
        name: str,
        processor: RecordProcessor,
        timeout_millis: Optional[float] = None,
    ) -> ProcessorResult:
        """Installs ``processor`` under ``name`` and shuts the old one down.

        Returns the result of the old processor's shutdown.
        """
        with self._lock:
            if self._torn_down:
                raise RuntimeError("Registry has already been torn down")
            previous = self._processors[name]
            self._processors[name] = processor
        logger.debug("Replaced processor %r, shutting down the previous one", name)
        return previous.shutdown(timeout_millis)

    def force_flush(self, timeout_millis: Optional[float] = None) -> bool:
        """Flushes every processor, returns whether all of them succeeded."""
        with self._lock:
            processors = list(self._processors.items())
        success = True
        for name, processor in processors:
            result = processor.force_flush(timeout_millis)
            if result is not ProcessorResult.SUCCESS:
                logger.warning("Flushing processor %r returned %s", name, result)
                success = False
        return success

    def teardown(self, timeout_millis: Optional[float] = None) -> bool:
        """Shuts every processor down. Calling it again does nothing."""
        with self._lock:
            if self._torn_down:
                return True
            self._torn_down = True
            processors = list(self._processors.items())
            self._processors.clear()
        success = True
        for name, processor in processors:
            result = processor.shutdown(timeout_millis)
            if result is ProcessorResult.TIMEOUT:
                logger.warning("Shutting down processor %r timed out", name)
                success = False
        return success
