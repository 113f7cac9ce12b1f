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

from logging import getLogger
from threading import Lock

from opentelemetry.sdk.extension.pipeline._clock import _Clock

_logger = getLogger(__name__)


class _LeakyBucket:
    """Token bucket refilled at ``spans_per_second`` up to ``bucket_size``.

    Refill happens lazily, only when a spend finds the bucket empty.
    """

    def __init__(
        self, bucket_size: float, spans_per_second: float, clock: _Clock
    ):
        self._bucket_size = bucket_size
        self._spans_per_second = spans_per_second
        self._available = bucket_size
        self._clock = clock
        self._last_time = self._clock.now()

        self.__lock = Lock()

    @property
    def spans_per_second(self) -> float:
        return self._spans_per_second

    def update(self, spans_per_second: float) -> None:
        with self.__lock:
            self._spans_per_second = spans_per_second

    def try_spend(self) -> bool:
        with self.__lock:
            if self._available >= 1.0:
                self._available -= 1.0
                return True

            now = self._clock.now()
            elapsed = self._clock.elapsed_seconds(self._last_time, now)
            if elapsed < 0:
                # fail open, the timestamp is kept until the clock catches up
                _logger.warning(
                    "Clock moved backwards by %.3fs, sampling anyway",
                    -elapsed,
                )
                return True

            self._last_time = now
            self._available = min(
                self._bucket_size,
                self._available + elapsed * self._spans_per_second,
            )
            if self._available >= 1.0:
                self._available -= 1.0
                return True
            return False
