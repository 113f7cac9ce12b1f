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

import datetime


class _Clock:
    """Wall clock used by time-dependent samplers.

    Wrapped so tests can substitute a clock that moves on demand.
    """

    def now(self) -> datetime.datetime:
        return datetime.datetime.now()

    # pylint: disable=no-self-use
    def elapsed_seconds(
        self, since: datetime.datetime, until: datetime.datetime
    ) -> float:
        return (until - since).total_seconds()

    def time_delta(self, seconds: float) -> datetime.timedelta:
        return datetime.timedelta(seconds=seconds)
