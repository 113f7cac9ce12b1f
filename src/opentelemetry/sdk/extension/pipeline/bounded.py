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

"""Fixed-capacity collections that evict their oldest entries.

Every finished record keeps its attributes, events and links in one of
these so a single pathological record cannot grow without bound. Eviction
is not an error: the evicted entry is counted in ``dropped`` and the
insert succeeds.
"""

from collections import OrderedDict, deque
from collections.abc import MutableMapping
from typing import (
    Any,
    Deque,
    Generic,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    TypeVar,
)

_T = TypeVar("_T")
_K = TypeVar("_K")
_V = TypeVar("_V")


def _check_maxlen(maxlen: Optional[int]) -> None:
    if maxlen is not None and maxlen < 0:
        raise ValueError("maxlen must be a non-negative integer or None")


class BoundedList(Generic[_T]):
    """An append-only sequence holding at most ``maxlen`` items.

    Appending to a full list evicts the oldest item and increments
    ``dropped``. Iteration walks a snapshot taken when it starts.
    """

    def __init__(self, maxlen: Optional[int]) -> None:
        _check_maxlen(maxlen)
        self.dropped = 0
        self._dq: Deque[_T] = deque(maxlen=maxlen)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self._dq)}, maxlen={self._dq.maxlen})"

    def __getitem__(self, index: int) -> _T:
        return self._dq[index]

    def __len__(self) -> int:
        return len(self._dq)

    def __iter__(self) -> Iterator[_T]:
        return iter(list(self._dq))

    @property
    def maxlen(self) -> Optional[int]:
        return self._dq.maxlen

    def append(self, item: _T) -> None:
        if self._dq.maxlen == 0:
            self.dropped += 1
            return
        if len(self._dq) == self._dq.maxlen:
            self.dropped += 1
        self._dq.append(item)

    def extend(self, seq: Iterable[_T]) -> None:
        for item in seq:
            self.append(item)

    @classmethod
    def from_seq(
        cls, maxlen: Optional[int], seq: Iterable[_T]
    ) -> "BoundedList[_T]":
        bounded_list = cls(maxlen)
        bounded_list.extend(seq)
        return bounded_list


class BoundedDict(MutableMapping, Generic[_K, _V]):
    """A mapping holding at most ``maxlen`` keys.

    Writing an existing key replaces its value (last write wins) and
    marks it as the most recently written key without using a new slot.
    Writing a new key into a full dict evicts the least recently written
    key and increments ``dropped``.
    """

    def __init__(self, maxlen: Optional[int]) -> None:
        _check_maxlen(maxlen)
        self.maxlen = maxlen
        self.dropped = 0
        self._dict: "OrderedDict[_K, _V]" = OrderedDict()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self._dict)}, maxlen={self.maxlen})"

    def __getitem__(self, key: _K) -> _V:
        return self._dict[key]

    def __setitem__(self, key: _K, value: _V) -> None:
        if self.maxlen == 0:
            self.dropped += 1
            return

        if key in self._dict:
            del self._dict[key]
        elif self.maxlen is not None and len(self._dict) == self.maxlen:
            self._dict.popitem(last=False)
            self.dropped += 1

        self._dict[key] = value

    def __delitem__(self, key: _K) -> None:
        del self._dict[key]

    def __iter__(self) -> Iterator[_K]:
        return iter(list(self._dict))

    def __len__(self) -> int:
        return len(self._dict)

    def copy(self) -> "dict[_K, _V]":
        return dict(self._dict)

    @classmethod
    def from_map(
        cls, maxlen: Optional[int], mapping: Optional[Mapping[_K, Any]]
    ) -> "BoundedDict[_K, Any]":
        bounded_dict = cls(maxlen)
        if mapping:
            for key, value in mapping.items():
                bounded_dict[key] = value
        return bounded_dict
