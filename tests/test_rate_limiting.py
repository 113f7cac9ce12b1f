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
from unittest import TestCase

from opentelemetry.sdk.extension.pipeline._leaky_bucket import _LeakyBucket
from opentelemetry.sdk.extension.pipeline.sampling import RateLimitingSampler
from opentelemetry.sdk.trace.sampling import Decision

from ._mock_clock import MockClock


class TestLeakyBucket(TestCase):
    def test_try_spend(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        bucket = _LeakyBucket(2.0, 0.1, clock)

        self.assertTrue(bucket.try_spend())
        self.assertTrue(bucket.try_spend())
        self.assertFalse(bucket.try_spend())

        clock.add_time(10)
        self.assertTrue(bucket.try_spend())
        self.assertFalse(bucket.try_spend())

    def test_refill_is_capped_by_bucket_size(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        bucket = _LeakyBucket(2.0, 0.1, clock)

        for _ in range(2):
            bucket.try_spend()

        clock.add_time(1000)
        spent = 0
        for _ in range(10):
            if bucket.try_spend():
                spent += 1
        self.assertEqual(spent, 2)

    def test_never_more_than_bucket_size_in_a_short_window(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        bucket = _LeakyBucket(5.0, 1.0, clock)

        # window of bucket_size / rate seconds, walked in small steps
        spent = 0
        for _ in range(49):
            clock.add_time(0.1)
            for _ in range(10):
                if bucket.try_spend():
                    spent += 1
        # five up front plus one per second of refill
        self.assertLessEqual(spent, 5 + 4.9)

    def test_clock_rewind_fails_open(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        bucket = _LeakyBucket(1.0, 1.0, clock)

        self.assertTrue(bucket.try_spend())
        clock.add_time(-5)
        with self.assertLogs(
            "opentelemetry.sdk.extension.pipeline._leaky_bucket",
            level="WARNING",
        ):
            self.assertTrue(bucket.try_spend())

        # the last refill time is kept, so catching up does not over-refill
        clock.add_time(5)
        self.assertFalse(bucket.try_spend())
        clock.add_time(1)
        self.assertTrue(bucket.try_spend())

    def test_update(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        bucket = _LeakyBucket(10.0, 1.0, clock)
        bucket.update(10.0)
        self.assertEqual(bucket.spans_per_second, 10.0)

        for _ in range(10):
            bucket.try_spend()
        clock.add_time(0.5)

        spent = 0
        for _ in range(10):
            if bucket.try_spend():
                spent += 1
        self.assertEqual(spent, 5)


class TestRateLimitingSampler(TestCase):
    def test_should_sample(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        sampler = RateLimitingSampler(2.0, clock=clock)

        sampled = 0
        for _ in range(0, 100):
            if (
                sampler.should_sample(None, 1234, "name").decision
                != Decision.DROP
            ):
                sampled += 1
        self.assertEqual(sampled, 2)

        sampled = 0
        clock.add_time(0.5)
        for _ in range(0, 100):
            if (
                sampler.should_sample(None, 1234, "name").decision
                != Decision.DROP
            ):
                sampled += 1
        self.assertEqual(sampled, 1)

        sampled = 0
        clock.add_time(1000)
        for _ in range(0, 100):
            if (
                sampler.should_sample(None, 1234, "name").decision
                != Decision.DROP
            ):
                sampled += 1
        self.assertEqual(sampled, 2)

    def test_fractional_rate(self):
        time_now = datetime.datetime.fromtimestamp(1707551387.0)
        clock = MockClock(time_now)
        sampler = RateLimitingSampler(0.1, clock=clock)

        sampled = 0
        for _ in range(0, 50):
            if (
                sampler.should_sample(None, 1234, "name").decision
                != Decision.DROP
            ):
                sampled += 1
        self.assertEqual(sampled, 1)

        sampled = 0
        clock.add_time(5)
        for _ in range(0, 50):
            if (
                sampler.should_sample(None, 1234, "name").decision
                != Decision.DROP
            ):
                sampled += 1
        self.assertEqual(sampled, 0)

        sampled = 0
        clock.add_time(5)
        for _ in range(0, 50):
            if (
                sampler.should_sample(None, 1234, "name").decision
                != Decision.DROP
            ):
                sampled += 1
        self.assertEqual(sampled, 1)

    def test_sampled_attributes(self):
        sampler = RateLimitingSampler(
            5, clock=MockClock(datetime.datetime.fromtimestamp(1707551387.0))
        )
        result = sampler.should_sample(
            None, 1234, "name", attributes={"attr": "value"}
        )
        self.assertEqual(result.decision, Decision.RECORD_AND_SAMPLE)
        self.assertEqual(
            dict(result.attributes),
            {
                "attr": "value",
                "sampler.type": "ratelimiting",
                "sampler.param": 5.0,
            },
        )
        self.assertEqual(sampler.get_description(), "RateLimitingSampler{5}")

    def test_update(self):
        clock = MockClock(datetime.datetime.fromtimestamp(1707551387.0))
        sampler = RateLimitingSampler(1, bucket_size=1, clock=clock)
        sampler.update(4.0)
        self.assertEqual(sampler.max_traces_per_second, 4.0)

        sampler.should_sample(None, 1234, "name")
        clock.add_time(0.25)
        self.assertEqual(
            sampler.should_sample(None, 1234, "name").decision,
            Decision.RECORD_AND_SAMPLE,
        )

    def test_negative_rate(self):
        with self.assertRaises(ValueError):
            RateLimitingSampler(-1)
