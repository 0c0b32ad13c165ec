"""Tests for GradientMailbox — absent state, no clear-on-read, staleness, torn reads."""

import threading

from vvc.mailbox import GradientMailbox, GradientVector


class TestTakeLatest:
    def test_absent_before_publish(self):
        assert GradientMailbox().take_latest() is None

    def test_returns_published_vector(self):
        box = GradientMailbox()
        vector = GradientVector.of([0.5, 1.0, 1.5])
        box.publish(vector)
        assert box.take_latest() == vector

    def test_repeated_reads_return_same_value(self):
        box = GradientMailbox()
        vector = GradientVector.of([1.0, 2.0])
        box.publish(vector)
        assert box.take_latest() == vector
        assert box.take_latest() == vector
        assert box.take_latest() is box.take_latest()

    def test_publish_overwrites(self):
        box = GradientMailbox()
        box.publish(GradientVector.of([1.0]))
        box.publish(GradientVector.of([2.0, 3.0]))
        assert box.take_latest().values == (2.0, 3.0)

    def test_publish_count(self):
        box = GradientMailbox()
        box.publish(GradientVector.of([1.0]))
        box.publish(GradientVector.of([1.0]))
        assert box.publish_count == 2


class TestStaleness:
    def test_no_limit_reuses_old_vector(self):
        now = [0.0]
        box = GradientMailbox(clock=lambda: now[0])
        box.publish(GradientVector.of([1.0]))
        now[0] = 1e6
        assert box.take_latest().values == (1.0,)

    def test_vector_past_max_age_is_absent(self):
        now = [100.0]
        box = GradientMailbox(max_age_s=5.0, clock=lambda: now[0])
        box.publish(GradientVector.of([1.0]))
        now[0] = 104.0
        assert box.take_latest() is not None
        now[0] = 106.0
        assert box.take_latest() is None

    def test_new_publish_refreshes_age(self):
        now = [0.0]
        box = GradientMailbox(max_age_s=5.0, clock=lambda: now[0])
        box.publish(GradientVector.of([1.0]))
        now[0] = 10.0
        box.publish(GradientVector.of([2.0]))
        assert box.take_latest().values == (2.0,)


class TestGradientVector:
    def test_of_coerces_to_float_tuple(self):
        vector = GradientVector.of([1, 2, 3], capture_time="t", source="leader")
        assert vector.values == (1.0, 2.0, 3.0)
        assert vector.source == "leader"
        assert len(vector) == 3
        assert vector[1] == 2.0


class TestConcurrency:
    def test_interleaved_writers_and_readers_never_see_torn_vectors(self):
        box = GradientMailbox()
        written = {tuple(float(k) for _ in range(64)) for k in range(8)}
        errors = []

        def writer(k):
            values = [float(k)] * 64
            try:
                for _ in range(500):
                    box.publish(GradientVector.of(values))
            except Exception as exc:
                errors.append(exc)

        def reader():
            try:
                for _ in range(500):
                    latest = box.take_latest()
                    if latest is not None and latest.values not in written:
                        errors.append(AssertionError(f"torn read: {set(latest.values)}"))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer, args=(k,)) for k in range(8)]
        threads += [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
