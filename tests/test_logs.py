"""
Tests for log streams: replay, live follow and stop semantics.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_pod
from kube_runtime.models import LogRecord, LogsOptions
from kube_runtime.services.logs import _EOF, LogStream, ServiceLogs, replay


def _records(n):
    return [LogRecord(message=f"line {i}") for i in range(n)]


class TestLogStream:
    def test_stop_is_idempotent(self):
        stream = LogStream()
        stream.stop()
        stream.stop()
        assert stream.stopped
        assert list(stream) == []
        # exactly one end marker, re-queued by the reader
        assert stream._queue.qsize() == 1
        assert stream._queue.get_nowait() is _EOF

    def test_concurrent_stops(self):
        stream = LogStream()
        threads = [threading.Thread(target=stream.stop) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert stream._queue.qsize() == 1

    def test_send_after_stop_is_refused(self):
        stream = LogStream()
        assert stream.send(LogRecord(message="first"))
        stream.stop()
        assert not stream.send(LogRecord(message="late"))
        assert [r.message for r in stream] == ["first"]

    def test_poll_times_out_while_idle(self):
        stream = LogStream()
        assert stream.poll(timeout=0.05) is None
        stream.send(LogRecord(message="late"))
        assert stream.poll(timeout=1).message == "late"

    def test_poll_after_end_raises_every_time(self):
        stream = LogStream()
        stream.stop()
        for _ in range(2):
            with pytest.raises(EOFError):
                stream.poll(timeout=1)

    def test_fail_records_first_error_and_stops(self):
        stream = LogStream()
        first, second = RuntimeError("first"), RuntimeError("second")
        stream.fail(first)
        stream.fail(second)
        assert stream.error is first
        assert stream.stopped

    def test_stop_closes_attached_tails(self, kube):
        stream = LogStream()
        tail = kube.follow_pod_log("api-v1-abc12")
        stream.attach(tail)
        stream.stop()
        assert tail.closed

    def test_attach_after_stop_closes_tail(self, kube):
        stream = LogStream()
        stream.stop()
        tail = kube.follow_pod_log("api-v1-abc12")
        stream.attach(tail)
        assert tail.closed


class TestReplay:
    def test_yields_records_in_order(self):
        stream = replay(_records(50))
        assert [r.message for r in stream] == [f"line {i}" for i in range(50)]
        assert stream.stopped

    def test_empty_replay_ends(self):
        assert list(replay([])) == []

    def test_stop_halts_producer(self):
        """Stopping mid-replay ends iteration without draining the buffer."""
        stream = replay(_records(10000))
        seen = []
        for record in stream:
            seen.append(record)
            if len(seen) == 3:
                stream.stop()
        assert stream.stopped
        assert len(seen) >= 3
        assert len(seen) <= 10000


class TestServiceLogs:
    def _seed(self, kube, namespace="default"):
        kube.add("pod", make_pod("api", "v1", pod_name="api-v1-b", namespace=namespace), namespace=namespace)
        kube.add("pod", make_pod("api", "v1", pod_name="api-v1-a", namespace=namespace), namespace=namespace)
        kube.pod_logs[(namespace, "api-v1-a")] = ["a1", "a2"]
        kube.pod_logs[(namespace, "api-v1-b")] = ["b1", "b2", "b3"]

    def test_read_all_pods_in_name_order(self, kube):
        self._seed(kube)
        records = ServiceLogs(kube, "api").read()
        assert [r.message for r in records] == ["a1", "a2", "b1", "b2", "b3"]
        assert records[0].metadata == {"pod": "api-v1-a"}

    def test_read_keeps_last_count(self, kube):
        self._seed(kube)
        records = ServiceLogs(kube, "api", LogsOptions(count=2)).read()
        assert [r.message for r in records] == ["b2", "b3"]

    def test_read_in_namespace(self, kube):
        self._seed(kube, namespace="ns1")
        assert ServiceLogs(kube, "api").read() == []
        assert len(ServiceLogs(kube, "api", LogsOptions(namespace="ns1")).read()) == 5

    def test_since_becomes_seconds(self, kube):
        since = datetime.now(timezone.utc) - timedelta(minutes=5)
        seconds = ServiceLogs(kube, "api", LogsOptions(since=since))._since_seconds()
        assert 299 <= seconds <= 310
        assert ServiceLogs(kube, "api")._since_seconds() is None

    def test_stream_without_pods_is_already_stopped(self, kube):
        stream = ServiceLogs(kube, "api", LogsOptions(stream=True)).stream()
        assert stream.stopped
        assert list(stream) == []

    def test_stream_follows_every_pod(self, kube):
        self._seed(kube)
        stream = ServiceLogs(kube, "api", LogsOptions(stream=True)).stream()
        records = list(stream)
        assert sorted(r.message for r in records) == ["a1", "a2", "b1", "b2", "b3"]
        assert [r.message for r in records if r.metadata["pod"] == "api-v1-b"] == ["b1", "b2", "b3"]
        assert stream.stopped

    def test_stop_closes_every_tail(self, kube):
        self._seed(kube)
        stream = ServiceLogs(kube, "api", LogsOptions(stream=True)).stream()
        stream.stop()
        assert len(kube.tails) == 2
        assert all(tail.closed for tail in kube.tails)
