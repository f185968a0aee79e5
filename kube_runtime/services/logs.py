"""
Log access for services.

Two modes behind one LogStream object:
  - replay: read a bounded history synchronously, then feed it to the
    stream from one producer thread
  - follow: tail every pod of the service live, one producer thread per pod

Producers check the stop signal before every record, so stopping a stream
never waits for a buffer to drain.
"""

import logging
import queue
import threading
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional

from kube_runtime.models import LogRecord, LogsOptions
from kube_runtime.services.kube_client import format_name

logger = logging.getLogger("logs")

_EOF = object()


class LogStream:
    """
    Records from background producers. Iterating yields records until the
    stream is stopped; stop() is idempotent and ends the stream exactly once.
    """

    def __init__(self):
        self._queue: "queue.Queue" = queue.Queue()
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[Exception] = None
        self._tails = []
        self._producers = 0

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def __iter__(self) -> Iterator[LogRecord]:
        while True:
            try:
                record = self.poll()
            except EOFError:
                return
            yield record

    def poll(self, timeout: Optional[float] = None) -> Optional[LogRecord]:
        """
        Next record, or None if nothing arrived within timeout.
        Raises EOFError once the stream has ended.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _EOF:
            # leave the marker for any later reader
            self._queue.put(_EOF)
            raise EOFError("log stream ended")
        return item

    def send(self, record: LogRecord) -> bool:
        """Queue a record. Returns False once the stream is stopped."""
        with self._lock:
            if self._stopped.is_set():
                return False
            self._queue.put(record)
            return True

    def attach(self, tail):
        """Close tail when the stream stops."""
        with self._lock:
            if not self._stopped.is_set():
                self._tails.append(tail)
                self._producers += 1
                return
        tail.close()

    def producer_done(self):
        with self._lock:
            self._producers -= 1
            last = self._producers <= 0
        if last:
            self.stop()

    def fail(self, err: Exception):
        if self._error is None:
            self._error = err
        self.stop()

    def stop(self):
        with self._lock:
            if self._stopped.is_set():
                return
            self._stopped.set()
            self._queue.put(_EOF)
            tails, self._tails = self._tails, []
        for tail in tails:
            tail.close()


def replay(records: Iterable[LogRecord]) -> LogStream:
    """Feed already-read records into a stream from a background thread."""
    stream = LogStream()

    def produce():
        for record in records:
            if not stream.send(record):
                break
        stream.stop()

    threading.Thread(target=produce, name="log-replay", daemon=True).start()
    return stream


def _follow(stream: LogStream, tail, pod_name: str):
    try:
        for line in tail:
            if not stream.send(LogRecord(message=line.rstrip("\n"), metadata={"pod": pod_name})):
                break
    except Exception as e:
        if not stream.stopped:
            logger.error(f"Log tail for pod {pod_name} failed: {e}")
            stream.fail(e)
    finally:
        stream.producer_done()


class ServiceLogs:
    """Reads or follows the logs of every pod of one service."""

    def __init__(self, kube, service: str, options: Optional[LogsOptions] = None):
        self.kube = kube
        self.service = service
        self.options = options or LogsOptions()

    def _pods(self) -> list:
        pods = self.kube.get("pod", {"name": format_name(self.service)}, namespace=self.options.namespace)
        return sorted(pods, key=lambda p: p.metadata.name)

    def _since_seconds(self) -> Optional[int]:
        since = self.options.since
        if since is None:
            return None
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        elapsed = (datetime.now(timezone.utc) - since).total_seconds()
        return max(1, int(elapsed))

    def read(self) -> List[LogRecord]:
        """Every pod's log in pod-name order; count > 0 keeps the last count lines overall."""
        count = self.options.count
        records: List[LogRecord] = []
        for pod in self._pods():
            name = pod.metadata.name
            text = self.kube.read_pod_log(
                name,
                namespace=self.options.namespace,
                tail_lines=count or None,
                since_seconds=self._since_seconds(),
            )
            for line in (text or "").splitlines():
                records.append(LogRecord(message=line, metadata={"pod": name}))
        if count:
            records = records[-count:]
        return records

    def stream(self) -> LogStream:
        stream = LogStream()
        pods = self._pods()
        if not pods:
            logger.info(f"No pods to follow for service {self.service}")
            stream.stop()
            return stream

        tails = []
        for pod in pods:
            name = pod.metadata.name
            tail = self.kube.follow_pod_log(
                name,
                namespace=self.options.namespace,
                tail_lines=self.options.count or None,
                since_seconds=self._since_seconds(),
            )
            stream.attach(tail)
            tails.append((name, tail))

        # start producers only once every tail is counted
        for name, tail in tails:
            threading.Thread(
                target=_follow, args=(stream, tail, name), name=f"log-follow-{name}", daemon=True
            ).start()
        return stream
