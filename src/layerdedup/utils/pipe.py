"""Bounded in-memory handoff between one producer thread and one consumer.

The producer writes through :class:`PipeWriter`; writes are coalesced into
chunks of ``chunk_size`` bytes and at most ``max_chunks`` chunks are queued,
so a slow consumer blocks the producer instead of growing the buffer. The
consumer reads through :class:`PipeReader`, an ordinary readable binary file
object.

End of stream is explicit: ``read()`` returns ``b''`` only after the producer
finished successfully. If the producer failed, the chunks it queued before the
failure are still delivered, then every further read raises the producer's
exception.

Example:
    pipe = Pipe()
    reader = pipe.start(lambda writer: writer.write(b'payload'))
    data = reader.read()
"""
import collections
import io
import logging
import threading
from typing import Any, Callable

from ..errors import PassCancelled, SinkWriteFailure

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_CHUNKS = 16


class Pipe:
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, max_chunks: int = DEFAULT_MAX_CHUNKS):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        if max_chunks <= 0:
            raise ValueError(f"max_chunks must be positive: {max_chunks}")

        self._chunk_size = chunk_size
        self._max_chunks = max_chunks
        self._condition = threading.Condition()
        self._chunks: collections.deque[memoryview] = collections.deque()
        self._pending = bytearray()
        self._finished = False
        self._result: Any = None
        self._error: Exception | None = None
        self._cancelled = False
        self._reader_closed = False
        self._thread: threading.Thread | None = None

        self.reader = PipeReader(self)
        self.writer = PipeWriter(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self, produce: Callable[['PipeWriter'], Any], *, name: str | None = None) -> 'PipeReader':
        """Run ``produce(writer)`` in a new thread and return the read side.

        The pipe finishes with the return value of ``produce`` once all its
        writes are flushed, or fails with the exception it raised.
        """
        if self._thread is not None:
            raise RuntimeError("Pipe producer already started")

        def run():
            try:
                result = produce(self.writer)
                self.finish(result)
            except Exception as e:
                logger.debug(f"Producer {threading.current_thread().name} ended with {e!r}")
                self.fail(e)

        self._thread = threading.Thread(target=run, name=name, daemon=True)
        self._thread.start()
        return self.reader

    def finish(self, result: Any = None) -> None:
        """Flush pending writes and mark the stream as successfully completed."""
        self._flush()
        with self._condition:
            self._finished = True
            self._result = result
            self._condition.notify_all()

    def fail(self, error: Exception) -> None:
        """Terminate the stream with ``error`` after the already queued chunks."""
        with self._condition:
            if self._finished:
                return
            self._pending.clear()
            self._finished = True
            self._error = error
            self._condition.notify_all()

    def cancel(self) -> None:
        """Ask the producer to stop; its next write raises :class:`PassCancelled`."""
        with self._condition:
            if not self._finished:
                self._cancelled = True
                self._condition.notify_all()

    def result(self, timeout: float | None = None) -> Any:
        """Wait for the producer and return its result or raise its exception.

        Raises:
            TimeoutError: If the producer did not finish within ``timeout`` seconds
        """
        with self._condition:
            if not self._condition.wait_for(lambda: self._finished, timeout):
                raise TimeoutError("Pipe producer did not finish in time")
            if self._error is not None:
                raise self._error
            return self._result

    def _write(self, data) -> int:
        self._pending += data
        while len(self._pending) >= self._chunk_size:
            chunk = bytes(self._pending[:self._chunk_size])
            del self._pending[:self._chunk_size]
            self._put(chunk)
        return len(data)

    def _flush(self) -> None:
        if self._pending:
            chunk = bytes(self._pending)
            self._pending.clear()
            self._put(chunk)

    def _put(self, chunk: bytes) -> None:
        with self._condition:
            while True:
                if self._cancelled:
                    raise PassCancelled("Pass cancelled")
                if self._reader_closed:
                    raise SinkWriteFailure("Output stream closed by the consumer")
                if self._finished:
                    raise ValueError("Write to a finished pipe")
                if len(self._chunks) < self._max_chunks:
                    break
                self._condition.wait()

            self._chunks.append(memoryview(chunk))
            self._condition.notify_all()

    def _readinto(self, buffer) -> int:
        with self._condition:
            while not self._chunks and not self._finished:
                self._condition.wait()

            if self._chunks:
                chunk = self._chunks[0]
                size = min(len(buffer), len(chunk))
                buffer[:size] = chunk[:size]
                if size == len(chunk):
                    self._chunks.popleft()
                else:
                    self._chunks[0] = chunk[size:]
                self._condition.notify_all()
                return size

            if self._error is not None:
                raise self._error
            return 0

    def _close_reader(self) -> None:
        with self._condition:
            self._reader_closed = True
            self._chunks.clear()
            self._condition.notify_all()


class PipeWriter:
    """Write side of a :class:`Pipe`, used by the producer thread only."""

    def __init__(self, pipe: Pipe):
        self._pipe = pipe

    def write(self, data) -> int:
        return self._pipe._write(data)

    def flush(self) -> None:
        self._pipe._flush()

    @property
    def cancelled(self) -> bool:
        return self._pipe.cancelled


class PipeReader(io.RawIOBase):
    """Read side of a :class:`Pipe`.

    Closing the reader before the end of the stream makes the producer's next
    write fail with :class:`SinkWriteFailure`.
    """

    def __init__(self, pipe: Pipe):
        super().__init__()
        self._pipe = pipe

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed pipe reader")
        return self._pipe._readinto(buffer)

    def close(self) -> None:
        if not self.closed:
            self._pipe._close_reader()
        super().close()

    def cancel(self) -> None:
        self._pipe.cancel()

    def result(self, timeout: float | None = None) -> Any:
        return self._pipe.result(timeout)

    @property
    def finished(self) -> bool:
        return self._pipe.finished
