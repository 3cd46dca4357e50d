"""Output redirection — swap a pipe onto a file descriptor and restore it later."""

import io
import logging
import os
import sys
import threading

logger = logging.getLogger(__name__)


class OutputRedirect:
    """Intercepts writes to ``fd`` by pointing it at the write end of a pipe.

    Lifecycle: ``acquire`` -> read intercepted bytes from the returned
    descriptor -> ``restore`` (``fd`` points at the original sink again and
    the pipe's write end is closed so the reader sees EOF) -> ``release``
    once the reader is done. ``release`` restores first when the reader
    exits on its own, so ``fd`` never stays pointed at an unread pipe.
    ``write_through`` copies bytes to the original sink so the console keeps
    showing output while it is captured.
    """

    def __init__(self, fd: int, stream=None):
        self._fd = fd
        self._stream = stream
        self._saved_fd: int | None = None
        self._read_fd: int | None = None
        self._write_fd: int | None = None
        self._lock = threading.Lock()

    @classmethod
    def for_stdout(cls) -> "OutputRedirect":
        try:
            return cls(sys.stdout.fileno(), sys.stdout)
        except (AttributeError, ValueError, io.UnsupportedOperation):
            # sys.stdout replaced by an object without a descriptor
            return cls(1, sys.__stdout__)

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def is_active(self) -> bool:
        return self._write_fd is not None

    def acquire(self) -> int:
        """Start intercepting. Returns the descriptor to read captured bytes from."""
        if self._write_fd is not None:
            raise RuntimeError("redirect already acquired")
        self._flush_stream()

        saved = os.dup(self._fd)
        try:
            read_fd, write_fd = os.pipe()
        except OSError:
            os.close(saved)
            raise
        try:
            os.dup2(write_fd, self._fd)
        except OSError:
            for fd in (saved, read_fd, write_fd):
                os.close(fd)
            raise

        self._saved_fd = saved
        self._read_fd = read_fd
        self._write_fd = write_fd
        logger.debug("Redirected fd %d through pipe (saved as fd %d)", self._fd, saved)
        return read_fd

    def write_through(self, data: bytes):
        """Write bytes to the original sink, unmodified."""
        fd = self._saved_fd
        if fd is None:
            return
        view = memoryview(data)
        try:
            while view:
                written = os.write(fd, view)
                view = view[written:]
        except OSError as e:
            logger.debug("Pass-through write to original output failed: %s", e)

    def restore(self):
        """Point fd back at the original sink and close the pipe's write end.

        A no-op once restored, so the owner and the reader may both call it.
        """
        with self._lock:
            if self._write_fd is None:
                return
            self._flush_stream()
            if self._saved_fd is None:
                logger.error("Cannot restore fd %d: original descriptor already closed", self._fd)
            else:
                try:
                    os.dup2(self._saved_fd, self._fd)
                except OSError as e:
                    logger.error("Failed to restore fd %d: %s", self._fd, e)
            try:
                os.close(self._write_fd)
            except OSError:
                pass
            self._write_fd = None
        logger.debug("Restored fd %d", self._fd)

    def release(self):
        """Close the read end and the saved descriptor, restoring fd first if needed."""
        self.restore()
        with self._lock:
            for attr in ("_read_fd", "_saved_fd"):
                fd = getattr(self, attr)
                if fd is not None:
                    try:
                        os.close(fd)
                    except OSError:
                        pass
                    setattr(self, attr, None)

    def _flush_stream(self):
        if self._stream is None:
            return
        try:
            self._stream.flush()
        except (OSError, ValueError):
            pass
