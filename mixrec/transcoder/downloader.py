"""HTTP downloads with progress reporting and cooperative cancellation.

HttpDownloader streams a URL to disk using httpx. DownloadTask runs a
download on a worker thread so the controlling thread can poll progress
without blocking on the transfer.
"""

import logging
import threading
import time
from pathlib import Path

import httpx

from mixrec.core.protocols import Downloader, ProgressCallback
from mixrec.exceptions import DownloadCancelledError, DownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class HttpDownloader:
    """Streams HTTP GET responses to files.

    Args:
        client: Optional preconfigured httpx.Client (e.g. with a mock transport).
        timeout: Connect timeout in seconds.
        read_timeout: Longest gap between received chunks before giving up.

    Example:
        downloader = HttpDownloader()
        downloader.download(url, Path("build.zip"), progress=print)
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
        read_timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._timeout = httpx.Timeout(connect=timeout, read=read_timeout, write=None, pool=None)

    def download(
        self,
        url: str,
        destination: Path,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Stream url into destination, reporting progress per chunk.

        Raises:
            DownloadError: On network, HTTP status or disk failure.
            DownloadCancelledError: If cancel_event is set mid-transfer.
        """
        client = self._client or httpx.Client(timeout=self._timeout)
        logger.info("Downloading %s", url)
        try:
            with client.stream("GET", url, follow_redirects=True) as response:
                response.raise_for_status()
                total = _content_length(response)
                received = 0
                with open(destination, "wb") as fh:
                    for chunk in response.iter_bytes(CHUNK_SIZE):
                        if cancel_event is not None and cancel_event.is_set():
                            raise DownloadCancelledError(f"Download of {url} cancelled")
                        fh.write(chunk)
                        received += len(chunk)
                        if progress is not None:
                            progress(received, total)
        except httpx.HTTPStatusError as e:
            raise DownloadError(f"Download failed: HTTP {e.response.status_code} for {url}") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Download failed: {e}") from e
        except OSError as e:
            raise DownloadError(f"Failed to write {destination}: {e}") from e
        finally:
            if self._client is None:
                client.close()

        logger.info("Downloaded %s (%d bytes)", destination, received)
        return destination


def _content_length(response: httpx.Response) -> int | None:
    value = response.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class DownloadTask:
    """Runs one download on a background thread.

    The controlling thread polls ``done`` / ``received`` or blocks in
    ``wait()``, which sleeps at least ``poll_interval`` between checks.
    Cancelling releases ``wait()`` at once, even while the worker is stuck
    inside a read; the daemon worker is abandoned.

    Args:
        downloader: Download collaborator.
        url: Source URL.
        destination: Target file path.
        progress: Optional observer called from the worker thread.
        cancel_event: Shared cancellation flag (a private one by default).

    Example:
        task = DownloadTask(HttpDownloader(), url, path)
        task.start()
        task.wait()
    """

    def __init__(
        self,
        downloader: Downloader,
        url: str,
        destination: Path,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._downloader = downloader
        self._url = url
        self._destination = destination
        self._observer = progress
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._thread: threading.Thread | None = None
        self._error: BaseException | None = None
        self.received = 0
        self.total: int | None = None

    @property
    def done(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _report(self, received: int, total: int | None) -> None:
        self.received = received
        self.total = total
        if self._observer is not None:
            self._observer(received, total)

    def _run(self) -> None:
        try:
            self._downloader.download(
                self._url,
                self._destination,
                progress=self._report,
                cancel_event=self._cancel_event,
            )
        except BaseException as e:  # re-raised on the controlling thread in wait()
            self._error = e

    def start(self) -> None:
        if self._thread is not None:
            logger.warning("Download of %s already started", self._url)
            return
        self._thread = threading.Thread(target=self._run, name="mixrec-download", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        """Request cooperative cancellation; the worker stops at the next chunk."""
        self._cancel_event.set()

    def wait(self, poll_interval: float = 0.05, timeout: float | None = None) -> Path:
        """Block until the download finishes.

        Raises:
            DownloadError: If the download failed or timed out.
            DownloadCancelledError: If cancel() was requested.
        """
        if self._thread is None:
            self.start()

        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.done:
            if self.cancelled:
                raise DownloadCancelledError(f"Download of {self._url} cancelled")
            if deadline is not None and time.monotonic() >= deadline:
                self.cancel()
                raise DownloadError(f"Download of {self._url} timed out")
            time.sleep(max(poll_interval, 0.01))

        if self._error is not None:
            raise self._error
        return self._destination
