"""
Handles bulk retrieval of media: progressive whole-file downloads and HLS-aware
segmented downloads, with live progress notifications and cancellation.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import aiohttp

from strata.core.notifications import NotificationCenter
from strata.exceptions import (
    DownloadCancelledError,
    DownloadError,
    FetchError,
    UnsupportedContentError,
)
from strata.models.config import CONTAINER_FORMATS, PlayerConfig, get_format_info
from strata.models.state import NotificationAction
from strata.utils.formatting import format_eta, format_size, format_speed
from strata.utils.path import filename_from_url, is_object_url

from .cancellation import CancellationToken
from .fetch import Fetcher
from .hls import resolve_media_playlist
from .progress import ProgressWindow
from .writers import FileWriter, MemoryWriter, save_file

log = logging.getLogger(__name__)

TS_SYNC_BYTE = 0x47


class Downloader:
    """
    Downloads media with retry logic, sliding-window ETA and cancellation.

    Every download is registered under a random id mapped to its cancellation
    token. The id doubles as the id of its progress notification.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        notifications: NotificationCenter,
        config: PlayerConfig,
        open_url: Optional[Callable[[str], object]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            fetcher: Transport used for every request.
            notifications: Where progress and results are reported.
            config: Retry, progress and output settings.
            open_url: Fallback used when a progressive download fails.
            clock: Millisecond clock for progress estimation.
        """
        self.fetcher = fetcher
        self.notifications = notifications
        self.config = config
        self.open_url = open_url
        self._clock = clock
        self.active_downloads: Dict[str, CancellationToken] = {}

    @property
    def output_dir(self) -> Path:
        return Path(self.config.download_dir)

    def cancel(self, download_id: str) -> bool:
        """
        Cancels an active download. Idempotent.

        Returns:
            True if a running download was found.
        """
        token = self.active_downloads.pop(download_id, None)
        if token is None:
            return False
        token.cancel()
        self.notifications.remove(download_id)
        log.info(f"Download {download_id} cancelled.")
        return True

    def cancel_all(self) -> None:
        for download_id in list(self.active_downloads):
            self.cancel(download_id)

    def _register(self) -> Tuple[str, CancellationToken]:
        download_id = uuid.uuid4().hex[:9]
        while download_id in self.active_downloads:
            download_id = uuid.uuid4().hex[:9]
        token = CancellationToken()
        self.active_downloads[download_id] = token
        return download_id, token

    def _new_window(self, total: int) -> ProgressWindow:
        kwargs = {}
        if self._clock is not None:
            kwargs["clock"] = self._clock
        return ProgressWindow(
            total,
            window_ms=self.config.progress_window * 1000,
            interval_ms=self.config.progress_interval * 1000,
            **kwargs,
        )

    def _cancel_action(self, download_id: str) -> NotificationAction:
        return NotificationAction("Cancel", lambda: self.cancel(download_id))

    def _report(self, download_id: str, window: ProgressWindow, unit: str) -> None:
        # The download may have been cancelled while this chunk was in flight.
        if download_id not in self.active_downloads:
            return
        snap = window.snapshot()
        percent = snap.percent
        if unit == "bytes":
            if percent is None:
                message = f"Downloading... {format_size(snap.loaded)}"
            else:
                message = (
                    f"Downloading... {percent:.0f}% "
                    f"({format_size(snap.loaded)} / {format_size(snap.total)}, "
                    f"{format_speed(snap.rate)}, ETA {format_eta(snap.eta_ms)})"
                )
        else:
            message = (
                f"Downloading segments... {snap.loaded}/{snap.total} "
                f"({percent or 0:.0f}%, ETA {format_eta(snap.eta_ms)})"
            )
        log.debug(f"[{download_id}] {message}")
        self.notifications.notify(
            message,
            type="loading",
            id=download_id,
            progress=round(percent) if percent is not None else None,
            action=self._cancel_action(download_id),
        )

    # --- Progressive ---

    async def download(self, url: str, filename: Optional[str] = None) -> Optional[Path]:
        """
        Downloads a whole file, buffering it in memory, then saves it.

        Returns:
            The saved path, or None if the download was rejected, cancelled or
            failed (failures are reported through notifications).
        """
        if not url or is_object_url(url):
            self.notifications.notify(
                "Live streams and in-memory sources cannot be downloaded.",
                type="warning",
                duration=4,
            )
            return None

        download_id, token = self._register()
        self.notifications.notify(
            "Initializing download...",
            type="loading",
            id=download_id,
            progress=0,
            action=self._cancel_action(download_id),
        )
        try:
            data = await self._fetch_progressive(url, token, download_id)
            token.raise_if_cancelled()
            path = await save_file(
                data, self.output_dir / (filename or filename_from_url(url))
            )
            self.notifications.notify(
                f"Download complete: {path.name}",
                type="success",
                id=download_id,
                duration=3,
            )
            log.info(f"[green]✓ Downloaded {format_size(len(data))} to '{path}'[/green]")
            return path
        except DownloadCancelledError:
            self.notifications.remove(download_id)
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            if token.cancelled:
                self.notifications.remove(download_id)
                return None
            log.error(f"[red]✗ Download of {url} failed: {e}[/red]")
            if self.open_url is not None:
                self.open_url(url)
                message = "Download failed, opened the source directly instead."
            else:
                message = f"Download failed: {e}"
            self.notifications.notify(
                message, type="error", id=download_id, duration=5
            )
            return None
        finally:
            self.active_downloads.pop(download_id, None)

    async def _fetch_progressive(
        self, url: str, token: CancellationToken, download_id: str
    ) -> bytes:
        last_exception: Optional[Exception] = None
        attempts = self.fetcher.attempts
        for attempt in range(1, attempts + 1):
            token.raise_if_cancelled()
            try:
                chunks = []
                loaded = 0
                async with self.fetcher.open_stream(url) as stream:
                    window = self._new_window(stream.total)
                    window.add_sample(0)
                    async for chunk in stream.chunks:
                        token.raise_if_cancelled()
                        chunks.append(chunk)
                        loaded += len(chunk)
                        window.add_sample(loaded)
                        is_last = bool(stream.total) and loaded >= stream.total
                        if window.should_report(is_last=is_last):
                            self._report(download_id, window, "bytes")
                return b"".join(chunks)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{attempts} for '{url}' failed: {e}. "
                    "Retrying..."
                )
                if attempt < attempts:
                    if not await token.sleep(self.fetcher.backoff_delay(attempt)):
                        raise DownloadCancelledError("Download was cancelled.") from e

        raise last_exception

    # --- Segmented (HLS) ---

    async def download_hls(
        self,
        url: str,
        output_format: str = "mp4",
        filename: Optional[str] = None,
    ) -> Optional[Path]:
        """
        Downloads an HLS stream segment by segment into a single file.

        Returns:
            The output path, or None if cancelled or failed.
        """
        download_id, token = self._register()
        self.notifications.notify(
            "Resolving playlist...",
            type="loading",
            id=download_id,
            progress=0,
            action=self._cancel_action(download_id),
        )
        try:
            path = await self._fetch_segments(
                url, output_format, filename, token, download_id
            )
            self.notifications.notify(
                f"Download complete: {path.name}",
                type="success",
                id=download_id,
                duration=3,
            )
            log.info(f"[green]✓ HLS download saved to '{path}'[/green]")
            return path
        except DownloadCancelledError:
            self.notifications.remove(download_id)
            log.info(f"HLS download {download_id} cancelled.")
            return None
        except UnsupportedContentError as e:
            log.error(f"[red]✗ {e}[/red]")
            self.notifications.notify(str(e), type="error", id=download_id, duration=6)
            return None
        except (DownloadError, FetchError, OSError) as e:
            if token.cancelled:
                self.notifications.remove(download_id)
                return None
            log.error(f"[red]✗ HLS download of {url} failed: {e}[/red]")
            self.notifications.notify(
                f"Download failed: {e}", type="error", id=download_id, duration=5
            )
            return None
        finally:
            self.active_downloads.pop(download_id, None)

    async def _fetch_segments(
        self,
        url: str,
        output_format: str,
        filename: Optional[str],
        token: CancellationToken,
        download_id: str,
    ) -> Path:
        playlist = await resolve_media_playlist(self.fetcher, url, token)
        segments = playlist.segments
        log.debug(f"Downloading {len(segments)} segments from {playlist.url}")

        writer = FileWriter() if self.config.direct_write else MemoryWriter()
        window = self._new_window(len(segments))
        window.add_sample(0)
        opened = False
        try:
            for index, segment_url in enumerate(segments):
                token.raise_if_cancelled()
                result = await self.fetcher.fetch_with_retry(segment_url, token)
                data = result.unwrap()

                if not opened:
                    output_format = self._sniff_format(data, output_format)
                    ext = get_format_info(output_format)["ext"]
                    name = (
                        f"{Path(filename).stem}.{ext}"
                        if filename
                        else filename_from_url(url, ext)
                    )
                    await writer.open(self.output_dir / name)
                    opened = True

                await writer.write(data)
                window.add_sample(index + 1)
                if window.should_report(is_last=index + 1 == len(segments)):
                    self._report(download_id, window, "segments")

            token.raise_if_cancelled()
            return await writer.finalize()
        except BaseException:
            await writer.abort()
            raise

    def _sniff_format(self, first_segment: bytes, output_format: str) -> str:
        """Forces raw transport-stream output when segments are MPEG-TS."""
        if (
            first_segment[:1] == bytes([TS_SYNC_BYTE])
            and output_format in CONTAINER_FORMATS
        ):
            self.notifications.notify(
                f"Stream segments are MPEG-TS; saving as .ts instead of .{output_format}.",
                type="info",
                duration=5,
            )
            log.info(
                f"[yellow]Segments are MPEG-TS, switching output from "
                f"{output_format} to ts.[/yellow]"
            )
            return "ts"
        return output_format
