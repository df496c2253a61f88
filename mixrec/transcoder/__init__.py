"""Locating, downloading and installing the FFmpeg binary."""

from mixrec.transcoder.downloader import DownloadTask, HttpDownloader
from mixrec.transcoder.locator import BinaryLocator

__all__ = ["BinaryLocator", "DownloadTask", "HttpDownloader"]
