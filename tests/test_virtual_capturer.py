import subprocess
import tempfile

import pytest

from conftest import FakeDownloader
from mixrec.exceptions import DownloadError, SpawnFailedError
from mixrec.transcoder import virtual_capturer


@pytest.fixture
def scratch(tmp_path, monkeypatch):
    directory = tmp_path / "tmp"
    directory.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(directory))
    return directory


def test_is_installed(tmp_path):
    target = tmp_path / "Screen Capturer Recorder"
    assert not virtual_capturer.is_installed([target])
    target.mkdir()
    assert virtual_capturer.is_installed([tmp_path / "other", target])


def test_install_runs_installer_silently(tmp_path, scratch):
    target = tmp_path / "Screen Capturer Recorder"
    calls = []

    def runner(command, **kwargs):
        calls.append(command)
        target.mkdir()
        return subprocess.CompletedProcess(command, 0)

    downloader = FakeDownloader(b"MZ")
    assert virtual_capturer.install(downloader, search_dirs=[target], runner=runner)
    assert calls[0][1] == "/S"
    assert downloader.calls[0][0] == virtual_capturer.INSTALLER_URL
    assert list(scratch.iterdir()) == []


def test_install_reports_failure_when_not_installed(tmp_path, scratch):
    def runner(command, **kwargs):
        return subprocess.CompletedProcess(command, 1)

    assert not virtual_capturer.install(
        FakeDownloader(b"MZ"), search_dirs=[tmp_path / "absent"], runner=runner
    )


def test_install_spawn_failure(tmp_path, scratch):
    def runner(command, **kwargs):
        raise OSError("not a valid Win32 application")

    with pytest.raises(SpawnFailedError):
        virtual_capturer.install(FakeDownloader(b"MZ"), search_dirs=[tmp_path], runner=runner)
    assert list(scratch.iterdir()) == []


def test_install_download_failure(tmp_path, scratch, failing_downloader):
    with pytest.raises(DownloadError):
        virtual_capturer.install(failing_downloader, search_dirs=[tmp_path])
    assert list(scratch.iterdir()) == []
