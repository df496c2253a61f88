import subprocess

import pytest

from conftest import FakePopen, popen_factory
from mixrec.config import InstallerConfig
from mixrec.core.process import TranscoderProcess
from mixrec.core.session import SessionController, SessionState, format_elapsed
from mixrec.exceptions import (
    AlreadyRecordingError,
    NoDeviceSelectedError,
    SpawnFailedError,
    TranscoderNotFoundError,
)
from mixrec.sources.enumerator import CaptureDevice
from mixrec.transcoder.locator import BinaryLocator


@pytest.fixture
def controller(fake_binary):
    ctrl = SessionController(fake_binary, popen=popen_factory(), register_atexit=False)
    yield ctrl
    ctrl.close()


def test_start_spawns_with_open_stdin_and_discarded_output(controller, fake_binary, tmp_path):
    output = tmp_path / "recordings" / "nested" / "out.mp3"
    session = controller.start(["Mic", "Stereo Mix"], [1.0, 0.5], output)

    assert controller.state is SessionState.RECORDING
    assert output.parent.is_dir()
    assert session.devices == [CaptureDevice("Mic"), CaptureDevice("Stereo Mix")]

    process = FakePopen.instances[0]
    assert process.args[0] == str(fake_binary)
    assert process.args[-1] == str(output)
    assert process.kwargs["stdin"] == subprocess.PIPE
    assert process.kwargs["stdout"] == subprocess.DEVNULL
    assert process.kwargs["stderr"] == subprocess.DEVNULL


def test_second_start_is_rejected_and_first_session_untouched(controller, tmp_path):
    first = controller.start(["Mic"], [1.0], tmp_path / "a.mp3")

    with pytest.raises(AlreadyRecordingError):
        controller.start(["Mic"], [1.0], tmp_path / "b.mp3")

    assert controller.session is first
    assert len(FakePopen.instances) == 1
    process = FakePopen.instances[0]
    assert process.stdin.written == b""
    assert not process.killed
    assert first.process.is_running


def test_start_without_devices(controller, tmp_path):
    with pytest.raises(NoDeviceSelectedError):
        controller.start([], [], tmp_path / "a.mp3")
    assert controller.state is SessionState.IDLE
    assert FakePopen.instances == []


def test_start_with_mismatched_gains_is_a_caller_bug(controller, tmp_path):
    with pytest.raises(ValueError):
        controller.start(["A", "B"], [1.0], tmp_path / "a.mp3")
    assert controller.state is SessionState.IDLE


def test_start_with_missing_binary(tmp_path):
    ctrl = SessionController(tmp_path / "nope" / "ffmpeg", popen=popen_factory(), register_atexit=False)
    with pytest.raises(TranscoderNotFoundError):
        ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    assert ctrl.state is SessionState.IDLE


def test_start_resolves_binary_through_locator(fake_binary, settings_store, tmp_path):
    locator = BinaryLocator(
        InstallerConfig(cache_dir=tmp_path / "cache", binary_name="ffmpeg", well_known_dirs=()),
        settings_store,
        environ={"PATH": str(fake_binary.parent)},
    )
    ctrl = SessionController(locator, popen=popen_factory(), register_atexit=False)
    ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    assert FakePopen.instances[0].args[0] == str(fake_binary)
    ctrl.close()


def test_spawn_failure(fake_binary, tmp_path):
    def broken_popen(args, **kwargs):
        raise OSError(8, "Exec format error")

    ctrl = SessionController(fake_binary, popen=broken_popen, register_atexit=False)
    with pytest.raises(SpawnFailedError):
        ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    assert ctrl.state is SessionState.IDLE


def test_graceful_stop_sends_quit_and_closes_stdin(controller, tmp_path):
    controller.start(["Mic"], [1.0], tmp_path / "a.mp3")
    stopped = controller.stop()

    process = FakePopen.instances[0]
    assert process.stdin.written == b"q\n"
    assert process.stdin.closed
    assert not process.killed
    assert process.wait_calls[0] == 5.0
    assert stopped.output_path == tmp_path / "a.mp3"
    assert controller.state is SessionState.IDLE


def test_stop_kills_after_timeout(fake_binary, tmp_path):
    ctrl = SessionController(
        fake_binary, popen=popen_factory(honour_quit=False), stop_timeout=0.1, register_atexit=False
    )
    ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    ctrl.stop()

    process = FakePopen.instances[0]
    assert process.stdin.written == b"q\n"
    assert process.killed
    assert ctrl.state is SessionState.IDLE


def test_stop_with_broken_stdin_falls_back_to_kill(fake_binary, tmp_path):
    ctrl = SessionController(fake_binary, popen=popen_factory(broken_stdin=True), register_atexit=False)
    ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    ctrl.stop()

    assert FakePopen.instances[0].killed
    assert ctrl.state is SessionState.IDLE


def test_interrupted_stop_still_kills(fake_binary, tmp_path):
    ctrl = SessionController(fake_binary, popen=popen_factory(interrupt_wait=True), register_atexit=False)
    ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")

    with pytest.raises(KeyboardInterrupt):
        ctrl.stop()

    process = FakePopen.instances[0]
    assert process.killed
    assert process.poll() is not None
    assert process.stdin.closed
    assert ctrl.state is SessionState.IDLE


def test_stop_when_process_already_exited(fake_binary, tmp_path):
    ctrl = SessionController(fake_binary, popen=popen_factory(exited=1), register_atexit=False)
    ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    ctrl.stop()

    process = FakePopen.instances[0]
    assert process.stdin.written == b""
    assert not process.killed
    assert ctrl.state is SessionState.IDLE


def test_stop_while_idle_is_noop(controller):
    assert controller.stop() is None
    assert controller.state is SessionState.IDLE


def test_second_stop_has_no_side_effects(controller, tmp_path):
    controller.start(["Mic"], [1.0], tmp_path / "a.mp3")
    controller.stop()
    process = FakePopen.instances[0]
    waits = list(process.wait_calls)

    assert controller.stop() is None
    assert process.wait_calls == waits
    assert process.stdin.written == b"q\n"
    assert controller.state is SessionState.IDLE


def test_restart_after_stop(controller, tmp_path):
    controller.start(["Mic"], [1.0], tmp_path / "a.mp3")
    controller.stop()
    controller.start(["Mic"], [1.0], tmp_path / "b.mp3")
    assert controller.state is SessionState.RECORDING
    assert len(FakePopen.instances) == 2


def test_check_process_releases_crashed_session(controller, tmp_path):
    controller.start(["Mic"], [1.0], tmp_path / "a.mp3")
    assert controller.check_process() is True

    FakePopen.instances[0].returncode = 1
    assert controller.check_process() is False
    assert controller.state is SessionState.IDLE
    assert controller.stop() is None


def test_shutdown_force_kills_without_quit(controller, tmp_path):
    controller.start(["Mic"], [1.0], tmp_path / "a.mp3")
    controller.shutdown()

    process = FakePopen.instances[0]
    assert process.killed
    assert process.stdin.written == b""
    assert controller.state is SessionState.IDLE


def test_context_manager_kills_active_recording(fake_binary, tmp_path):
    with SessionController(fake_binary, popen=popen_factory(), register_atexit=False) as ctrl:
        ctrl.start(["Mic"], [1.0], tmp_path / "a.mp3")
    assert FakePopen.instances[0].killed
    assert ctrl.state is SessionState.IDLE


def test_atexit_registration(fake_binary, monkeypatch):
    registered = []
    unregistered = []
    monkeypatch.setattr("atexit.register", registered.append)
    monkeypatch.setattr("atexit.unregister", unregistered.append)

    ctrl = SessionController(fake_binary, popen=popen_factory())
    ctrl.close()

    assert registered == [ctrl.shutdown]
    assert unregistered == [ctrl.shutdown]


def test_elapsed(controller, tmp_path, monkeypatch):
    assert controller.elapsed == 0.0
    session = controller.start(["Mic"], [1.0], tmp_path / "a.mp3")
    monkeypatch.setattr("time.monotonic", lambda: session.started_at + 3725.4)
    assert session.format_elapsed() == "01:02:05"


def test_format_elapsed():
    assert format_elapsed(0) == "00:00:00"
    assert format_elapsed(59.9) == "00:00:59"
    assert format_elapsed(-3) == "00:00:00"


def test_process_kill_failure_is_swallowed(fake_binary):
    class Stubborn(FakePopen):
        def kill(self):
            raise PermissionError(1, "Operation not permitted")

        def wait(self, timeout=None):
            raise subprocess.TimeoutExpired(self.args, timeout)

    process = TranscoderProcess(fake_binary, [], popen=lambda args, **kw: Stubborn(args, **kw))
    process.spawn()
    assert process.stop(timeout=0.01) is None
