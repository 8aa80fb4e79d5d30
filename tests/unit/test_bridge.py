"""
Unit tests for the bridge orchestrator and CLI entry point.

Reader, API client and executor are MagicMocks unless a test needs the real
worker pool.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from collar_bridge import bridge as bridge_module
from collar_bridge.bridge import CollarBridge, build_api_config, build_parser, load_settings, main
from collar_bridge.config import ConfigError, Settings
from collar_bridge.services.vitals_client import SendOutcome, SendResult
from tests.conftest import SAMPLE_FRAME

NO_BPM_FRAME = "Temperature:38.5C 101.3F\nWaveform:1850 \n"
COLD_FRAME = "Temperature:10.0C 50.0F\nWaveform:1850 BPM:72 \n"


@pytest.fixture
def reader():
    reader = MagicMock(name="reader")
    reader.connect.return_value = True
    return reader


@pytest.fixture
def client():
    client = MagicMock(name="client")
    client.send.return_value = SendResult(outcome=SendOutcome.SENT, dog_id="dog-1", attempts=1)
    return client


@pytest.fixture
def executor():
    return MagicMock(name="executor")


@pytest.fixture
def bridge(settings, reader, client, executor):
    return CollarBridge(settings, reader=reader, client=client, executor=executor)


def _settings(**overrides):
    values = dict(_env_file=None, dog_id="dog-1", auth_token="secret-token", api_base_url="http://api.test")
    values.update(overrides)
    return Settings(**values)


def _done(result):
    future = Future()
    future.set_result(result)
    return future


def test_start_connects_and_wires_reconnect_reset(bridge, reader):
    assert bridge.start() is True

    reader.connect.assert_called_once()
    bridge.assembler.on_chunk("Temperature:38.5C 101.3F\n")
    reader.on_reconnect()
    bridge.handle_chunk("Waveform:1850 BPM:72 \n")

    assert bridge.stats.frames == 0
    assert bridge.assembler.pending == len("Waveform:1850 BPM:72 \n")


def test_start_reports_unavailable_collar(bridge, reader):
    reader.connect.return_value = False

    assert bridge.start() is False


@pytest.mark.parametrize("missing", ["dog_id", "auth_token"])
def test_start_without_required_settings_raises_before_connecting(missing, reader, client, executor):
    bridge = CollarBridge(_settings(**{missing: ""}), reader=reader, client=client, executor=executor)

    with pytest.raises(ConfigError, match=missing.upper()):
        bridge.start()
    reader.connect.assert_not_called()


def test_frame_split_across_chunks_is_submitted(bridge, executor, client):
    half = len(SAMPLE_FRAME) // 2

    assert bridge.handle_chunk(SAMPLE_FRAME[:half]) is None
    future = bridge.handle_chunk(SAMPLE_FRAME[half:])

    assert future is executor.submit.return_value
    submitted_fn, reading = executor.submit.call_args.args
    assert submitted_fn is client.send
    assert reading.heart_rate == 72
    assert reading.temperature_c == 38.5
    assert bridge.stats.submitted == 1


def test_reading_without_bpm_is_skipped(bridge, executor):
    assert bridge.handle_chunk(NO_BPM_FRAME) is None

    executor.submit.assert_not_called()
    assert bridge.stats.readings == 1
    assert bridge.stats.skipped_no_bpm == 1


def test_out_of_range_frame_is_rejected(bridge, executor, caplog):
    assert bridge.handle_chunk(COLD_FRAME) is None

    executor.submit.assert_not_called()
    assert bridge.stats.rejected == 1
    assert "Invalid or incomplete data received" in caplog.text


def test_processing_error_resets_buffer(bridge, caplog):
    bridge.assembler = MagicMock(name="assembler")
    bridge.assembler.on_chunk.side_effect = ValueError("boom")

    assert bridge.handle_chunk("anything") is None

    bridge.assembler.reset.assert_called_once()
    assert "Error processing serial data" in caplog.text


def test_busy_send_slots_drop_readings(reader, client, executor):
    bridge = CollarBridge(_settings(max_concurrent_sends=1), reader=reader, client=client, executor=executor)

    assert bridge.handle_chunk(SAMPLE_FRAME) is not None
    assert bridge.handle_chunk(SAMPLE_FRAME) is None
    assert bridge.stats.dropped_busy == 1

    bridge._on_send_done(_done(client.send.return_value))

    assert bridge.stats.sent == 1
    assert bridge.handle_chunk(SAMPLE_FRAME) is not None
    assert executor.submit.call_count == 2


def test_closed_executor_releases_slot(reader, client, executor):
    executor.submit.side_effect = RuntimeError("cannot schedule new futures after shutdown")
    bridge = CollarBridge(_settings(max_concurrent_sends=1), reader=reader, client=client, executor=executor)

    assert bridge.handle_chunk(SAMPLE_FRAME) is None
    assert bridge._send_slots.acquire(blocking=False)


def test_send_outcomes_are_counted(bridge):
    bridge._send_slots.acquire()
    bridge._on_send_done(_done(SendResult(outcome=SendOutcome.NOT_FOUND, dog_id="dog-1", attempts=1)))
    bridge._send_slots.acquire()
    bridge._on_send_done(_done(SendResult(outcome=SendOutcome.THROTTLED, dog_id="dog-1")))

    failed = Future()
    failed.set_exception(RuntimeError("worker crashed"))
    bridge._send_slots.acquire()
    bridge._on_send_done(failed)

    assert bridge.stats.failed == 2
    assert bridge.stats.sent == 0


def test_sends_run_on_worker_pool(settings, reader, client):
    pool = ThreadPoolExecutor(max_workers=2)
    bridge = CollarBridge(settings, reader=reader, client=client, executor=pool)

    future = bridge.handle_chunk(SAMPLE_FRAME)
    assert future.result(timeout=5).ok
    pool.shutdown(wait=True)

    client.send.assert_called_once()
    assert bridge.stats.sent == 1


def test_shutdown_disconnects_and_closes(bridge, reader, client, executor):
    bridge.shutdown()

    reader.disconnect.assert_called_once()
    executor.shutdown.assert_called_once_with(wait=False)
    client.close.assert_called_once()


def test_build_api_config_converts_milliseconds(settings):
    config = build_api_config(settings)

    assert config.retry_delay == 2.0
    assert config.update_interval == 5.0
    assert config.timeout == 10.0
    assert config.vitals_url == "http://api.test/dogs/dog-1/vitals"


def test_cli_overrides_take_precedence(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DOG_ID=from-file\nAUTH_TOKEN=t\nSERIAL_PORT=COM9\n")

    args = build_parser().parse_args(["--env-file", str(env_file), "--port", "/dev/ttyACM0", "--baud", "9600"])
    settings = load_settings(args)

    assert settings.serial_port == "/dev/ttyACM0"
    assert settings.baud_rate == 9600
    assert settings.dog_id == "from-file"


@pytest.fixture
def quiet_main(monkeypatch):
    monkeypatch.setattr(bridge_module, "configure_logging", lambda level="INFO": None)
    monkeypatch.setattr(bridge_module.signal, "signal", MagicMock(name="signal"))
    for name in ("DOG_ID", "AUTH_TOKEN", "BAUD_RATE"):
        monkeypatch.delenv(name, raising=False)


def test_main_exits_with_error_when_config_missing(quiet_main, tmp_path):
    assert main(["--env-file", str(tmp_path / "missing.env")]) == 1


def test_main_rejects_invalid_settings(quiet_main, tmp_path):
    assert main(["--env-file", str(tmp_path / "missing.env"), "--baud", "0"]) == 1


def test_settings_without_cli_overrides_are_cached(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DOG_ID=dog-3\nAUTH_TOKEN=t\n")
    args = build_parser().parse_args(["--env-file", str(env_file)])

    first = load_settings(args)

    assert first.dog_id == "dog-3"
    assert load_settings(args) is first


def test_parsed_reading_is_logged(bridge, caplog):
    caplog.set_level(logging.DEBUG, logger="collar_bridge.bridge")

    bridge.handle_chunk(SAMPLE_FRAME)

    assert "'heart_rate': 72" in caplog.text
    assert "'captured_at'" in caplog.text
