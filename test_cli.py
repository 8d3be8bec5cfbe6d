#!/usr/bin/env python3
"""
Tests for the command line entry point, the instance lock and the setup
wizard helpers.
"""

import asyncio
import os
import signal
import time
from pathlib import Path

import pytest
from PIL import Image

import setup_wizard
from conftest import FakeClock, FakeImages, FakeVision, FakeWebhook, make_capture
from recap import cli
from recap.batch_store import BatchStore
from recap.config_manager import API_KEY_ENV, ENV_OVERRIDES
from recap.errors import InstanceLocked
from recap.grid_composer import GridComposer
from recap.instance_lock import InstanceLock
from recap.pipeline import BatchPipeline
from recap.scheduler import BatchScheduler
from recap.storage import BatchStorage


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(ENV_OVERRIDES) + list(API_KEY_ENV.values()):
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of the run
    monkeypatch.setattr("recap.config_manager.load_dotenv", lambda **kwargs: False)


def test_parse_args_defaults():
    args = cli.parse_args([])
    assert args.analyze is None
    assert args.capture_interval is None
    assert args.debug is False


def test_parse_args_options():
    args = cli.parse_args(["--analyze", "shot.png", "--batch-interval", "10m", "--debug"])
    assert args.analyze == "shot.png"
    assert args.batch_interval == "10m"
    assert args.debug is True


def test_load_prompt(tmp_path):
    prompt = tmp_path / "prompt.txt"
    prompt.write_text("  Summarize my day.\n")
    assert cli.load_prompt(str(prompt), "default") == "Summarize my day."
    assert cli.load_prompt(None, "default") == "default"
    assert cli.load_prompt(str(tmp_path / "missing.txt"), "default") == "default"


def test_main_rejects_invalid_interval(tmp_path):
    assert cli.main(["--config-dir", str(tmp_path), "--capture-interval", "often"]) == 1


def test_main_analyze_missing_file(tmp_path, monkeypatch):
    monkeypatch.setenv("RECAP_NOTIFICATIONS", "false")
    code = cli.main(["--config-dir", str(tmp_path), "--analyze", str(tmp_path / "nope.png")])
    assert code == 1


def test_main_analyze_without_keys_fails(tmp_path, monkeypatch):
    monkeypatch.setenv("RECAP_NOTIFICATIONS", "false")
    image = tmp_path / "shot.png"
    Image.new("RGB", (20, 20), (1, 2, 3)).save(image)
    code = cli.main(["--config-dir", str(tmp_path), "--analyze", str(image)])
    assert code == 1
    assert not (tmp_path / "shot_analysis.txt").exists()


def test_main_analyze_unreadable_image(tmp_path, monkeypatch):
    monkeypatch.setenv("RECAP_NOTIFICATIONS", "false")
    image = tmp_path / "shot.png"
    Image.new("RGB", (20, 20), (1, 2, 3)).save(image)

    def denied(self):
        raise PermissionError("permission denied")

    monkeypatch.setattr(Path, "read_bytes", denied)
    assert cli.main(["--config-dir", str(tmp_path), "--analyze", str(image)]) == 1


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs POSIX signals")
def test_action_signals_trigger_summary_and_analysis(tmp_path):
    storage = BatchStorage(tmp_path)
    vision = FakeVision()
    scheduler = BatchScheduler(
        store=BatchStore(persist=storage.save_capture, clock=FakeClock()),
        screen=None,
        pipeline=BatchPipeline(GridComposer(storage=storage), vision, FakeImages(), FakeWebhook(), storage),
        capture_interval=60,
        batch_interval=1800,
    )

    async def run():
        loop = asyncio.get_running_loop()
        scheduler.store.start_new()
        await scheduler.store.append(make_capture(0))
        installed = cli.install_action_signals(scheduler, loop)
        try:
            os.kill(os.getpid(), signal.SIGUSR1)
            os.kill(os.getpid(), signal.SIGUSR2)
            for _ in range(50):
                await asyncio.sleep(0.01)
                if vision.calls:
                    break
            await scheduler.wait_for_pipelines()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
        return installed

    installed = asyncio.run(run())
    assert set(installed) == {signal.SIGUSR1, signal.SIGUSR2}
    batch = scheduler.store.current
    assert batch.is_open
    assert (tmp_path / batch.id / f"batch_summary_{batch.id}.png").is_file()
    assert (tmp_path / batch.id / f"batch_summary_{batch.id}_analysis.txt").is_file()
    assert len(vision.calls) == 1


def test_main_refuses_second_instance(tmp_path):
    (tmp_path / "recap.pid").write_text(str(os.getppid()))
    assert cli.main(["--config-dir", str(tmp_path)]) == 1


# ─────────────────────────────── instance lock
def test_lock_is_exclusive(tmp_path):
    path = tmp_path / "recap.pid"
    with InstanceLock(path) as lock:
        assert lock.owner() == os.getpid()
        other = InstanceLock(path)
        path.write_text(str(os.getppid()))
        with pytest.raises(InstanceLocked):
            other.acquire()
    assert not path.exists()


def test_lock_without_pid_is_held_while_fresh(tmp_path):
    path = tmp_path / "recap.pid"
    path.write_text("")
    with pytest.raises(InstanceLocked):
        InstanceLock(path).acquire()
    assert path.exists()


def test_stale_lock_is_reclaimed(tmp_path):
    path = tmp_path / "recap.pid"
    path.write_text("not-a-pid")
    old = time.time() - 60
    os.utime(path, (old, old))
    lock = InstanceLock(path)
    lock.acquire()
    assert lock.owner() == os.getpid()
    lock.release()
    assert not path.exists()


# ─────────────────────────────── setup wizard
def test_wizard_validators():
    assert setup_wizard.validate_api_key("sk-or-v1-0123456789abcdef")
    assert not setup_wizard.validate_api_key("short")
    assert not setup_wizard.validate_api_key("")
    assert setup_wizard.validate_webhook_url("https://hooks.example.com/x")
    assert not setup_wizard.validate_webhook_url("ftp://example.com")
    assert not setup_wizard.validate_webhook_url("https://")
