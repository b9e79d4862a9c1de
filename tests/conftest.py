"""Pytest configuration with isolated directories and a fake transcoding engine."""

from __future__ import annotations

import asyncio
import json
import os
import stat
import sys
from pathlib import Path

import pytest

# Stand-in for ffmpeg. Behaviour is selected through environment variables,
# which the spawned process inherits:
#   FAKE_ENGINE_MODE     ok | crash | no_output | empty_output | slow
#   FAKE_ENGINE_RECORD   file receiving {"args": [...], "track": "..."}
#   FAKE_ENGINE_PIDFILE  file receiving the pid (slow mode)
FAKE_ENGINE_BODY = r'''
import json
import os
import sys
import time

args = sys.argv[1:]
mode = os.environ.get("FAKE_ENGINE_MODE", "ok")
output = args[-1]

track = None
if "-vf" in args:
    graph = args[args.index("-vf") + 1]
    marker = "subtitles=filename='"
    if marker in graph:
        track_path = graph.split(marker, 1)[1].split("'", 1)[0].replace("\\:", ":")
        with open(track_path, encoding="utf-8") as f:
            track = f.read()

record = os.environ.get("FAKE_ENGINE_RECORD")
if record:
    with open(record, "w") as f:
        json.dump({"args": args, "track": track}, f)

if mode == "slow":
    with open(os.environ["FAKE_ENGINE_PIDFILE"], "w") as f:
        f.write(str(os.getpid()))
    time.sleep(60)

if mode == "crash":
    sys.stderr.write("[in#0 @ 0x1] Error opening input: Invalid data found when processing input\n")
    sys.exit(183)

print("out_time=N/A", flush=True)
print("out_time=00:00:02.500000", flush=True)
print("progress=end", flush=True)

if mode == "ok":
    with open(output, "wb") as f:
        f.write(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 1024)
elif mode == "empty_output":
    open(output, "wb").close()
sys.exit(0)
'''

FAKE_VIDEO_BYTES = b"\x00\x00\x00\x18ftypisom" + b"\x01" * 2048


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use default event loop policy."""
    return asyncio.DefaultEventLoopPolicy()


def pytest_configure(config):
    """Configure pytest-asyncio and custom markers."""
    config.addinivalue_line("markers", "asyncio: mark test as async")


@pytest.fixture
def isolated_dirs(tmp_path, monkeypatch):
    """Point every reel-export directory at a fresh temporary tree."""
    dirs = {
        "config_dir": tmp_path / "config",
        "data_dir": tmp_path / "data",
        "upload_dir": tmp_path / "data" / "uploads",
        "download_dir": tmp_path / "data" / "downloads",
        "work_dir": tmp_path / "work",
    }
    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("REEL_EXPORT_CONFIG_DIR", str(dirs["config_dir"]))
    monkeypatch.setenv("REEL_EXPORT_DATA_DIR", str(dirs["data_dir"]))
    monkeypatch.setenv("REEL_EXPORT_UPLOAD_DIR", str(dirs["upload_dir"]))
    monkeypatch.setenv("REEL_EXPORT_DOWNLOAD_DIR", str(dirs["download_dir"]))
    monkeypatch.setenv("REEL_EXPORT_WORK_DIR", str(dirs["work_dir"]))
    monkeypatch.delenv("REEL_EXPORT_FFMPEG_PATH", raising=False)
    monkeypatch.delenv("REEL_EXPORT_STORE_TOKEN", raising=False)
    return dirs


@pytest.fixture
def fake_engine(isolated_dirs, tmp_path, monkeypatch):
    """Install the fake engine as the configured ffmpeg.

    Returns a helper with ``set_mode(mode)`` and ``recorded()`` (the last
    invocation's args and subtitle track).
    """
    engine = tmp_path / "bin" / "ffmpeg"
    engine.parent.mkdir()
    engine.write_text(f"#!{sys.executable}\n{FAKE_ENGINE_BODY}")
    engine.chmod(engine.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    record = tmp_path / "engine-record.json"
    pidfile = tmp_path / "engine.pid"
    monkeypatch.setenv("REEL_EXPORT_FFMPEG_PATH", str(engine))
    monkeypatch.setenv("FAKE_ENGINE_RECORD", str(record))
    monkeypatch.setenv("FAKE_ENGINE_PIDFILE", str(pidfile))
    monkeypatch.setenv("FAKE_ENGINE_MODE", "ok")

    class FakeEngine:
        path = engine
        pid_file = pidfile

        @staticmethod
        def set_mode(mode: str) -> None:
            monkeypatch.setenv("FAKE_ENGINE_MODE", mode)

        @staticmethod
        def recorded() -> dict:
            return json.loads(record.read_text())

        @staticmethod
        def was_called() -> bool:
            return record.exists()

    return FakeEngine


@pytest.fixture
def fixed_resolution(monkeypatch):
    """Make the pipeline see a 1920x1080 source without probing."""
    monkeypatch.setattr(
        "reel_export.core.pipeline.get_video_resolution",
        lambda path: (1920, 1080),
    )


@pytest.fixture
def source_video(tmp_path) -> Path:
    """A non-empty file standing in for a source video."""
    path = tmp_path / "source.mp4"
    path.write_bytes(FAKE_VIDEO_BYTES)
    return path


def workspaces(work_dir: Path) -> list[Path]:
    """Workspace directories currently present in ``work_dir``."""
    return sorted(p for p in work_dir.glob("reel-export-*") if p.is_dir())


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True
