"""Tests for the command line entry point."""

import io
import logging
import logging.handlers
import os
import signal
import subprocess
import sys
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from snmp_bridge import main as main_module
from snmp_bridge.core.config import BridgeConfig, LoggingConfig
from snmp_bridge.core.exceptions import StopRequested


setup_logging = main_module.setup_logging
install_signal_handlers = main_module.install_signal_handlers

CODEC_SOURCE = (
    "from snmp_bridge.transport.base import PacketCodec\n"
    "\n"
    "class EntryCodec(PacketCodec):\n"
    "    def encode(self, request, secret):\n"
    "        return bytes([request.id])\n"
    "\n"
    "    def decode(self, data, request, secret):\n"
    "        raise NotImplementedError\n"
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SNMP_BRIDGE_SERVER", "SNMP_BRIDGE_SECRET", "SNMP_BRIDGE_CODEC",
                 "SNMP_BRIDGE_RETRIES", "SNMP_BRIDGE_TIMEOUT", "SNMP_BRIDGE_DICTIONARY",
                 "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(main_module, "setup_logging", MagicMock())
    monkeypatch.setattr(main_module, "install_signal_handlers", MagicMock())


@pytest.fixture
def codec_module(tmp_path, monkeypatch):
    (tmp_path / "entry_codec.py").write_text(CODEC_SOURCE)
    monkeypatch.syspath_prepend(str(tmp_path))
    return "entry_codec:EntryCodec"


@pytest.fixture
def stdio(monkeypatch):
    def _stdio(data: bytes):
        stdin = io.TextIOWrapper(io.BytesIO(data))
        stdout = io.TextIOWrapper(io.BytesIO())
        monkeypatch.setattr(main_module.sys, "stdin", stdin)
        monkeypatch.setattr(main_module.sys, "stdout", stdout)
        return stdout.buffer

    return _stdio


def test_parse_args_positionals_and_options():
    args = main_module.parse_args([
        "-6", "-P", "tcp", "-r", "3", "-t", "0.5", "-x", "-x",
        "--codec", "pkg.mod:Codec", "-D", "dict.yaml", "-l", "stderr",
        "radius:1812", "auth", "secret",
    ])

    assert args.server == "radius:1812"
    assert args.request_type == "auth"
    assert args.secret == "secret"
    assert args.address_family == "ipv6"
    assert args.protocol == "tcp"
    assert args.retries == 3
    assert args.timeout == 0.5
    assert args.debug == 2
    assert args.codec == "pkg.mod:Codec"
    assert args.dictionary == "dict.yaml"
    assert args.log_file == "stderr"


def test_ipv4_and_ipv6_are_exclusive():
    with pytest.raises(SystemExit):
        main_module.parse_args(["-4", "-6", "localhost"])


def test_version(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main_module.parse_args(["-v"])
    assert excinfo.value.code == 0
    assert main_module.__version__ in capsys.readouterr().out


def test_apply_overrides():
    args = main_module.parse_args(["-4", "-r", "2", "-x", "host", "acct", "pw"])

    config = main_module.apply_overrides(BridgeConfig(), args)

    assert config.backend.server == "host"
    assert config.backend.request_type == "acct"
    assert config.backend.secret == "pw"
    assert config.transport.address_family == "ipv4"
    assert config.transport.retries == 2
    assert config.transport.timeout_seconds == 3.0
    assert config.logging.debug_level == 1


def test_missing_server(tmp_path, codec_module):
    status = main_module.main(["-c", str(tmp_path / "none.yaml"), "--codec", codec_module])
    assert status == 1


def test_missing_codec(tmp_path):
    status = main_module.main(["-c", str(tmp_path / "none.yaml"), "127.0.0.1"])
    assert status == 1


def test_bad_request_type(tmp_path, codec_module):
    status = main_module.main([
        "-c", str(tmp_path / "none.yaml"), "--codec", codec_module, "127.0.0.1", "bogus",
    ])
    assert status == 1


def test_secret_file(tmp_path, codec_module, stdio):
    secret = tmp_path / "secret"
    secret.write_text("fromfile\n")
    stdio(b"")

    status = main_module.main([
        "-c", str(tmp_path / "none.yaml"), "--codec", codec_module,
        "-S", str(secret), "127.0.0.1",
    ])

    assert status == 0


def test_serves_ping(tmp_path, codec_module, stdio):
    output = stdio(b"PING\nPING\n\n")

    status = main_module.main([
        "-c", str(tmp_path / "none.yaml"), "--codec", codec_module, "127.0.0.1:18120", "status",
    ])

    assert status == 0
    assert output.getvalue() == b"PONG\nPONG\n"
    main_module.install_signal_handlers.assert_called_once()


def test_generate_config(tmp_path, monkeypatch, capsys):
    path = tmp_path / "config" / "snmp-bridge.yaml"
    monkeypatch.setattr(main_module, "get_default_config_path", lambda: str(path))

    assert main_module.main(["--generate-config"]) == 0
    assert path.exists()
    assert BridgeConfig.from_yaml(str(path)).backend.secret == "testing123"
    assert str(path) in capsys.readouterr().out


def test_setup_logging_to_file(tmp_path, monkeypatch):
    basic_config = MagicMock()
    monkeypatch.setattr(logging, "basicConfig", basic_config)

    setup_logging(LoggingConfig(file_path=str(tmp_path / "bridge.log"), debug_level=1))

    kwargs = basic_config.call_args.kwargs
    handler = kwargs["handlers"][0]
    assert isinstance(handler, logging.handlers.RotatingFileHandler)
    assert kwargs["level"] == logging.DEBUG
    handler.close()


def test_signal_handlers_set_stop(monkeypatch):
    installed = {}
    monkeypatch.setattr(signal, "signal", lambda sig, handler: installed.setdefault(sig, handler))

    stop = threading.Event()
    install_signal_handlers(stop)

    assert signal.SIGTERM in installed
    with pytest.raises(StopRequested):
        installed[signal.SIGTERM](signal.SIGTERM, None)
    assert stop.is_set()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
@pytest.mark.parametrize("signum", [signal.SIGTERM, signal.SIGINT])
def test_signal_stops_idle_bridge(tmp_path, signum):
    (tmp_path / "entry_codec.py").write_text(CODEC_SOURCE)
    root = Path(__file__).resolve().parent.parent
    env = {k: v for k, v in os.environ.items() if not k.startswith("SNMP_BRIDGE_")}
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(tmp_path), str(root), env.get("PYTHONPATH")]))

    proc = subprocess.Popen(
        [
            sys.executable, "-m", "snmp_bridge.main",
            "-c", str(tmp_path / "none.yaml"), "--codec", "entry_codec:EntryCodec",
            "127.0.0.1:1812", "status",
        ],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        env=env,
    )
    try:
        proc.stdin.write(b"PING\n")
        proc.stdin.flush()
        assert proc.stdout.readline() == b"PONG\n"

        # Back in the blocking read for the next command
        time.sleep(0.5)
        proc.send_signal(signum)

        assert proc.wait(timeout=5) == 0
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        proc.stdin.close()
        proc.stdout.close()
