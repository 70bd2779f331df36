"""Tests for the command-line entry point."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest

from udp_discovery.__main__ import _build_parser, load_config, run


class TestParser:
    def test_listen(self):
        args = _build_parser().parse_args(["listen"])
        assert args.command == "listen"
        assert args.config is None
        assert args.debug is False

    def test_announce(self):
        args = _build_parser().parse_args(
            ["--port", "5000", "announce", "edge-node-1", "--data", '{"a": 1}', "--interval", "500"]
        )
        assert args.command == "announce"
        assert args.name == "edge-node-1"
        assert json.loads(args.data) == {"a": 1}
        assert args.interval == 500
        assert args.unavailable is False
        assert args.port == 5000

    def test_command_required(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args([])


class TestLoadConfig:
    def test_cli_overrides_file_and_env(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"port": 5000, "multicast_address": "239.0.0.1"}))
        monkeypatch.setenv("UDP_DISCOVERY_GROUP", "239.0.0.2")
        monkeypatch.delenv("UDP_DISCOVERY_PORT", raising=False)
        args = _build_parser().parse_args(
            ["-c", str(path), "--bind", "127.0.0.1", "listen"]
        )
        cfg = load_config(args)
        assert cfg.port == 5000
        assert cfg.multicast_address == "239.0.0.2"
        assert cfg.bind_address == "127.0.0.1"

        args = _build_parser().parse_args(["-c", str(path), "--group", "239.0.0.3", "listen"])
        assert load_config(args).multicast_address == "239.0.0.3"

    def test_defaults(self, monkeypatch):
        for var in ("UDP_DISCOVERY_PORT", "UDP_DISCOVERY_GROUP", "UDP_DISCOVERY_BIND"):
            monkeypatch.delenv(var, raising=False)
        cfg = load_config(_build_parser().parse_args(["listen"]))
        assert cfg.port == 44201
        assert cfg.bind_address == ""


class TestRun:
    @pytest.mark.asyncio
    async def test_bad_data(self, transport):
        args = _build_parser().parse_args(["announce", "svc", "--data", "{nope"])
        with patch("udp_discovery.discovery.MulticastTransport", return_value=transport):
            code = await run(args, asyncio.Event())
        assert code == 2
        assert transport.closed

    @pytest.mark.asyncio
    async def test_announce_until_stopped(self, transport):
        args = _build_parser().parse_args(["announce", "svc", "--interval", "10"])
        stop = asyncio.Event()
        with patch("udp_discovery.discovery.MulticastTransport", return_value=transport):
            task = asyncio.create_task(run(args, stop))
            await asyncio.sleep(0.05)
            stop.set()
            code = await task
        assert code == 0
        assert any(m.get("name") == "svc" for m in transport.sent_messages())
        assert transport.closed
