"""Tests for the command-line client against a live server."""
import json

import pytest

from hypibole import cli


def base_url(server):
    return f"http://127.0.0.1:{server.port}/"


class TestCli:
    def test_set_then_get(self, live_server, capsys):
        assert cli.main(["--url", base_url(live_server), "set", "6", "high"]) == 0
        capsys.readouterr()
        assert cli.main(["--url", base_url(live_server), "get", "6"]) == 0
        out = json.loads(capsys.readouterr().out)
        assert out == {"status": "success", "operation": "get", "pin": "6", "level": "high"}

    def test_error_body_exits_1(self, live_server, capsys):
        assert cli.main(["--url", base_url(live_server), "get", "5"]) == 1
        out = json.loads(capsys.readouterr().out)
        assert out == {"error": 'Failed to perform board operation: "Could not find pin 5 in either map."'}

    def test_send_request_reads_error_bodies(self, live_server):
        body = cli.send_request(base_url(live_server), {"pin": "7", "op": "set", "level": "low"})
        assert body == {"error": 'Failed to perform board operation: "Pin 7 is not in the set whitelist."'}

    def test_level_choices(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["set", "4", "on"])
