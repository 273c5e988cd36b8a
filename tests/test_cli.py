from pathlib import Path

import pytest
import yaml

from linecast import cli
from linecast.app_config import ClientSettings
from linecast.utils.app_errors import NegotiationError


@pytest.fixture(autouse=True)
def no_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Run every command from an empty directory so no ./config.yaml is picked up."""
    monkeypatch.chdir(tmp_path)


class TestParser:
    def test_server_flags(self):
        args = cli.build_parser().parse_args(
            ["server", "--addr", ":9000", "--file", "data.txt", "--delay", "10"]
        )

        assert args.command == "server"
        assert (args.addr, args.file, args.delay) == (":9000", "data.txt", 10)
        assert args.stun is None
        assert args.debug is None

    def test_unset_flags_do_not_override(self):
        args = cli.build_parser().parse_args(["client"])

        settings = cli.resolve_client_settings(args)

        assert settings.server == ClientSettings().server

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestServerCommand:
    def test_missing_file_exits_with_error(self, tmp_path: Path):
        assert cli.main(["server", "--file", str(tmp_path / "missing.txt")]) == 1

    def test_invalid_address_exits_with_error(self, tmp_path: Path):
        path = tmp_path / "sample.txt"
        path.write_text("a\n", encoding="utf-8")

        assert cli.main(["server", "--addr", "nowhere", "--file", str(path)]) == 1

    def test_negative_delay_exits_with_error(self):
        assert cli.main(["server", "--delay", "-5"]) == 1

    def test_runs_server_with_resolved_settings(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        path = tmp_path / "sample.txt"
        path.write_text("a\n", encoding="utf-8")
        seen = {}

        async def fake_serve(settings):
            seen["settings"] = settings
            return 0

        monkeypatch.setattr(cli, "serve", fake_serve)

        assert cli.main(["server", "--addr", ":0", "--file", str(path), "--delay", "5"]) == 0
        assert seen["settings"].delay == 5
        assert seen["settings"].listen == ("0.0.0.0", 0)


class TestClientCommand:
    def test_flags_reach_client(self, monkeypatch: pytest.MonkeyPatch):
        seen = {}

        async def fake_client_main(settings):
            seen["settings"] = settings
            return 0

        monkeypatch.setattr(cli, "_client_main", fake_client_main)

        code = cli.main(
            ["client", "--server", "http://10.0.0.5:8080/offer", "--output", "received.txt"]
        )

        assert code == 0
        assert seen["settings"].server == "http://10.0.0.5:8080/offer"
        assert seen["settings"].output == "received.txt"

    def test_client_failure_exit_code(self, monkeypatch: pytest.MonkeyPatch):
        class FailingLifecycle:
            def __init__(self, **kwargs):
                pass

            def request_shutdown(self):
                return True

            async def run(self):
                raise NegotiationError("Signaling server returned 503: draining")

        monkeypatch.setattr(cli, "ClientLifecycle", FailingLifecycle)
        monkeypatch.setattr(cli, "create_rtc_transport", lambda stun_url: object())

        assert cli.main(["client"]) == 1


class TestConfigCommand:
    def test_init_writes_effective_config(self, tmp_path: Path):
        target = tmp_path / "generated" / "config.yaml"

        assert cli.main(["config", "init", str(target)]) == 0

        data = yaml.safe_load(target.read_text(encoding="utf-8"))
        assert set(data) == {"server", "client"}
        assert "delay" in data["server"]
        assert "output" in data["client"]

    def test_init_starts_from_existing_file(self, tmp_path: Path):
        source = tmp_path / "base.yaml"
        source.write_text("server:\n  delay: 7\n", encoding="utf-8")
        target = tmp_path / "config.yaml"

        assert cli.main(["config", "init", str(target), "--config", str(source)]) == 0

        assert yaml.safe_load(target.read_text(encoding="utf-8"))["server"]["delay"] == 7


class TestSelftestCommand:
    @pytest.mark.parametrize(("passed", "expected"), [(True, 0), (False, 1)])
    def test_exit_code_follows_result(self, monkeypatch: pytest.MonkeyPatch, passed, expected):
        async def fake_selftest(stun_url, timeout):
            return passed

        monkeypatch.setattr(cli, "run_selftest", fake_selftest)

        assert cli.main(["selftest", "--timeout", "1"]) == expected
