"""
Command-line interface unit tests
"""
import json
from datetime import datetime

import pytest

from netdiag import cli
from netdiag.diagnostics.probes import ProbeResult
from netdiag.diagnostics.rules import evaluate_rules
from netdiag.diagnostics.runner import DiagnosticPipeline, DiagnosticReport, overall_status
from netdiag.network import AddressFamily, TcpError


@pytest.fixture
def endpoints_file(tmp_path):
    path = tmp_path / "endpoints.json"
    path.write_text(json.dumps([
        {"name": "ok-http", "host": "example.com", "port": 443, "httpPath": "/"},
        {"name": "api", "host": "api.example.net", "httpPath": "/v1/ping"},
    ]))
    return path


@pytest.fixture
def fake_run(monkeypatch):
    """
    Replace the network run. failing names endpoints whose TCP probe fails;
    the pipeline options of the last run are captured.
    """
    state = {"failing": set(), "options": None, "endpoints": None}

    def run(self, endpoints):
        state["options"] = self.options
        state["endpoints"] = list(endpoints)
        results = []
        for chain in self.plan(endpoints):
            for request in chain:
                error = None
                if request.endpoint.name in state["failing"] and request.kind.value == "tcp":
                    error = TcpError.TIMEOUT
                results.append(ProbeResult.from_error(request, error, elapsed_ms=5.0))
        return DiagnosticReport(
            timestamp=datetime(2026, 10, 19, 12, 0, 0),
            endpoints=tuple(endpoints),
            results=tuple(results),
            status=overall_status(results),
            hints=tuple(evaluate_rules(results)),
            duration_ms=42.0,
            options=self.options,
        )

    monkeypatch.setattr(DiagnosticPipeline, "run", run)
    return state


class TestRunCommand:

    def test_healthy_exit_code(self, fake_run, endpoints_file, capsys):
        code = cli.main(["run", "--endpoints", str(endpoints_file)])

        out = capsys.readouterr().out
        assert code == 0
        assert "Overall Status: HEALTHY" in out
        assert "ok-http (example.com:443)" in out

    def test_degraded_exit_code(self, fake_run, endpoints_file, capsys):
        fake_run["failing"] = {"api"}

        assert cli.main(["run", "--endpoints", str(endpoints_file)]) == 1

    def test_unhealthy_exit_code(self, fake_run, endpoints_file, capsys):
        fake_run["failing"] = {"api", "ok-http"}

        assert cli.main(["run", "--endpoints", str(endpoints_file)]) == 2

    def test_json_output(self, fake_run, endpoints_file, capsys):
        fake_run["failing"] = {"api"}

        code = cli.main(["run", "--endpoints", str(endpoints_file), "--format", "json"])

        data = json.loads(capsys.readouterr().out)
        assert code == 1
        assert data["overall_status"] == "degraded"
        assert data["summary"]["failing_endpoints"] == ["api"]
        assert data["hints"][0]["rule"] == "outbound-firewall"

    def test_flags_reach_the_pipeline(self, fake_run, endpoints_file, capsys):
        cli.main(["run", "--endpoints", str(endpoints_file), "--family", "4",
                  "--timeout", "2.5", "--concurrency", "3", "--run-timeout", "9",
                  "--fail-fast"])

        options = fake_run["options"]
        assert options.family is AddressFamily.IPV4
        assert options.timeout == 2.5
        assert options.concurrency == 3
        assert options.run_timeout == 9
        assert options.fail_fast is True
        assert options.gateway is None

    def test_gateway_flag_reaches_the_pipeline(self, fake_run, endpoints_file, capsys):
        code = cli.main(["run", "--endpoints", str(endpoints_file), "--gateway", "8.8.8.8:53"])

        assert code == 0
        assert fake_run["options"].gateway == "8.8.8.8:53"

    def test_help(self, fake_run, capsys):
        assert cli.main(["run", "--help"]) == 0
        assert "--gateway" in capsys.readouterr().out
        assert fake_run["options"] is None

    def test_defaults_extend_and_exclude(self, fake_run, endpoints_file, capsys):
        cli.main(["run", "--endpoints", str(endpoints_file), "--extend",
                  "--exclude", "jupiter-token", "--exclude", "api"])

        names = [e.name for e in fake_run["endpoints"]]
        assert names == ["jupiter-quote", "dexscreener", "ok-http"]

    def test_output_file(self, fake_run, endpoints_file, tmp_path, capsys):
        target = tmp_path / "reports" / "run.json"

        cli.main(["run", "--endpoints", str(endpoints_file), "--format", "json",
                  "--output", str(target)])

        assert json.loads(target.read_text())["exit_code"] == 0

    def test_config_file_endpoints(self, fake_run, endpoints_file, tmp_path, capsys):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"endpoints_file": str(endpoints_file),
                                      "concurrency": 4}))

        cli.main(["run", "--config", str(config)])

        assert [e.name for e in fake_run["endpoints"]] == ["ok-http", "api"]
        assert fake_run["options"].concurrency == 4


class TestInvocationErrors:
    """Bad flags and bad config exit with 3 before any probing"""

    @pytest.mark.parametrize("args, message", [
        (["run", "--family", "7"], "family"),
        (["run", "--format", "xml"], "--format"),
        (["run", "--concurrency", "0"], "concurrency"),
        (["run", "--timeout", "-1"], "timeout"),
        (["run", "--exclude", "nope"], "nope"),
        (["run", "--nameserver", "not-an-ip"], "nameservers"),
        (["run", "--gateway", "router.local"], "gateway"),
    ])
    def test_bad_values(self, fake_run, args, message, capsys):
        code = cli.main(args)

        assert code == 3
        assert message in capsys.readouterr().err
        assert fake_run["options"] is None

    def test_unknown_flag(self, fake_run, capsys):
        assert cli.main(["run", "--bogus"]) == 3
        assert fake_run["options"] is None

    @pytest.mark.parametrize("args", [
        ["run", "--timeout", "abc"],
        ["run", "--concurrency"],
        ["frobnicate"],
    ])
    def test_usage_errors(self, fake_run, args, capsys):
        assert cli.main(args) == 3
        assert fake_run["options"] is None

    def test_unreadable_endpoint_file(self, fake_run, tmp_path, capsys):
        code = cli.main(["run", "--endpoints", str(tmp_path)])

        assert code == 3
        assert "endpoints:" in capsys.readouterr().err
        assert fake_run["options"] is None

    def test_bad_endpoint_file(self, fake_run, tmp_path, capsys):
        path = tmp_path / "endpoints.json"
        path.write_text(json.dumps([{"name": "x", "host": "example.com", "port": "https"}]))

        code = cli.main(["run", "--endpoints", str(path)])

        assert code == 3
        assert "port" in capsys.readouterr().err

    def test_internal_error(self, monkeypatch, endpoints_file, capsys):
        from netdiag.errors import InternalError

        def explode(self, endpoints):
            raise InternalError("probe task failed: RuntimeError('boom')")

        monkeypatch.setattr(DiagnosticPipeline, "run", explode)

        assert cli.main(["run", "--endpoints", str(endpoints_file)]) == 3
        assert "internal error" in capsys.readouterr().err


class TestEndpointsCommand:

    def test_lists_endpoints(self, endpoints_file, capsys):
        code = cli.main(["endpoints", "--endpoints", str(endpoints_file)])

        out = capsys.readouterr().out
        assert code == 0
        assert "ok-http" in out
        assert "api.example.net" in out
