"""
Tests for the billing-recurring command line.

Each test drives ``main()`` against a fresh SQLite file and asserts on exit
codes and printed output.
"""

import re
from datetime import datetime
from uuid import uuid4

import pytest

from billing_kernel.db.engine import reset_engine
from billing_kernel.domain.clock import DeterministicClock
from billing_recurring.cli import build_parser, main

NOW = datetime(2024, 3, 16, 9, 30)
_ID = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    for name in (
        "BILLING_CONFIG",
        "BILLING_DATABASE_URL",
        "BILLING_DEFAULT_CURRENCY",
        "BILLING_DEFAULT_EMAIL_APP",
        "BILLING_LOG_LEVEL",
        "BILLING_SCHEDULER_ENABLED",
        "BILLING_GENERATION_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_engine()


@pytest.fixture
def cli(tmp_path, capsys):
    """Run the CLI against a per-test database; returns (exit code, stdout, stderr)."""
    url = f"sqlite:///{tmp_path / 'billing.db'}"
    clock = DeterministicClock(NOW)

    def _run(*argv: str):
        code = main(["--database-url", url, *argv], clock=clock)
        out, err = capsys.readouterr()
        return code, out, err

    code, _, _ = _run("init-db")
    assert code == 0
    return _run


@pytest.fixture
def client_id(cli) -> str:
    code, out, _ = cli("client-add", "--name", "Acme Corp", "--email", "billing@acme.test")
    assert code == 0
    return _ID.search(out).group(0)


def _add(cli, client_id, *extra) -> str:
    code, out, err = cli(
        "add", "--client", client_id, "--amount", "1000", "--frequency", "monthly",
        "--day-of-month", "15", "--description", "Monthly retainer", *extra,
    )
    assert code == 0, err
    return _ID.search(out).group(0)


class TestParser:
    def test_rejects_bad_amount(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["add", "--client", str(uuid4()), "--amount", "abc",
                                       "--frequency", "monthly"])

    def test_rejects_unknown_frequency(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["add", "--client", str(uuid4()), "--amount", "10",
                                       "--frequency", "daily"])

    def test_rejects_bad_id(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["pause", "not-an-id"])

    @pytest.mark.parametrize("interval", ["0", "-5", "soon"])
    def test_rejects_non_positive_interval(self, interval):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--interval", interval])

    def test_accepts_interval(self):
        assert build_parser().parse_args(["run", "--interval", "30"]).interval == 30


class TestTemplateCommands:
    def test_init_db(self, tmp_path, capsys):
        code = main(["--database-url", f"sqlite:///{tmp_path / 'x.db'}", "init-db"])
        assert code == 0
        assert "Database initialized." in capsys.readouterr().out

    def test_add_and_list(self, cli, client_id):
        template_id = _add(cli, client_id)

        code, out, _ = cli("ls")

        assert code == 0
        assert template_id in out
        assert "Acme Corp" in out
        assert "1000.00 USD" in out
        assert "2024-04-15" in out
        assert "active" in out

    def test_add_reports_next_date(self, cli, client_id):
        code, out, _ = cli(
            "add", "--client", client_id, "--amount", "99.5", "--frequency", "weekly",
            "--day-of-week", "1",
        )
        assert code == 0
        assert "99.50 USD weekly, next 2024-03-18" in out

    def test_empty_list(self, cli):
        code, out, _ = cli("ls")
        assert code == 0
        assert "No recurring invoices found." in out

    def test_add_unknown_client(self, cli):
        code, _, err = cli(
            "add", "--client", str(uuid4()), "--amount", "10", "--frequency", "monthly",
        )
        assert code == 1
        assert "ERROR:" in err

    def test_add_invalid_day_of_week(self, cli, client_id):
        code, _, err = cli(
            "add", "--client", client_id, "--amount", "10", "--frequency", "weekly",
            "--day-of-week", "9",
        )
        assert code == 1
        assert "day_of_week" in err

    def test_update(self, cli, client_id):
        template_id = _add(cli, client_id)

        code, out, _ = cli("update", template_id, "--day-of-month", "20")

        assert code == 0
        assert "next 2024-04-20" in out

    def test_pause_and_resume(self, cli, client_id):
        template_id = _add(cli, client_id)

        assert cli("pause", template_id)[0] == 0
        _, out, _ = cli("ls")
        assert "paused" in out

        code, out, _ = cli("resume", template_id)
        assert code == 0
        assert "next 2024-04-15" in out

    def test_unknown_id(self, cli):
        code, _, err = cli("pause", str(uuid4()))
        assert code == 1
        assert "ERROR:" in err

    def test_delete_with_yes(self, cli, client_id):
        template_id = _add(cli, client_id)

        code, out, _ = cli("delete", template_id, "--yes")

        assert code == 0
        assert f"Deleted recurring invoice {template_id}" in out
        assert "No recurring invoices found." in cli("ls")[1]

    def test_delete_declined(self, cli, client_id, monkeypatch):
        template_id = _add(cli, client_id)
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        code, out, _ = cli("delete", template_id)

        assert code == 0
        assert "Cancelled." in out
        assert template_id in cli("ls")[1]

    def test_delete_confirmed(self, cli, client_id, monkeypatch):
        template_id = _add(cli, client_id)
        monkeypatch.setattr("builtins.input", lambda prompt: "yes")

        assert cli("delete", template_id)[0] == 0
        assert template_id not in cli("ls")[1]


class TestGenerateCommand:
    def test_nothing_due(self, cli, client_id):
        _add(cli, client_id)

        code, out, _ = cli("generate")

        assert code == 0
        assert "No recurring invoices are due." in out

    def test_generate_all(self, cli, client_id):
        _add(cli, client_id)

        code, out, _ = cli("generate", "--all")

        assert code == 0
        assert "generated inv.acme_corp.2024-03-16 for Acme Corp" in out
        assert "Generated 1 of 1 invoice(s); 0 failed, 0 warning(s)." in out

    def test_dry_run(self, cli, client_id):
        _add(cli, client_id)

        code, out, _ = cli("generate", "--all", "--dry-run")

        assert code == 0
        assert "would generate: Acme Corp" in out
        assert "Dry run: 1 invoice(s) would be generated." in out
        _, listing, _ = cli("ls")
        assert re.search(r"active\s+0\s", listing)

    def test_single_template(self, cli, client_id):
        template_id = _add(cli, client_id)

        code, out, _ = cli("generate", "--id", template_id)

        assert code == 0
        assert "generated inv.acme_corp.2024-03-16" in out

    def test_single_paused_template(self, cli, client_id):
        template_id = _add(cli, client_id)
        cli("pause", template_id)

        code, _, err = cli("generate", "--id", template_id)

        assert code == 1
        assert "paused" in err

    def test_auto_pdf_without_renderer_is_warning(self, cli, client_id):
        _add(cli, client_id, "--auto-pdf")

        code, out, _ = cli("generate", "--all")

        assert code == 0
        assert "warning: pdf failed" in out
        assert "Generated 1 of 1 invoice(s); 0 failed, 1 warning(s)." in out


class TestSettings:
    def test_bad_config_file(self, tmp_path, capsys):
        config = tmp_path / "billing.yaml"
        config.write_text("scheduler:\n  cron: '* * * * *'\n")

        code = main(["--config", str(config), "ls"])

        assert code == 1
        assert "ERROR: Failed to load settings" in capsys.readouterr().err

    def test_malformed_config_file(self, tmp_path, capsys):
        config = tmp_path / "billing.yaml"
        config.write_text("scheduler: [unclosed\n")

        code = main(["--config", str(config), "ls"])

        assert code == 1
        assert "ERROR: Failed to load settings" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path, capsys):
        code = main(["--config", str(tmp_path / "absent.yaml"), "ls"])

        assert code == 1
        assert "ERROR: Failed to load settings" in capsys.readouterr().err

    def test_run_with_scheduler_disabled(self, cli, monkeypatch):
        monkeypatch.setenv("BILLING_SCHEDULER_ENABLED", "false")

        code, _, err = cli("run")

        assert code == 1
        assert "Scheduler is disabled" in err
