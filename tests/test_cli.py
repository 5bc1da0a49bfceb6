"""Tests for the command line interface."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from pkgpanel.cli import main as cli
from pkgpanel.core.config import Settings
from pkgpanel.core.context import PanelContext
from pkgpanel.core.errors import (
    EXIT_TRANSIENT_ERROR,
    EXIT_UNVERIFIED,
    EXIT_USER_ERROR,
    ManagerNotAvailableError,
    ManagerTimeoutError,
)
from pkgpanel.core.shell import CommandResult

from conftest import FakeRunner, ok, winget_missing, winget_row

runner = CliRunner()


@pytest.fixture(autouse=True)
def panel(monkeypatch: pytest.MonkeyPatch, settings: Settings, fake_runner: FakeRunner) -> None:
    """Point the CLI at temporary settings and the fake command runner."""
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "make_context", lambda: PanelContext(settings, runner=fake_runner))


class TestStatusCommand:
    """Tests for `pkgpanel status`."""

    def test_installed(self, fake_runner: FakeRunner) -> None:
        """Test an installed package is shown with its version."""
        fake_runner.add("list", "Foo.Bar", winget_row("Foo.Bar", "1.2.3"))

        result = runner.invoke(cli.app, ["status", "winget", "Foo.Bar"])

        assert result.exit_code == 0
        assert "Installed" in result.output
        assert "1.2.3" in result.output

    def test_not_installed(self, fake_runner: FakeRunner) -> None:
        """Test a missing package is not an error."""
        fake_runner.add("list", "Foo.Bar", winget_missing())

        result = runner.invoke(cli.app, ["status", "winget", "Foo.Bar"])

        assert result.exit_code == 0
        assert "Not installed" in result.output

    def test_failed_check(self, fake_runner: FakeRunner) -> None:
        """Test a failed check is shown as such and exits with the transient code."""
        fake_runner.add("list", "git", ManagerTimeoutError(timeout=5))

        result = runner.invoke(cli.app, ["status", "choco", "git"])

        assert result.exit_code == EXIT_TRANSIENT_ERROR
        assert "Check failed" in result.output

    def test_unknown_manager(self) -> None:
        """Test an unsupported manager is rejected by argument parsing."""
        result = runner.invoke(cli.app, ["status", "apt", "git"])

        assert result.exit_code != 0


class TestBulkCommand:
    """Tests for `pkgpanel bulk`."""

    def test_explicit_ids(self, fake_runner: FakeRunner) -> None:
        """Test every requested package is listed."""
        fake_runner.add("list", "A.App", winget_row("A.App", "1.0"))
        fake_runner.add("list", "B.App", winget_missing())

        result = runner.invoke(cli.app, ["bulk", "winget", "A.App", "B.App"])

        assert result.exit_code == 0
        assert "A.App" in result.output
        assert "B.App" in result.output

    def test_defaults_to_catalog(self, fake_runner: FakeRunner) -> None:
        """Test the catalog is checked when no ids are given."""
        runner.invoke(cli.app, ["catalog", "add", "winget", "Foo.Bar", "--name", "Foo"])
        fake_runner.add("list", "Foo.Bar", winget_missing())

        result = runner.invoke(cli.app, ["bulk", "winget"])

        assert result.exit_code == 0
        assert fake_runner.count("list", "Foo.Bar") == 1


class TestOperationCommands:
    """Tests for `pkgpanel install` and `pkgpanel uninstall`."""

    def test_install(self, fake_runner: FakeRunner) -> None:
        """Test a verified install exits cleanly."""
        fake_runner.add("install", "Foo.Bar", ok("Successfully installed"))
        fake_runner.add("list", "Foo.Bar", winget_missing(), winget_row("Foo.Bar", "2.0.0"))

        result = runner.invoke(cli.app, ["install", "winget", "Foo.Bar"])

        assert result.exit_code == 0
        assert "Installed Foo.Bar" in result.output

    def test_unverified(self, fake_runner: FakeRunner) -> None:
        """Test an unverified uninstall has its own exit code."""
        fake_runner.add("uninstall", "Foo.Bar", ok())
        fake_runner.add("list", "Foo.Bar", winget_row("Foo.Bar", "1.0"))

        result = runner.invoke(cli.app, ["uninstall", "winget", "Foo.Bar"])

        assert result.exit_code == EXIT_UNVERIFIED

    def test_retries_exhausted(self, fake_runner: FakeRunner) -> None:
        """Test a command that keeps failing ends with the transient exit code."""
        fake_runner.add("install", "git", CommandResult("", "The install of git was NOT successful.", 1))

        result = runner.invoke(cli.app, ["install", "choco", "git"])

        assert result.exit_code == EXIT_TRANSIENT_ERROR
        assert fake_runner.count("install", "git") == 4


class TestVersionCommand:
    """Tests for `pkgpanel version`."""

    def test_single_manager(self, fake_runner: FakeRunner) -> None:
        """Test the version of the requested manager is shown."""
        fake_runner.add("--version", None, ok("v1.7.10861"))

        result = runner.invoke(cli.app, ["version", "winget"])

        assert result.exit_code == 0
        assert "1.7.10861" in result.output

    def test_missing_manager(self, fake_runner: FakeRunner) -> None:
        """Test a missing tool is reported, not raised."""
        fake_runner.add("--version", None, ManagerNotAvailableError(command="choco --version"))

        result = runner.invoke(cli.app, ["version", "choco"])

        assert result.exit_code == 0
        assert "no" in result.output


class TestManagerCommands:
    """Tests for `pkgpanel manager install|uninstall`."""

    def test_install_chocolatey(self, fake_runner: FakeRunner) -> None:
        """Test Chocolatey is installed by default and confirmed by its version."""
        fake_runner.add("powershell", None, ok())
        fake_runner.add("--version", None, ok("2.2.2"))

        result = runner.invoke(cli.app, ["manager", "install"])

        assert result.exit_code == 0
        assert "Installed chocolatey" in result.output
        assert fake_runner.count("powershell") == 1

    def test_uninstall_unverified(self, fake_runner: FakeRunner) -> None:
        """Test an uninstall that leaves choco working exits as unverified."""
        fake_runner.add("powershell", None, ok())
        fake_runner.add("--version", None, ok("2.2.2"))

        result = runner.invoke(cli.app, ["manager", "uninstall", "choco"])

        assert result.exit_code == EXIT_UNVERIFIED

    def test_winget_rejected(self, fake_runner: FakeRunner) -> None:
        """Test winget cannot be bootstrapped."""
        result = runner.invoke(cli.app, ["manager", "install", "winget"])

        assert result.exit_code == EXIT_USER_ERROR
        assert fake_runner.calls == []


class TestCatalogCommands:
    """Tests for `pkgpanel catalog`."""

    def test_add_and_list(self) -> None:
        """Test an added entry is listed."""
        added = runner.invoke(cli.app, ["catalog", "add", "winget", "Foo.Bar", "--name", "Foo", "--desc", "Editor"])
        listed = runner.invoke(cli.app, ["catalog", "list", "winget"])

        assert added.exit_code == 0
        assert "Foo.Bar" in listed.output
        assert "Editor" in listed.output

    def test_add_duplicate(self) -> None:
        """Test adding an existing id is a user error."""
        runner.invoke(cli.app, ["catalog", "add", "choco", "git"])

        result = runner.invoke(cli.app, ["catalog", "add", "choco", "GIT"])

        assert result.exit_code == EXIT_USER_ERROR

    def test_edit(self) -> None:
        """Test editing changes only the given fields."""
        runner.invoke(cli.app, ["catalog", "add", "choco", "git", "--name", "Git", "--desc", "VCS"])

        result = runner.invoke(cli.app, ["catalog", "edit", "choco", "git", "--name", "Git SCM"])
        listed = runner.invoke(cli.app, ["catalog", "list", "choco"])

        assert result.exit_code == 0
        assert "Git SCM" in listed.output
        assert "VCS" in listed.output

    def test_remove_missing(self) -> None:
        """Test removing an unknown id is a user error."""
        result = runner.invoke(cli.app, ["catalog", "remove", "winget", "Nope.App"])

        assert result.exit_code == EXIT_USER_ERROR
