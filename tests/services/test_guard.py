import subprocess

import hostprov.services.guard as guard_module
from hostprov.models import Verdict
from hostprov.services.guard import IdempotencyGuard


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


class StubRunner:
    def __init__(self, stdout=""):
        self.stdout = stdout
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=False, input=None, env=None):
        self.calls.append((cmd, check))
        return subprocess.CompletedProcess(cmd, 0, stdout=self.stdout, stderr="")


def test_home_directory_verdict(tmp_path):
    guard = IdempotencyGuard(DummyLogger(), StubRunner())

    assert guard.home_directory(str(tmp_path)) is Verdict.ALREADY_SATISFIED
    assert guard.home_directory(str(tmp_path / "bob")) is Verdict.NEEDS_ACTION


def test_account_verdict_uses_password_database(monkeypatch):
    def fake_getpwnam(name):
        if name == "alice":
            return object()
        raise KeyError(name)

    monkeypatch.setattr(guard_module.pwd, "getpwnam", fake_getpwnam)
    guard = IdempotencyGuard(DummyLogger(), StubRunner())

    assert guard.account("alice") is Verdict.ALREADY_SATISFIED
    assert guard.account("bob") is Verdict.NEEDS_ACTION


def test_group_verdict_uses_group_database(monkeypatch):
    def fake_getgrnam(name):
        raise KeyError(name)

    monkeypatch.setattr(guard_module.grp, "getgrnam", fake_getgrnam)

    assert IdempotencyGuard(DummyLogger(), StubRunner()).group("staff") is Verdict.NEEDS_ACTION


def test_service_verdict_from_status_output():
    runner = StubRunner(stdout="rstudio-server.service - RStudio Server\n")
    guard = IdempotencyGuard(DummyLogger(), runner)

    assert guard.service("rstudio-server") is Verdict.ALREADY_SATISFIED
    assert runner.calls == [(["service", "rstudio-server", "status"], False)]
    assert IdempotencyGuard(DummyLogger(), StubRunner()).service("shiny-server") is Verdict.NEEDS_ACTION


def test_debian_package_verdict_requires_installed_state():
    installed = StubRunner(stdout="ii  gdebi-core  0.9.5.7  all  simple tool\n")
    removed = StubRunner(stdout="rc  gdebi-core  0.9.5.7  all  simple tool\n")

    assert IdempotencyGuard(DummyLogger(), installed).debian_package("gdebi-core") is Verdict.ALREADY_SATISFIED
    assert IdempotencyGuard(DummyLogger(), removed).debian_package("gdebi-core") is Verdict.NEEDS_ACTION
