from __future__ import annotations

import runpy
import sys

import pytest

import javasentinel.cli as cli_mod


@pytest.fixture
def app_calls(monkeypatch) -> list[str]:
    calls: list[str] = []
    monkeypatch.setattr(cli_mod, "app", lambda: calls.append("app"))
    return calls


def test_console_script_entry_runs_typer_app(app_calls: list[str]) -> None:
    cli_mod.main()
    assert app_calls == ["app"]


def test_python_dash_m_runs_typer_app(app_calls: list[str], monkeypatch) -> None:
    monkeypatch.delitem(sys.modules, "javasentinel.__main__", raising=False)
    runpy.run_module("javasentinel", run_name="__main__")
    assert app_calls == ["app"]
