from __future__ import annotations

from pathlib import Path

import pytest

from conduit.__main__ import main
from conduit.exceptions import ExitCode


@pytest.fixture(autouse=True)
def no_desktop_tools(monkeypatch):
    monkeypatch.setattr("conduit.notify.shutil.which", lambda tool: None)


@pytest.fixture
def captured(monkeypatch):
    seen = {}

    class StubPipeline:
        def __init__(self, config, **kwargs):
            seen["config"] = config
            seen["kwargs"] = kwargs
            self.text = "hello world"

        def run(self) -> int:
            return ExitCode.OK

    monkeypatch.setattr("conduit.pipeline.Pipeline", StubPipeline)
    return seen


def _env(tmp_path: Path, key: str) -> Path:
    env = tmp_path / ".env"
    env.write_text(f"GROQ_API_KEY={key}\n")
    env.chmod(0o600)
    return env


def test_missing_config_exits_with_credential_code(tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "missing.env")]) == ExitCode.CREDENTIAL


def test_flags_override_config(tmp_path: Path, valid_key: str, captured, capsys) -> None:
    env = _env(tmp_path, valid_key)

    exit_code = main([
        "--config", str(env), "--long", "--no-paste", "--no-indicator", "--language", "fr",
    ])

    assert exit_code == ExitCode.OK
    config = captured["config"]
    assert config.auto_paste is False
    assert config.indicator is False
    assert config.language == "fr"
    assert captured["kwargs"]["long_form"] is True
    assert captured["kwargs"]["max_duration"] is None
    assert capsys.readouterr().out == "hello world\n"


def test_max_duration_must_be_positive(tmp_path: Path, valid_key: str) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(_env(tmp_path, valid_key)), "--max-duration", "0"])
    assert excinfo.value.code == 2
