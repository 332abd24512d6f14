from __future__ import annotations

from typing import Any, Dict, List

import pytest

from fly_release import fly_secrets
from fly_release.config import ReleaseConfig
from fly_release.subprocess_utils import CommandError, RunResult


def _recorder(monkeypatch: pytest.MonkeyPatch) -> List[Dict[str, Any]]:
    calls: List[Dict[str, Any]] = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        calls.append({"cmd": list(cmd), **kwargs})
        return RunResult(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(fly_secrets, "run_command", fake_run)
    return calls


def test_missing_key_file_skips_without_invocation(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _recorder(monkeypatch)

    provisioned = fly_secrets.secret_step(ReleaseConfig(), base_dir=str(tmp_path))

    assert provisioned is False
    assert calls == []


def test_directory_at_key_path_counts_as_missing(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _recorder(monkeypatch)
    (tmp_path / "private_key").mkdir()

    assert fly_secrets.key_file_exists(ReleaseConfig(), str(tmp_path)) is False
    assert fly_secrets.secret_step(ReleaseConfig(), base_dir=str(tmp_path)) is False
    assert calls == []


def test_trailing_newline_is_trimmed(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _recorder(monkeypatch)
    (tmp_path / "private_key").write_text("abc123\n", encoding="utf-8")

    provisioned = fly_secrets.secret_step(ReleaseConfig(), base_dir=str(tmp_path))

    assert provisioned is True
    assert len(calls) == 1
    assert calls[0]["input_text"] == "AGE_PRIVATE_KEY=abc123\n"


def test_secret_value_never_in_argv(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _recorder(monkeypatch)
    (tmp_path / "private_key").write_text("  AGE-SECRET-KEY-1XYZ \n", encoding="utf-8")
    cfg = ReleaseConfig(fly_app="telestall")

    fly_secrets.secret_step(cfg, base_dir=str(tmp_path))

    cmd = calls[0]["cmd"]
    assert cmd == ["flyctl", "secrets", "import", "-a", "telestall"]
    assert all("AGE-SECRET-KEY-1XYZ" not in part for part in cmd)
    assert calls[0]["timeout"] == cfg.secret_timeout


def test_empty_key_file_is_skipped(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _recorder(monkeypatch)
    (tmp_path / "private_key").write_text(" \n\n", encoding="utf-8")

    assert fly_secrets.secret_step(ReleaseConfig(), base_dir=str(tmp_path)) is False
    assert calls == []


def test_custom_key_file_and_secret_name(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls = _recorder(monkeypatch)
    (tmp_path / "keys").mkdir()
    (tmp_path / "keys" / "age.txt").write_text("k\n", encoding="utf-8")
    cfg = ReleaseConfig(private_key_file="keys/age.txt", secret_name="MY_KEY")

    fly_secrets.secret_step(cfg, base_dir=str(tmp_path))

    assert calls[0]["input_text"] == "MY_KEY=k\n"


def test_multiline_value_uses_triple_quotes() -> None:
    payload = fly_secrets.format_import_payload("K", "line1\nline2")

    assert payload == 'K="""line1\nline2"""\n'


def test_provision_failure_propagates(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        raise CommandError("명령 실행 실패", cmd=cmd, returncode=2)

    monkeypatch.setattr(fly_secrets, "run_command", failing_run)
    (tmp_path / "private_key").write_text("abc123\n", encoding="utf-8")

    with pytest.raises(CommandError) as excinfo:
        fly_secrets.secret_step(ReleaseConfig(), base_dir=str(tmp_path))

    assert excinfo.value.returncode == 2


@pytest.mark.parametrize("value", ['abc"""def', '"""abc', 'line1\nline2"""'])
def test_triple_quote_value_is_rejected(value: str) -> None:
    with pytest.raises(fly_secrets.SecretFormatError) as excinfo:
        fly_secrets.format_import_payload("AGE_PRIVATE_KEY", value)

    assert value not in str(excinfo.value)
    assert "AGE_PRIVATE_KEY" in str(excinfo.value)


def test_non_utf8_key_file_raises_format_error(tmp_path) -> None:  # noqa: ANN001
    path = tmp_path / "private_key"
    path.write_bytes(b"\xff\xfekey\n")

    with pytest.raises(fly_secrets.SecretFormatError) as excinfo:
        fly_secrets.read_private_key(str(path))

    assert "UTF-8" in str(excinfo.value)


def test_key_read_keeps_inner_bytes(tmp_path) -> None:  # noqa: ANN001
    path = tmp_path / "private_key"
    path.write_bytes(b"line1\r\nline2\r\n")

    assert fly_secrets.read_private_key(str(path)) == "line1\r\nline2"
