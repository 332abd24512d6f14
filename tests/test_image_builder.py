from __future__ import annotations

from typing import List

import pytest

from fly_release import image_builder
from fly_release.config import ReleaseConfig


def test_read_entrypoint_exec_form(tmp_path) -> None:  # noqa: ANN001
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text(
        "FROM rust:1.71 as build\n"
        "WORKDIR /prod\n"
        "COPY . .\n"
        "RUN cargo build --release\n"
        "\n"
        'CMD ["/prod/target/release/telestall"]\n',
        encoding="utf-8",
    )

    assert image_builder.read_entrypoint(str(dockerfile)) == ["/prod/target/release/telestall"]


def test_entrypoint_wins_over_cmd_and_shell_form(tmp_path) -> None:  # noqa: ANN001
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text(
        "FROM alpine\n"
        "# ENTRYPOINT commented out\n"
        'CMD ["--help"]\n'
        "ENTRYPOINT /usr/local/bin/svc \\\n"
        "    --port 8080\n",
        encoding="utf-8",
    )

    assert image_builder.read_entrypoint(str(dockerfile)) == [
        "/bin/sh",
        "-c",
        "/usr/local/bin/svc  --port 8080",
    ]


def test_read_entrypoint_none(tmp_path) -> None:  # noqa: ANN001
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_text("FROM alpine\nRUN true\n", encoding="utf-8")

    assert image_builder.read_entrypoint(str(dockerfile)) is None


def test_build_image_calls_docker(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[list[str]] = []

    def fake_run(cmd, **kwargs):  # noqa: ANN001, ANN003
        calls.append(list(cmd))

    monkeypatch.setattr(image_builder, "run_command", fake_run)
    (tmp_path / "Dockerfile").write_text('FROM alpine\nCMD ["/bin/app"]\n', encoding="utf-8")

    tag = image_builder.build_image(ReleaseConfig(image_tag="svc:dev"), base_dir=str(tmp_path))

    assert tag == "svc:dev"
    assert calls == [["docker", "build", "-t", "svc:dev", "-f", "Dockerfile", "."]]


def test_build_image_requires_dockerfile(tmp_path) -> None:  # noqa: ANN001
    with pytest.raises(RuntimeError):
        image_builder.build_image(ReleaseConfig(), base_dir=str(tmp_path))
