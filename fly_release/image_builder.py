"""
image_builder
-------------

서비스 바이너리용 컨테이너 이미지를 로컬에서 빌드하고,
Dockerfile 이 선언한 엔트리포인트를 읽어오는 모듈.

실제 빌드 단계는 Dockerfile 과 docker 에 맡긴다.
"""

from __future__ import annotations

import json
import os
import shlex
from typing import List, Optional

from .config import ReleaseConfig
from .logging_utils import get_logger
from .subprocess_utils import run_command


logger = get_logger(__name__)


def _logical_lines(text: str) -> List[str]:
    # 주석 제거 + 백슬래시 줄 이어붙이기
    lines: List[str] = []
    buf = ""
    for raw in text.splitlines():
        stripped = raw.strip()
        if not buf and (not stripped or stripped.startswith("#")):
            continue
        if stripped.endswith("\\"):
            buf += stripped[:-1] + " "
            continue
        buf += stripped
        if buf.strip():
            lines.append(buf.strip())
        buf = ""
    if buf.strip():
        lines.append(buf.strip())
    return lines


def _parse_command(arg: str) -> List[str]:
    if arg.startswith("["):
        try:
            parsed = json.loads(arg)
        except ValueError:
            parsed = None
        if isinstance(parsed, list) and all(isinstance(p, str) for p in parsed):
            return parsed
    # shell form 은 docker 가 /bin/sh -c 로 감싼다.
    return ["/bin/sh", "-c", arg]


def read_entrypoint(dockerfile_path: str) -> Optional[List[str]]:
    """
    Dockerfile 의 마지막 ENTRYPOINT(없으면 마지막 CMD)를 반환한다.
    둘 다 없으면 None.
    """
    with open(dockerfile_path, "r", encoding="utf-8") as f:
        lines = _logical_lines(f.read())

    entrypoint: Optional[List[str]] = None
    cmd: Optional[List[str]] = None
    for line in lines:
        parts = line.split(None, 1)
        if len(parts) < 2:
            continue
        instruction, arg = parts[0].upper(), parts[1].strip()
        if instruction == "ENTRYPOINT":
            entrypoint = _parse_command(arg)
        elif instruction == "CMD":
            cmd = _parse_command(arg)

    return entrypoint or cmd


def dockerfile_path(cfg: ReleaseConfig, base_dir: str = ".") -> str:
    return os.path.join(base_dir, cfg.dockerfile)


def build_image_cmd(cfg: ReleaseConfig) -> List[str]:
    return [cfg.docker_bin, "build", "-t", cfg.image_tag, "-f", cfg.dockerfile, "."]


def build_image(cfg: ReleaseConfig, base_dir: str = ".") -> str:
    """
    docker build 를 실행하고 이미지 태그를 반환한다.
    """
    path = dockerfile_path(cfg, base_dir)
    if not os.path.isfile(path):
        raise RuntimeError(f"Dockerfile 을 찾을 수 없습니다: {path}")

    entrypoint = read_entrypoint(path)
    if entrypoint:
        logger.info("엔트리포인트: %s", shlex.join(entrypoint))
    else:
        logger.warning("Dockerfile 에 ENTRYPOINT/CMD 가 선언되어 있지 않습니다: %s", path)

    run_command(
        build_image_cmd(cfg),
        cwd=base_dir,
        timeout=cfg.build_timeout,
        stream_output=True,
    )
    logger.info("이미지 빌드 완료: %s", cfg.image_tag)
    return cfg.image_tag
