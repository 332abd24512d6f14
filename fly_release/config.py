from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, List

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.release"]

DEFAULT_PRIVATE_KEY_FILE = "private_key"
DEFAULT_SECRET_NAME = "AGE_PRIVATE_KEY"


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_float(name: str, default: float, invalid: List[str]) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        invalid.append(name)
        return default
    if value <= 0:
        invalid.append(name)
        return default
    return value


@dataclass
class ReleaseConfig:
    # Fly.io 대상
    fly_app: Optional[str] = None
    fly_config: Optional[str] = None
    flyctl_bin: str = "flyctl"

    # secret 프로비저닝
    private_key_file: str = DEFAULT_PRIVATE_KEY_FILE
    secret_name: str = DEFAULT_SECRET_NAME
    # False 면 기존 스크립트처럼 secret 설정 실패를 무시하고 배포를 계속한다.
    fail_on_secret_error: bool = False

    # 타임아웃(초)
    secret_timeout: float = 120.0
    deploy_timeout: float = 1800.0

    # 로컬 이미지 빌드
    docker_bin: str = "docker"
    dockerfile: str = "Dockerfile"
    image_tag: str = "app:latest"
    build_timeout: float = 1800.0

    @classmethod
    def from_env(cls) -> "ReleaseConfig":
        invalid: List[str] = []

        cfg = cls(
            fly_app=os.getenv("FLY_APP") or None,
            fly_config=os.getenv("FLY_CONFIG") or None,
            flyctl_bin=os.getenv("FLYCTL_BIN") or "flyctl",
            private_key_file=os.getenv("PRIVATE_KEY_FILE") or DEFAULT_PRIVATE_KEY_FILE,
            secret_name=os.getenv("SECRET_NAME") or DEFAULT_SECRET_NAME,
            fail_on_secret_error=_get_bool("FAIL_ON_SECRET_ERROR", False),
            secret_timeout=_get_float("SECRET_TIMEOUT_SECONDS", 120.0, invalid),
            deploy_timeout=_get_float("DEPLOY_TIMEOUT_SECONDS", 1800.0, invalid),
            docker_bin=os.getenv("DOCKER_BIN") or "docker",
            dockerfile=os.getenv("DOCKERFILE") or "Dockerfile",
            image_tag=os.getenv("IMAGE_TAG") or "app:latest",
            build_timeout=_get_float("BUILD_TIMEOUT_SECONDS", 1800.0, invalid),
        )

        if invalid:
            raise ValueError(
                "숫자(양수)여야 하는 환경변수 값이 잘못되었습니다: "
                + ", ".join(sorted(set(invalid)))
            )

        if "=" in cfg.secret_name or not cfg.secret_name.strip():
            raise ValueError(f"SECRET_NAME 값이 올바르지 않습니다: {cfg.secret_name!r}")

        return cfg
