"""
fly_secrets
-----------

로컬 private_key 파일이 있을 때만 그 내용을 Fly.io secret 으로 등록하는 모듈.

secret 값은 명령 인자가 아니라 `flyctl secrets import` 의 stdin 으로 전달하므로
프로세스 목록/명령 로그/에러 메시지에 값이 남지 않는다.
"""

from __future__ import annotations

import os
from typing import Callable, List, Optional

from .config import ReleaseConfig
from .logging_utils import get_logger
from .subprocess_utils import RunResult, run_command


logger = get_logger(__name__)


def key_file_path(cfg: ReleaseConfig, base_dir: str = ".") -> str:
    return os.path.join(base_dir, cfg.private_key_file)


def key_file_exists(cfg: ReleaseConfig, base_dir: str = ".") -> bool:
    """private_key 위치에 일반 파일이 있는지 여부. 부수효과 없음."""
    return os.path.isfile(key_file_path(cfg, base_dir))


class SecretFormatError(ValueError):
    """키 파일 내용을 secret 으로 넘길 수 없는 경우. 메시지에 값은 포함하지 않는다."""


def read_private_key(path: str) -> str:
    """
    키 파일 전체를 하나의 값으로 읽는다.

    파일은 바이트 그대로 읽은 뒤 UTF-8 로 디코딩한다(개행 변환 없음).
    UTF-8 이 아니면 SecretFormatError. 앞뒤 공백/개행은 의미가 없으므로 제거한다.
    """
    with open(path, "rb") as f:
        data = f.read()
    try:
        return data.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise SecretFormatError(f"키 파일이 UTF-8 텍스트가 아닙니다: {path}") from e


def build_import_cmd(cfg: ReleaseConfig) -> List[str]:
    cmd = [cfg.flyctl_bin, "secrets", "import"]
    if cfg.fly_app:
        cmd += ["-a", cfg.fly_app]
    return cmd


def format_import_payload(name: str, value: str) -> str:
    # flyctl secrets import 는 NAME=VALUE 한 줄씩 읽고, 여러 줄 값은 """ 로 감싼다.
    # 값 안의 """ 는 이스케이프할 방법이 없으므로 거부한다.
    if '"""' in value:
        raise SecretFormatError(f'{name} 값에 """ 가 포함되어 있어 flyctl secrets import 로 전달할 수 없습니다.')
    if "\n" in value:
        return f'{name}="""{value}"""\n'
    return f"{name}={value}\n"


def provision_secret(cfg: ReleaseConfig, value: str, base_dir: str = ".") -> RunResult:
    """
    Fly.io 앱에 secret 을 설정(덮어쓰기)한다.
    실패하면 CommandError, 값 형식이 맞지 않으면 SecretFormatError 가 올라간다.
    """
    logger.info("Secret 설정: %s (값은 stdin 으로 전달)", cfg.secret_name)
    return run_command(
        build_import_cmd(cfg),
        cwd=base_dir,
        timeout=cfg.secret_timeout,
        input_text=format_import_payload(cfg.secret_name, value),
    )


def secret_step(
    cfg: ReleaseConfig,
    base_dir: str = ".",
    on_value: Optional[Callable[[str], None]] = None,
) -> bool:
    """
    CHECK_KEY 분기.

    - 키 파일 없음 → False (에러 아님: 이미 별도로 설정되었거나 이번 실행에 필요 없음)
    - 키 파일 있음 → 값을 읽어 provision_secret 호출 후 True

    on_value 가 주어지면 secret 값을 읽은 직후 호출된다(로그 마스킹 등록용).
    provision_secret 의 CommandError 는 그대로 전파한다. 실패 정책은 orchestrator 가 결정한다.
    """
    path = key_file_path(cfg, base_dir)
    if not key_file_exists(cfg, base_dir):
        logger.info("키 파일이 없어 secret 설정을 건너뜁니다: %s", path)
        return False

    value = read_private_key(path)
    if not value:
        logger.warning("키 파일이 비어 있어 secret 설정을 건너뜁니다: %s", path)
        return False

    if on_value is not None:
        on_value(value)

    provision_secret(cfg, value, base_dir=base_dir)
    return True
