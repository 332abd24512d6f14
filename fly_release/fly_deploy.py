"""
fly_deploy
----------

`flyctl deploy --remote-only` 로 원격 빌드 배포를 트리거하는 모듈.
"""

from __future__ import annotations

from typing import List

from .config import ReleaseConfig
from .logging_utils import get_logger
from .subprocess_utils import RunResult, run_command


logger = get_logger(__name__)


def build_deploy_cmd(cfg: ReleaseConfig) -> List[str]:
    # 이미지 빌드는 항상 Fly.io 원격 빌더에서 수행한다.
    cmd = [cfg.flyctl_bin, "deploy", "--remote-only"]
    if cfg.fly_app:
        cmd += ["-a", cfg.fly_app]
    if cfg.fly_config:
        cmd += ["-c", cfg.fly_config]
    return cmd


def deploy(cfg: ReleaseConfig, base_dir: str = ".") -> RunResult:
    """
    원격 배포를 실행한다. 호출할 때마다 새 배포가 만들어진다.
    비정상 종료 시 CommandError(returncode 포함)가 올라간다.
    """
    logger.info("Fly.io 배포 시작 (remote-only): app=%s", cfg.fly_app or "(fly.toml)")
    return run_command(
        build_deploy_cmd(cfg),
        cwd=base_dir,
        timeout=cfg.deploy_timeout,
        stream_output=True,
    )
