from __future__ import annotations

import os
import shlex
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .config import ReleaseConfig
from .logging_utils import (
    SecretRedactingFilter,
    get_logger,
    install_redaction,
    uninstall_redaction,
)
from .subprocess_utils import CommandError
from . import fly_deploy, fly_secrets, image_builder


logger = get_logger(__name__)


class ReleaseState(str, Enum):
    START = "START"
    CHECK_KEY = "CHECK_KEY"
    SKIP = "SKIP"
    PROVISION = "PROVISION"
    DEPLOY = "DEPLOY"
    DONE = "DONE"
    FAILED = "FAILED"


STEP_SECRETS = "secrets"
STEP_DEPLOY = "deploy"


@dataclass
class ReleaseResult:
    state: ReleaseState = ReleaseState.START
    trail: List[ReleaseState] = field(default_factory=list)
    exit_code: int = 0
    failed_step: Optional[str] = None
    diagnostic: str = ""
    secret_error: Optional[str] = None

    def enter(self, state: ReleaseState) -> None:
        self.state = state
        self.trail.append(state)

    @property
    def ok(self) -> bool:
        return self.state == ReleaseState.DONE


def _exit_code_of(e: Exception) -> int:
    code = getattr(e, "returncode", None)
    if isinstance(code, int) and code != 0:
        return code
    return 1


def run_release(
    cfg: ReleaseConfig,
    base_dir: str = ".",
    fail_on_secret_error: Optional[bool] = None,
) -> ReleaseResult:
    """
    START → CHECK_KEY → {SKIP | PROVISION} → DEPLOY → {DONE | FAILED}

    secret 설정 실패 시:
      - fail_on_secret_error=False (기존 동작): 경고만 남기고 배포를 계속한다.
      - fail_on_secret_error=True: 배포하지 않고 FAILED 로 끝난다.
    배포 실패는 항상 FAILED 이며 exit_code 로 외부 명령의 종료 코드를 전달한다.
    """
    strict = cfg.fail_on_secret_error if fail_on_secret_error is None else fail_on_secret_error

    result = ReleaseResult()
    result.enter(ReleaseState.START)

    redactor = SecretRedactingFilter()
    install_redaction(redactor)
    try:
        result.enter(ReleaseState.CHECK_KEY)
        try:
            provisioned = fly_secrets.secret_step(cfg, base_dir, on_value=redactor.add)
        except (CommandError, OSError, fly_secrets.SecretFormatError) as e:
            result.enter(ReleaseState.PROVISION)
            message = redactor.redact(str(e))
            result.secret_error = message
            if strict:
                result.enter(ReleaseState.FAILED)
                result.failed_step = STEP_SECRETS
                result.exit_code = _exit_code_of(e)
                result.diagnostic = f"{STEP_SECRETS} 단계 실패: {message}"
                logger.error("Secret 설정 실패로 배포를 중단합니다: %s", message)
                return result
            logger.warning("Secret 설정 실패를 무시하고 배포를 계속합니다: %s", message)
        else:
            result.enter(ReleaseState.PROVISION if provisioned else ReleaseState.SKIP)

        result.enter(ReleaseState.DEPLOY)
        try:
            fly_deploy.deploy(cfg, base_dir)
        except CommandError as e:
            message = redactor.redact(str(e))
            result.enter(ReleaseState.FAILED)
            result.failed_step = STEP_DEPLOY
            result.exit_code = _exit_code_of(e)
            result.diagnostic = f"{STEP_DEPLOY} 단계 실패: {message}"
            logger.error("배포 실패: %s", message)
            return result

        result.enter(ReleaseState.DONE)
        result.exit_code = 0
        logger.info("배포 완료")
        return result
    finally:
        uninstall_redaction(redactor)


def format_result(cfg: ReleaseConfig, result: ReleaseResult) -> str:
    lines: List[str] = []
    lines.append("# Release summary")
    lines.append(f"- app: {cfg.fly_app or '(fly.toml)'}")
    lines.append(f"- states: {' → '.join(s.value for s in result.trail)}")
    lines.append(f"- result: {result.state.value}")
    lines.append(f"- exit code: {result.exit_code}")
    if result.secret_error:
        lines.append(f"- secret error: {result.secret_error}")
    if result.failed_step:
        lines.append(f"- failed step: {result.failed_step}")
    return "\n".join(lines)


def plan_release(cfg: ReleaseConfig, base_dir: str = ".") -> str:
    """
    실제 명령 실행 없이, 어떤 단계가 어떤 명령으로 실행될지 요약한다.
    키 파일은 존재 여부만 보고 내용은 읽지 않는다.
    """
    lines: List[str] = []
    lines.append("# Release plan")
    lines.append(f"- app: {cfg.fly_app or '(fly.toml)'}")
    lines.append(f"- fly config: {cfg.fly_config or '(default)'}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- private_key_file: {cfg.private_key_file}")
    lines.append(f"- secret_name: {cfg.secret_name}")
    lines.append(f"- fail_on_secret_error: {cfg.fail_on_secret_error}")
    lines.append(f"- secret_timeout: {cfg.secret_timeout:g}s")
    lines.append(f"- deploy_timeout: {cfg.deploy_timeout:g}s")
    lines.append("")

    lines.append("## Steps")
    if fly_secrets.key_file_exists(cfg, base_dir):
        lines.append(
            f"- secrets: PROVISION ({shlex.join(fly_secrets.build_import_cmd(cfg))} < {cfg.secret_name}=***)"
        )
    else:
        lines.append(f"- secrets: SKIP ({cfg.private_key_file} 없음)")
    lines.append(f"- deploy: {shlex.join(fly_deploy.build_deploy_cmd(cfg))}")
    lines.append("")

    lines.append("## Image")
    path = image_builder.dockerfile_path(cfg, base_dir)
    if os.path.isfile(path):
        entrypoint = image_builder.read_entrypoint(path)
        lines.append(f"- dockerfile: {cfg.dockerfile}")
        lines.append(f"- entrypoint: {shlex.join(entrypoint) if entrypoint else '(not set)'}")
    else:
        lines.append(f"- dockerfile: {cfg.dockerfile} (없음)")

    return "\n".join(lines)


def check_release(cfg: ReleaseConfig, base_dir: str = ".", show_all: bool = False) -> tuple[str, bool]:
    """
    배포 전 로컬 환경을 점검한다. (원격 상태는 바꾸지 않는다)

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 크리티컬 이슈(flyctl 없음 등)가 있는지 여부
    """
    results: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    if shutil.which(cfg.flyctl_bin):
        results.append(f"flyctl: 사용 가능 ({cfg.flyctl_bin})")
    else:
        msg = f"flyctl: 없음 ({cfg.flyctl_bin} 을(를) PATH 에서 찾을 수 없습니다)"
        results.append(msg)
        critical.append(msg)

    if cfg.fly_config:
        fly_toml = os.path.join(base_dir, cfg.fly_config)
        if not os.path.isfile(fly_toml):
            msg = f"fly config: 없음 ({fly_toml})"
            results.append(msg)
            critical.append(msg)
        else:
            results.append(f"fly config: 존재함 ({fly_toml})")
    elif not cfg.fly_app and not os.path.isfile(os.path.join(base_dir, "fly.toml")):
        msg = "fly config: fly.toml 도 FLY_APP 도 없습니다 (flyctl 이 앱을 결정하지 못할 수 있음)"
        results.append(msg)
        warnings.append(msg)

    if fly_secrets.key_file_exists(cfg, base_dir):
        results.append(f"Secrets: 키 파일 존재함 ({cfg.private_key_file}) → {cfg.secret_name} 설정 예정")
    else:
        # 키 파일이 없는 것은 정상적인 SKIP 조건이다.
        results.append(f"Secrets: 키 파일 없음 ({cfg.private_key_file}) → 설정 건너뜀")

    path = image_builder.dockerfile_path(cfg, base_dir)
    if not os.path.isfile(path):
        msg = f"Dockerfile: 없음 ({path})"
        results.append(msg)
        warnings.append(msg)
    elif not image_builder.read_entrypoint(path):
        msg = f"Dockerfile: ENTRYPOINT/CMD 없음 ({path})"
        results.append(msg)
        warnings.append(msg)
    else:
        results.append(f"Dockerfile: 존재함 ({path})")

    lines: List[str] = []
    lines.append("# Release pre-check")
    lines.append(f"- app: {cfg.fly_app or '(fly.toml)'}")
    lines.append("")

    if show_all:
        lines.append("## Checks")
        for r in results:
            lines.append(f"- {r}")
        lines.append("")

    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. 배포 전 반드시 해결해야 합니다.")
    elif warnings:
        lines.append("- 상태: 경고만 있습니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음 (배포 가능 상태로 보입니다)")

    if show_all or critical:
        lines.append("")
        lines.append("### Critical issues")
        if critical:
            for i in critical:
                lines.append(f"- {i}")
        else:
            lines.append("- (none)")

    if show_all or warnings:
        lines.append("")
        lines.append("### Warnings")
        if warnings:
            for i in warnings:
                lines.append(f"- {i}")
        else:
            lines.append("- (none)")

    if not show_all:
        lines.append("")
        lines.append("자세한 상태를 보려면 `fly-release check -a` 를 실행하세요.")

    return "\n".join(lines), bool(critical)
