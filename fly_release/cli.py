import sys

import click

from .config import load_env_files, ReleaseConfig
from .logging_utils import setup_logging, get_logger
from .orchestrator import check_release, format_result, plan_release, run_release
from . import image_builder


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리). private_key, Dockerfile, fly.toml 을 여기서 찾습니다.",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """Fly.io 배포(secret 설정 + remote-only deploy)용 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context) -> ReleaseConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    cfg = ReleaseConfig.from_env()
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _load_or_exit(ctx: click.Context) -> ReleaseConfig:
    try:
        return _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)


@main.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """어떤 단계가 어떤 명령으로 실행될지 출력 (실제 실행 없음)"""
    cfg = _load_or_exit(ctx)

    try:
        report = plan_release(cfg, base_dir=ctx.obj["chdir"])
    except Exception as e:  # noqa: BLE001
        logger.exception("계획 작성 중 오류 발생")
        click.echo(f"[ERROR] 계획 작성 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report)


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 체크 항목의 상세 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, show_all: bool) -> None:
    """
    배포 전에 flyctl/Dockerfile/키 파일 상태를 점검한다.
    """
    cfg = _load_or_exit(ctx)

    try:
        report, has_issues = check_release(cfg, base_dir=ctx.obj["chdir"], show_all=show_all)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        click.echo(f"[ERROR] 체크 실패: {e}", err=True)
        sys.exit(1)
    click.echo(report)

    # 치명적인 이슈가 있으면 exit 1 로 종료하여 CI 등에서 감지 가능하게 한다.
    if has_issues:
        sys.exit(1)


@main.command()
@click.pass_context
def build(ctx: click.Context) -> None:
    """로컬에서 컨테이너 이미지를 빌드한다 (docker build)"""
    cfg = _load_or_exit(ctx)

    try:
        tag = image_builder.build_image(cfg, base_dir=ctx.obj["chdir"])
    except Exception as e:  # noqa: BLE001
        logger.exception("이미지 빌드 중 오류 발생")
        click.echo(f"[ERROR] build 단계 실패: {e}", err=True)
        sys.exit(getattr(e, "returncode", None) or 1)

    click.echo(tag)


@main.command(name="release")
@click.option(
    "--strict-secrets/--ignore-secret-errors",
    "strict_secrets",
    default=None,
    help="secret 설정 실패 시 배포를 중단할지 여부. 기본값은 FAIL_ON_SECRET_ERROR (기본 false: 무시하고 계속).",
)
@click.pass_context
def release(ctx: click.Context, strict_secrets) -> None:  # noqa: ANN001
    """private_key 가 있으면 secret 으로 설정한 뒤 flyctl deploy --remote-only 실행"""
    cfg = _load_or_exit(ctx)

    try:
        result = run_release(cfg, base_dir=ctx.obj["chdir"], fail_on_secret_error=strict_secrets)
    except Exception as e:  # noqa: BLE001
        logger.exception("배포 중 오류 발생")
        click.echo(f"[ERROR] 배포 실패: {e}", err=True)
        sys.exit(1)

    click.echo(format_result(cfg, result))

    if not result.ok:
        click.echo(f"[ERROR] {result.diagnostic}", err=True)
    sys.exit(result.exit_code)


main.add_command(release, name="deploy")
