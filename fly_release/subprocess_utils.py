from __future__ import annotations

import queue
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Mapping, Optional, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    외부 명령 실패.

    returncode 는 프로세스 종료 코드이며, 타임아웃이나 실행 파일을 찾지 못한 경우 None 이다.
    메시지에는 명령 인자만 포함되고 stdin 으로 넘긴 값은 절대 포함되지 않는다.
    """

    def __init__(self, message: str, *, cmd: Sequence[str], returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode


def _not_found(cmd: Sequence[str]) -> CommandError:
    return CommandError(
        f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (flyctl/docker 가 설치되어 있는지 확인하세요)",
        cmd=cmd,
    )


def _not_runnable(cmd: Sequence[str], e: OSError) -> CommandError:
    # 실행 권한 없음, 잘못된 작업 디렉토리, 실행 형식 오류 등
    return CommandError(
        f"명령을 실행할 수 없습니다: {cmd[0]} ({e.strerror or e})",
        cmd=cmd,
    )


def _timed_out(cmd: Sequence[str], timeout: float | None) -> CommandError:
    return CommandError(
        f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
        cmd=cmd,
    )


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 900.0,
    stream_output: bool = False,
    input_text: str | None = None,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처, 실패 시 요약 포함. input_text 는 stdin 으로 전달된다.
    - stream_output=True : stdout/stderr 를 실시간으로 터미널에 흘린다. stdin 은 닫혀 있다(비대화형).

    비정상 종료/타임아웃/명령 없음은 모두 CommandError 로 올린다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    if stream_output:
        if input_text is not None:
            raise ValueError("stream_output 모드에서는 input_text 를 사용할 수 없습니다.")
        return _run_streaming(cmd, cwd=cwd, env=env, timeout=timeout)

    try:
        result = subprocess.run(
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            input=input_text,
            stdin=None if input_text is not None else subprocess.DEVNULL,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e
    except OSError as e:
        raise _not_runnable(cmd, e) from e
    except subprocess.TimeoutExpired as e:
        raise _timed_out(cmd, timeout) from e
    except subprocess.CalledProcessError as e:
        stdout = (e.stdout or "").strip()
        stderr = (e.stderr or "").strip()
        detail = ""
        if stderr:
            detail = "\nstderr:\n" + shorten(stderr, width=2000)
        elif stdout:
            detail = "\nstdout:\n" + shorten(stdout, width=2000)
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){detail}",
            cmd=cmd,
            returncode=e.returncode,
        ) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")


def _run_streaming(
    cmd: Sequence[str],
    *,
    cwd: str | None,
    env: Mapping[str, str] | None,
    timeout: float | None,
) -> RunResult:
    # flyctl/docker 는 stderr 로도 진행 로그를 자주 내보내므로 STDOUT 으로 합친다.
    try:
        proc = subprocess.Popen(  # noqa: S603
            list(cmd),
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError as e:
        raise _not_found(cmd) from e
    except OSError as e:
        raise _not_runnable(cmd, e) from e

    out_lines: list[str] = []
    started = time.monotonic()
    deadline = None if timeout is None else started + float(timeout)

    q: queue.Queue[str | None] = queue.Queue()

    def _reader() -> None:
        try:
            assert proc.stdout is not None
            for line in proc.stdout:
                q.put(line)
        finally:
            q.put(None)

    reader_thread = threading.Thread(target=_reader, daemon=True)
    reader_thread.start()

    try:
        while True:
            now = time.monotonic()
            if deadline is not None and now >= deadline:
                proc.kill()
                raise _timed_out(cmd, timeout)

            remaining = None if deadline is None else max(deadline - now, 0.0)
            get_timeout = 0.1 if remaining is None else min(0.1, remaining)

            try:
                item = q.get(timeout=get_timeout)
            except queue.Empty:
                if proc.poll() is not None:
                    # reader 종료까지 잠깐 더 기다림
                    try:
                        item = q.get(timeout=0.2)
                    except queue.Empty:
                        break
                    if item is None:
                        break
                    out_lines.append(item)
                    sys.stdout.write(item)
                    sys.stdout.flush()
                continue

            if item is None:
                break

            out_lines.append(item)
            sys.stdout.write(item)
            sys.stdout.flush()

        reader_thread.join(timeout=1.0)

        wait_timeout = None
        if deadline is not None:
            wait_timeout = max(deadline - time.monotonic(), 0.0)
        returncode = proc.wait(timeout=wait_timeout)
    except subprocess.TimeoutExpired as e:
        proc.kill()
        raise _timed_out(cmd, timeout) from e
    finally:
        if proc.poll() is None:
            proc.kill()
        reader_thread.join(timeout=1.0)
        if proc.stdout is not None:
            proc.stdout.close()

    if returncode != 0:
        combined = "".join(out_lines).strip()
        detail = "\nstdout/stderr:\n" + shorten(combined, width=2000) if combined else ""
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={returncode}){detail}",
            cmd=cmd,
            returncode=returncode,
        )

    return RunResult(returncode=returncode, stdout="".join(out_lines), stderr="")
