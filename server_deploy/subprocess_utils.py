from __future__ import annotations

import queue
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from textwrap import shorten
from typing import List, Mapping, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _failure_message(cmd: Sequence[str], returncode: int, stdout: str, stderr: str) -> str:
    stdout = (stdout or "").strip()
    stderr = (stderr or "").strip()
    detail = ""
    if stderr:
        detail = "\nstderr:\n" + shorten(stderr, width=2000)
    elif stdout:
        detail = "\nstdout:\n" + shorten(stdout, width=2000)
    return f"명령 실행 실패: {' '.join(cmd)} (exit={returncode}){detail}"


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 900.0,
    stream_output: bool = False,
    check: bool = True,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처, 실패 시 요약 포함
    - stream_output=True : stdout/stderr 를 실시간으로 터미널에 흘린다(gcloud run deploy 등)
    - check=False        : 0 이 아닌 종료 코드도 예외 없이 RunResult 로 돌려준다
    """
    logger.info("명령 실행: %s", " ".join(cmd))

    if stream_output:
        # gcloud 는 stderr 로 진행 로그를 내보내므로 STDOUT 으로 합친다.
        try:
            proc = subprocess.Popen(  # noqa: S603
                list(cmd),
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise RuntimeError(
                f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (git/npm/gcloud 가 설치되어 있는지 확인하세요)"
            ) from e

        out_lines: list[str] = []
        deadline = None if timeout is None else time.monotonic() + float(timeout)

        # 출력이 없는 동안에도 deadline 을 확인할 수 있도록 별도 스레드에서 읽는다.
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
                    raise RuntimeError(
                        f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}"
                    )

                get_timeout = 0.1 if deadline is None else min(0.1, max(deadline - now, 0.0))
                try:
                    item = q.get(timeout=get_timeout)
                except queue.Empty:
                    continue

                if item is None:
                    break

                out_lines.append(item)
                sys.stdout.write(item)
                sys.stdout.flush()

            wait_timeout = None
            if deadline is not None:
                wait_timeout = max(deadline - time.monotonic(), 0.0)
            returncode = proc.wait(timeout=wait_timeout)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            raise RuntimeError(
                f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}"
            ) from e
        finally:
            reader_thread.join(timeout=1.0)
            if proc.poll() is None:
                proc.kill()
                proc.wait()
            if proc.stdout is not None and not reader_thread.is_alive():
                proc.stdout.close()

        combined = "".join(out_lines)
        if returncode != 0 and check:
            raise RuntimeError(_failure_message(cmd, returncode, combined, ""))
        return RunResult(returncode=returncode, stdout=combined, stderr="")

    # capture 모드 (조용히 돌리고 실패 시 요약)
    try:
        result = subprocess.run(
            list(cmd),
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise RuntimeError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (git/npm/gcloud 가 설치되어 있는지 확인하세요)"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}"
        ) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))

    if result.returncode != 0 and check:
        raise RuntimeError(
            _failure_message(cmd, result.returncode, result.stdout, result.stderr)
        )
    return RunResult(
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )


@dataclass
class CommandRunner:
    """
    파이프라인 단계들이 외부 명령을 실행할 때 사용하는 실행기.

    dry_run=True 이면 명령을 실제로 실행하지 않고 기록만 한 뒤
    성공(exit=0) 결과를 돌려준다. 실행(또는 기록)된 명령은 history 에 남는다.
    """

    cwd: str | None = None
    dry_run: bool = False
    history: List[List[str]] = field(default_factory=list)

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        stream_output: bool = False,
        timeout: float | None = 900.0,
    ) -> RunResult:
        self.history.append(list(cmd))
        if self.dry_run:
            logger.info("[dry-run] %s", " ".join(cmd))
            return RunResult(returncode=0, stdout="", stderr="")
        return run_command(
            cmd,
            cwd=self.cwd,
            timeout=timeout,
            stream_output=stream_output,
            check=check,
        )
