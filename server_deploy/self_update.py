"""
self_update
-----------

프로젝트에 포함된 단일 파일 배포 스크립트(deploy_server.sh)를
원격 저장소의 최신 버전으로 교체하는 모듈.

비교하는 버전은 대상 스크립트 자신의 VERSION="x" 마커이다.
다운로드한 내용은 메모리에서 검증(HTTP 상태, 버전 마커, 공개된 경우 sha256)한 뒤
대상 파일과 같은 디렉토리의 임시 파일에 쓰고 os.replace 로 원자적으로 교체한다.
사용자가 업데이트를 거절하면 디스크에는 아무것도 쓰지 않는다.
"""

from __future__ import annotations

import enum
import hashlib
import os
import re
import stat
import tempfile
from dataclasses import dataclass
from typing import Callable, Optional

import requests
from requests.exceptions import RequestException

from .logging_utils import get_logger


logger = get_logger(__name__)


SCRIPT_NAME = "deploy_server.sh"
DEFAULT_UPDATE_URL = (
    "https://raw.githubusercontent.com/vindicoics/deployment_scripts/main/backend/" + SCRIPT_NAME
)
UPDATE_URL_ENV = "DEPLOY_UPDATE_URL"
UPDATE_TARGET_ENV = "DEPLOY_UPDATE_TARGET"
DEFAULT_TIMEOUT = 10.0

_VERSION_RE = re.compile(
    r"""^\s*(?:__version__|VERSION)\s*=\s*["']([^"']+)["']""",
    re.MULTILINE,
)


class UpdateOutcome(str, enum.Enum):
    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass(frozen=True)
class UpdateResult:
    outcome: UpdateOutcome
    current_version: str
    remote_version: Optional[str] = None
    message: str = ""


class UpdateVerificationError(RuntimeError):
    pass


def update_url() -> str:
    return os.getenv(UPDATE_URL_ENV) or DEFAULT_UPDATE_URL


def parse_version(content: str) -> Optional[str]:
    m = _VERSION_RE.search(content)
    return m.group(1) if m else None


def resolve_target(base_dir: str = ".", target: Optional[str] = None) -> str:
    """
    교체 대상 스크립트 경로. 명시값 > DEPLOY_UPDATE_TARGET > <base_dir>/deploy_server.sh
    """
    path = target or os.getenv(UPDATE_TARGET_ENV) or SCRIPT_NAME
    if not os.path.isabs(path):
        path = os.path.join(base_dir, path)
    return os.path.abspath(path)


def read_local_version(target: str) -> Optional[str]:
    """
    대상 스크립트의 버전 마커를 읽는다. 파일이 없거나 마커가 없으면 None.
    """
    if not os.path.isfile(target):
        return None
    with open(target, "r", encoding="utf-8", errors="replace") as f:
        return parse_version(f.read())


def _fetch(session: requests.Session, url: str, timeout: float) -> Optional[bytes]:
    """
    url 을 GET 한다. 404 는 None, 그 외 실패는 RequestException.
    """
    response = session.get(url, timeout=timeout)
    if response.status_code == 404:
        return None
    response.raise_for_status()
    return response.content


def download_verified(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> tuple[bytes, str]:
    """
    원격 스크립트를 내려받아 검증한 뒤 (내용, 원격 버전) 을 반환한다.

    검증 실패 시 UpdateVerificationError, 네트워크 실패 시 RequestException.
    """
    session = session or requests.Session()
    body = _fetch(session, url, timeout)
    if not body:
        raise UpdateVerificationError(f"원격 스크립트를 찾을 수 없거나 비어 있습니다: {url}")

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise UpdateVerificationError("원격 스크립트가 UTF-8 텍스트가 아닙니다.") from e

    remote_version = parse_version(text)
    if not remote_version:
        raise UpdateVerificationError("원격 스크립트에서 버전 정보를 찾을 수 없습니다.")

    checksum = _fetch(session, url + ".sha256", timeout)
    if checksum is None:
        logger.warning("sha256 파일이 공개되어 있지 않아 체크섬 검증을 건너뜁니다: %s.sha256", url)
    else:
        expected = checksum.decode("utf-8", errors="replace").split()[0].lower() if checksum.strip() else ""
        actual = hashlib.sha256(body).hexdigest()
        if expected != actual:
            raise UpdateVerificationError(
                f"체크섬 불일치: expected={expected or '(empty)'} actual={actual}"
            )

    return body, remote_version


def replace_file_atomically(target: str, content: bytes) -> None:
    """
    target 과 같은 디렉토리에 임시 파일을 만들고 os.replace 로 교체한다.
    기존 파일 권한을 유지하고 실행 권한을 추가한다.
    """
    directory = os.path.dirname(os.path.abspath(target))
    mode = stat.S_IMODE(os.stat(target).st_mode) if os.path.exists(target) else 0o644
    mode |= stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

    fd, tmp_path = tempfile.mkstemp(prefix=".update-", dir=directory)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, target)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def check_for_updates(
    target: str,
    confirm: Callable[[str], bool],
    *,
    url: Optional[str] = None,
    current_version: Optional[str] = None,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> UpdateResult:
    """
    원격 버전을 확인하고, 다르면 confirm(remote_version) 으로 사용자에게 묻는다.

    current_version 을 주지 않으면 target 파일의 버전 마커를 사용한다.
    target 이 아직 없으면 새로 설치할지 묻는다.
    모든 실패는 UpdateOutcome.FAILED 로 보고되며 예외를 던지지 않는다.
    """
    url = url or update_url()
    if current_version is None:
        current_version = read_local_version(target) or ""
    logger.info("업데이트 확인: %s (target=%s, local=%s)", url, target, current_version or "(none)")

    try:
        content, remote_version = download_verified(url, session=session, timeout=timeout)
    except (RequestException, UpdateVerificationError) as e:
        logger.warning("업데이트 확인 실패: %s", e)
        return UpdateResult(UpdateOutcome.FAILED, current_version, message=str(e))

    if remote_version == current_version:
        return UpdateResult(UpdateOutcome.UP_TO_DATE, current_version, remote_version)

    if not confirm(remote_version):
        return UpdateResult(UpdateOutcome.DECLINED, current_version, remote_version)

    try:
        replace_file_atomically(target, content)
    except OSError as e:
        logger.warning("스크립트 교체 실패: %s", e)
        return UpdateResult(UpdateOutcome.FAILED, current_version, remote_version, message=str(e))

    logger.info("스크립트 업데이트 완료: %s -> %s (%s)", current_version, remote_version, target)
    return UpdateResult(UpdateOutcome.UPDATED, current_version, remote_version)
