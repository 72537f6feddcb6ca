"""
gitignore
---------

배포하는 동안 .gitignore 의 민감 항목(.npmrc, 서비스 키)을 주석 처리해
gcloud run deploy --source 업로드에 포함되도록 하고, 배포 후 원래대로 되돌린다.
"""

from __future__ import annotations

import os
from typing import Iterable, List, Optional, Tuple

from .logging_utils import get_logger


logger = get_logger(__name__)


GITIGNORE = ".gitignore"


def _clean(entries: Iterable[str]) -> List[str]:
    # 빈 항목은 모든 줄과 매칭되므로 제외한다.
    return [e.strip() for e in entries if e and e.strip()]


def comment_out_entries(text: str, entries: Iterable[str]) -> Tuple[str, List[int]]:
    """
    entries 중 하나로 시작하는 줄 앞에 '#' 을 붙인다.

    이미 주석인 줄은 건드리지 않는다.
    (새 텍스트, 변경된 줄 인덱스 목록)을 반환한다.
    """
    targets = _clean(entries)
    lines = text.splitlines(keepends=True)
    changed: List[int] = []
    for idx, line in enumerate(lines):
        if any(line.startswith(t) for t in targets):
            lines[idx] = "#" + line
            changed.append(idx)
    return "".join(lines), changed


def uncomment_entries(
    text: str,
    entries: Iterable[str],
    only_lines: Optional[Iterable[int]] = None,
) -> str:
    """
    '#<entry>' 로 시작하는 줄의 맨 앞 '#' 을 제거한다.

    only_lines 가 주어지면 해당 인덱스의 줄만 대상으로 한다.
    """
    targets = _clean(entries)
    allowed = set(only_lines) if only_lines is not None else None
    lines = text.splitlines(keepends=True)
    for idx, line in enumerate(lines):
        if allowed is not None and idx not in allowed:
            continue
        if any(line.startswith("#" + t) for t in targets):
            lines[idx] = line[1:]
    return "".join(lines)


def _path(base_dir: str) -> str:
    path = os.path.join(base_dir, GITIGNORE)
    if not os.path.isfile(path):
        raise FileNotFoundError(f".gitignore 파일을 찾을 수 없습니다: {path}")
    return path


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _write(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def comment_out_file(base_dir: str, entries: Iterable[str], *, dry_run: bool = False) -> List[int]:
    path = _path(base_dir)
    updated, changed = comment_out_entries(_read(path), entries)
    if changed and not dry_run:
        _write(path, updated)
    logger.info(".gitignore 주석 처리: %d 줄", len(changed))
    return changed


def uncomment_file(
    base_dir: str,
    entries: Iterable[str],
    only_lines: Optional[Iterable[int]] = None,
    *,
    dry_run: bool = False,
) -> None:
    path = _path(base_dir)
    original = _read(path)
    updated = uncomment_entries(original, entries, only_lines)
    if updated != original and not dry_run:
        _write(path, updated)
    logger.info(".gitignore 주석 해제 완료")
