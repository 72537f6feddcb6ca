"""
server_deploy
-------------

Cloud Run 서버 배포 CLI 패키지.
package.json 버전 올리기, git push, Dockerfile 의 --env 플래그 교체,
.gitignore 토글, Secret Manager 라벨 기반 secret 주입, gcloud run deploy 를
하나의 고정된 파이프라인으로 순서대로 실행한다.

같은 저장소에서 두 개의 배포를 동시에 실행하는 것은 지원하지 않는다.
(Dockerfile/.gitignore/git 상태를 잠금 없이 직접 수정한다)
"""

__version__ = "2.0.0"

__all__ = [
    "config",
    "pipeline",
]
