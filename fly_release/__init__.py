"""
fly_release
-----------

Fly.io 용 배포 CLI 패키지.
로컬 private_key 가 있으면 secret 으로 등록하고,
이어서 원격 빌드(remote-only) 배포를 트리거한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
