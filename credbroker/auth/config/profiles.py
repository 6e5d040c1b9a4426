# credbroker/auth/config/profiles.py
"""
Profile Resolver

ParsedConfig의 프로파일을 source_profile 링크에 따라 부모 체인이 있는 Profile로 해석합니다.

- 루트(source_profile 없음): kind는 SSO(sso_account_id 있음) / OTHER(외부 헬퍼) / IAM
- 자식: 부모의 kind를 상속, parents = 부모.parents + [부모]
- 순환 참조는 "해석 중" 표시로 감지하여 CyclicProfileError
- 해석 결과는 이름별로 메모이즈하며 네트워크 I/O는 없습니다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from credbroker.settings import DEFAULT_REGION, env_default_region

from ..types import (
    ConfigurationError,
    CyclicProfileError,
    ProfileKind,
    ProfileNotFoundError,
)
from .loader import Loader, ParsedConfig, ProfileConfig

logger = logging.getLogger(__name__)

# 루트를 외부 헬퍼 프로파일로 분류하는 키 접두사
FEDERATION_KEY_PREFIXES = ("azure_", "google_config.")

BROKER_BINARY_NAME = "credbroker"


def is_broker_credential_process(value: str | None) -> bool:
    """credential_process가 credbroker 자신을 가리키는지 확인"""
    return bool(value) and value.strip().startswith(BROKER_BINARY_NAME)


def classify_root(config: ProfileConfig) -> ProfileKind:
    """루트 프로파일의 종류 판정"""
    if config.sso_account_id:
        return ProfileKind.SSO
    if config.credential_process and not is_broker_credential_process(config.credential_process):
        return ProfileKind.OTHER
    if any(key.startswith(FEDERATION_KEY_PREFIXES) for key in config.raw):
        return ProfileKind.OTHER
    return ProfileKind.IAM


# =============================================================================
# Profile
# =============================================================================


@dataclass(frozen=True)
class Profile:
    """해석된 프로파일 (해석 후 불변)

    Attributes:
        name: 프로파일 이름
        config: 파싱된 설정
        kind: 루트로부터 유도된 종류
        parents: 루트부터 직계 부모까지 (루트면 빈 튜플)
    """

    name: str
    config: ProfileConfig = field(compare=False)
    kind: ProfileKind
    parents: tuple[Profile, ...] = ()

    @property
    def raw(self) -> dict[str, str]:
        return self.config.raw

    @property
    def file(self) -> Path | None:
        return self.config.file

    @property
    def source_profile_name(self) -> str | None:
        return self.config.source_profile

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def root(self) -> Profile:
        return self.parents[0] if self.parents else self

    @property
    def depth(self) -> int:
        return len(self.parents)

    def chain(self) -> list[Profile]:
        """루트부터 자신까지"""
        return [*self.parents, self]

    def region(self, default: str | None = None) -> str:
        """리전 결정

        자신의 region → 부모 방향으로 올라가며 region → 루트의 sso_region
        → default → AWS_REGION/AWS_DEFAULT_REGION → us-east-1
        """
        for profile in reversed(self.chain()):
            if profile.config.region:
                return profile.config.region
        if self.root.config.sso_region:
            return self.root.config.sso_region
        return default or env_default_region() or DEFAULT_REGION

    def __repr__(self) -> str:
        return f"Profile(name={self.name!r}, kind={self.kind}, parents={[p.name for p in self.parents]})"


# =============================================================================
# Profiles (Resolver)
# =============================================================================


class Profiles:
    """프로파일 카탈로그와 해석 결과

    독립된 프로파일에 대해 반복 호출해도 안전하며, 이미 해석된 노드는 재사용합니다.
    """

    def __init__(self, parsed: ParsedConfig):
        self._configs = parsed.profiles
        self._resolved: dict[str, Profile] = {}
        self.parsed = parsed

    @property
    def names(self) -> list[str]:
        return sorted(self._configs)

    def has(self, name: str) -> bool:
        return name in self._configs

    def config(self, name: str) -> ProfileConfig:
        try:
            return self._configs[name]
        except KeyError:
            raise ProfileNotFoundError(name) from None

    def get(self, name: str) -> Profile:
        """해석된 프로파일 반환

        Raises:
            ProfileNotFoundError: 프로파일 없음
            CyclicProfileError: source_profile 순환
            ConfigurationError: 존재하지 않는 source_profile 참조
        """
        if name not in self._resolved:
            self._resolve(name)
        return self._resolved[name]

    def resolve_all(self) -> dict[str, Profile]:
        """모든 프로파일 해석"""
        for name in self._configs:
            self.get(name)
        return dict(self._resolved)

    def _resolve(self, name: str) -> None:
        # 1) 해석된 노드나 루트에 닿을 때까지 source_profile을 따라 경로 수집
        path: list[str] = []
        visiting: set[str] = set()
        current: str | None = name

        while current is not None and current not in self._resolved:
            if current in visiting:
                cycle = path[path.index(current) :] + [current]
                raise CyclicProfileError(cycle)

            config = self._configs.get(current)
            if config is None:
                if not path:
                    raise ProfileNotFoundError(current)
                raise ConfigurationError(
                    f"프로파일 '{path[-1]}'의 source_profile '{current}'을 찾을 수 없습니다. "
                    "원본 프로파일 문제를 먼저 해결하세요",
                    config_key="source_profile",
                )

            visiting.add(current)
            path.append(current)
            current = config.source_profile

        # 2) 루트 쪽부터 Profile 생성
        for profile_name in reversed(path):
            config = self._configs[profile_name]
            if config.source_profile:
                source = self._resolved[config.source_profile]
                profile = Profile(
                    name=profile_name,
                    config=config,
                    kind=source.kind,
                    parents=(*source.parents, source),
                )
            else:
                profile = Profile(name=profile_name, config=config, kind=classify_root(config))
            self._resolved[profile_name] = profile
            logger.debug(
                "프로파일 해석: %s (kind=%s, parents=%s)",
                profile_name,
                profile.kind,
                [p.name for p in profile.parents],
            )


def load_profiles(
    config_path: str | Path | None = None,
    credentials_path: str | Path | None = None,
) -> Profiles:
    """설정 파일을 읽어 Profiles 생성"""
    return Profiles(Loader(config_path, credentials_path).load())
