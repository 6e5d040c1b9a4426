# credbroker/auth/cache/cache.py
"""
SSO 토큰 데이터 구조와 AWS CLI 호환 평문 캐시

- SSOToken: 보안 저장소에 저장되는 SSO 토큰
- PlaintextTokenCache: ~/.aws/sso/cache/{hash}.json 읽기/쓰기

설계 원칙:
- 토큰의 정본은 보안 저장소 (SSOTokenStorage)
- 평문 캐시는 AWS CLI와의 상호 운용(가져오기/내보내기)에만 사용
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from ..types.types import format_timestamp, parse_timestamp, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# SSO Token
# =============================================================================


@dataclass(frozen=True)
class SSOToken:
    """SSO 액세스 토큰

    refresh_token과 region이 있으면 만료 후에도 갱신할 수 있습니다.
    갱신 시 같은 키에 새 객체가 저장됩니다.

    Attributes:
        access_token: SSO 액세스 토큰
        expiry: 만료 시각 (UTC)
        client_id: OIDC 클라이언트 ID
        client_secret: OIDC 클라이언트 시크릿
        registration_expires_at: 클라이언트 등록 만료 시각
        refresh_token: 갱신 토큰
        region: SSO 리전
    """

    access_token: str
    expiry: datetime
    client_id: str | None = None
    client_secret: str | None = None
    registration_expires_at: datetime | None = None
    refresh_token: str | None = None
    region: str | None = None

    def is_valid(self, now: datetime | None = None) -> bool:
        """만료 시각이 현재보다 엄격하게 이후이면 유효"""
        return (now or utcnow()) < self.expiry

    @property
    def can_refresh(self) -> bool:
        """갱신 가능 여부 (refresh_token과 region 모두 필요)"""
        return bool(self.refresh_token) and bool(self.region)

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (보안 저장소 저장용)"""
        data: dict[str, Any] = {
            "AccessToken": self.access_token,
            "Expiry": format_timestamp(self.expiry),
        }
        if self.client_id:
            data["clientId"] = self.client_id
        if self.client_secret:
            data["clientSecret"] = self.client_secret
        if self.registration_expires_at:
            data["registrationExpiresAt"] = format_timestamp(self.registration_expires_at)
        if self.region:
            data["region"] = self.region
        if self.refresh_token:
            data["refreshToken"] = self.refresh_token
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SSOToken:
        """딕셔너리에서 생성 (보안 저장소 로드용)

        Raises:
            KeyError: 필수 필드 누락
            ValueError: 시각 형식 오류
        """
        registration = data.get("registrationExpiresAt")
        return cls(
            access_token=data["AccessToken"],
            expiry=parse_timestamp(data["Expiry"]),
            client_id=data.get("clientId"),
            client_secret=data.get("clientSecret"),
            registration_expires_at=parse_timestamp(registration) if registration else None,
            refresh_token=data.get("refreshToken"),
            region=data.get("region"),
        )

    def to_cli_cache(self, start_url: str) -> dict[str, Any]:
        """AWS CLI 캐시 형식으로 변환"""
        data: dict[str, Any] = {
            "startUrl": start_url,
            "accessToken": self.access_token,
            "expiresAt": format_timestamp(self.expiry),
        }
        if self.region:
            data["region"] = self.region
        if self.client_id:
            data["clientId"] = self.client_id
        if self.client_secret:
            data["clientSecret"] = self.client_secret
        if self.registration_expires_at:
            data["registrationExpiresAt"] = format_timestamp(self.registration_expires_at)
        if self.refresh_token:
            data["refreshToken"] = self.refresh_token
        return data

    @classmethod
    def from_cli_cache(cls, data: dict[str, Any]) -> SSOToken:
        """AWS CLI 캐시 형식에서 생성"""
        registration = data.get("registrationExpiresAt")
        return cls(
            access_token=data["accessToken"],
            expiry=parse_timestamp(data["expiresAt"]),
            client_id=data.get("clientId"),
            client_secret=data.get("clientSecret"),
            registration_expires_at=parse_timestamp(registration) if registration else None,
            refresh_token=data.get("refreshToken"),
            region=data.get("region"),
        )


# =============================================================================
# Plaintext Token Cache (AWS CLI)
# =============================================================================


class PlaintextTokenCache:
    """AWS CLI SSO 토큰 캐시 파일 관리자

    캐시 파일 위치: ~/.aws/sso/cache/{sha1(session_name or start_url)}.json
    """

    def __init__(
        self,
        start_url: str,
        session_name: str | None = None,
        cache_dir: str | Path | None = None,
    ):
        """PlaintextTokenCache 초기화

        Args:
            start_url: SSO 시작 URL
            session_name: sso-session 이름 (있으면 해시 입력으로 사용)
            cache_dir: 캐시 디렉토리 (기본: ~/.aws/sso/cache)
        """
        self.start_url = start_url
        self.session_name = session_name
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / ".aws" / "sso" / "cache"

    @property
    def cache_key(self) -> str:
        """AWS CLI와 동일한 방식의 해시 키"""
        input_str = self.session_name if self.session_name else self.start_url
        return hashlib.sha1(input_str.encode("utf-8")).hexdigest()

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / f"{self.cache_key}.json"

    def load(self) -> SSOToken | None:
        """토큰 캐시를 파일에서 로드

        Returns:
            SSOToken 또는 None (파일이 없거나 파싱 실패 시)
        """
        if not self.cache_path.exists():
            return None
        try:
            with open(self.cache_path, encoding="utf-8") as f:
                data = json.load(f)
            return SSOToken.from_cli_cache(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("평문 SSO 캐시 읽기 실패 (%s): %s", self.cache_path, e)
            return None

    def save(self, token: SSOToken) -> None:
        """토큰을 AWS CLI 캐시 파일로 저장

        Raises:
            OSError: 파일 저장 실패 시
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.cache_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(token.to_cli_cache(self.start_url), f, indent=2)

    def delete(self) -> bool:
        """캐시 파일 삭제

        Returns:
            True if 파일이 있었고 삭제됨
        """
        try:
            self.cache_path.unlink()
            return True
        except FileNotFoundError:
            return False

    def exists(self) -> bool:
        return self.cache_path.exists()
