# credbroker/auth/sso/login.py
"""
SSO 토큰 확보 절차

1. 보안 저장소의 토큰 (만료 시 refresh_token으로 갱신)
2. AWS CLI 평문 캐시의 유효한 토큰 (보안 저장소로 가져오기)
3. credential_process 실행 중이고 자동 로그인이 꺼져 있으면 LoginRequiredError
4. 디바이스 인증 로그인 후 저장
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from rich.console import Console

from credbroker.settings import Settings

from ..cache.cache import PlaintextTokenCache, SSOToken
from ..cache.storage import SSOTokenStorage
from ..context import Context
from ..types import LoginRequiredError
from .device import DeviceAuthorizationClient

if TYPE_CHECKING:
    from ..session import ClientFactory

logger = logging.getLogger(__name__)


def token_key(start_url: str, session_name: str | None = None) -> str:
    """보안 저장소의 SSO 토큰 키 (start URL + sso-session 이름)"""
    return start_url + (session_name or "")


class SSOLoginManager:
    """SSO 토큰 조회/로그인 관리자

    Args:
        tokens: SSO 토큰 저장소
        settings: 사용자 설정 (자동 로그인, 평문 캐시 내보내기, 클라이언트 이름)
        client_factory: boto3 클라이언트 생성 함수
        open_url: 검증 URL을 여는 함수
        console: 사용자 안내 출력용 Console
        plaintext_cache_dir: AWS CLI SSO 캐시 디렉토리 (기본: ~/.aws/sso/cache)
    """

    def __init__(
        self,
        tokens: SSOTokenStorage,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
        open_url: Callable[[str], Any] | None = None,
        console: Console | None = None,
        plaintext_cache_dir: str | Path | None = None,
    ):
        self.tokens = tokens
        self.settings = settings or Settings()
        self._client_factory = client_factory
        self._open_url = open_url
        self._console = console
        self._plaintext_cache_dir = plaintext_cache_dir

    def _plaintext(self, start_url: str, session_name: str | None) -> PlaintextTokenCache:
        return PlaintextTokenCache(start_url, session_name, self._plaintext_cache_dir)

    def get_token(
        self,
        start_url: str,
        region: str,
        session_name: str | None = None,
        scopes: list[str] | None = None,
        credential_process: bool = False,
        ctx: Context | None = None,
    ) -> SSOToken:
        """유효한 SSO 토큰 확보

        Raises:
            LoginRequiredError: 비대화형 credential_process 실행에서 로그인이 필요한 경우
            AuthorizationTimeoutError / ProviderError: 디바이스 로그인 실패
        """
        key = token_key(start_url, session_name)

        lookup = self.tokens.get_valid_token(key, ctx)
        if lookup.token is not None:
            logger.debug("SSO 토큰 캐시 히트: %s (갱신=%s)", key, lookup.refreshed)
            return lookup.token

        plaintext = self._plaintext(start_url, session_name).load()
        if plaintext is not None and plaintext.is_valid():
            logger.debug("AWS CLI 평문 캐시에서 SSO 토큰 가져오기: %s", key)
            self.tokens.store_token(key, plaintext)
            return plaintext

        if credential_process and not self.settings.credential_process_auto_login:
            raise LoginRequiredError(
                f"{start_url} 에 대한 유효한 SSO 토큰이 없습니다",
                command_hint=f"credbroker sso login --sso-start-url {start_url} --sso-region {region}",
            )

        return self.login(start_url, region, session_name, scopes, ctx)

    def login(
        self,
        start_url: str,
        region: str,
        session_name: str | None = None,
        scopes: list[str] | None = None,
        ctx: Context | None = None,
    ) -> SSOToken:
        """디바이스 인증으로 새 토큰을 받아 저장"""
        client = DeviceAuthorizationClient(
            region=region,
            client_name=self.settings.sso_client_name,
            scopes=scopes,
            open_url=self._open_url,
            client_factory=self._client_factory,
            console=self._console,
        )
        token = client.login(start_url, ctx)
        self.tokens.store_token(token_key(start_url, session_name), token)

        if self.settings.export_sso_token:
            try:
                self._plaintext(start_url, session_name).save(token)
            except OSError as e:
                logger.debug("평문 SSO 캐시 내보내기 실패: %s", e)
        return token

    def logout(self, start_url: str, session_name: str | None = None) -> None:
        """저장된 SSO 토큰 삭제"""
        self.tokens.clear_token(token_key(start_url, session_name))
