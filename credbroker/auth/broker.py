# credbroker/auth/broker.py
"""
credbroker/auth/broker.py - 자격 증명 브로커

"프로파일 X의 자격 증명"을 요청받아 다음 순서로 처리합니다.

    1. Profile Resolver로 X와 부모 체인 해석
    2. 세션 자격 증명 캐시 확인 (force_refresh나 콘솔 요청이 아니면)
    3. 레지스트리에서 루트 프로파일의 전략 선택 → 루트 자격 증명 획득
    4. RoleChainAssumer로 대상 프로파일까지 AssumeRole 홉 수행
    5. 만료되는 터미널용 자격 증명은 세션 캐시에 저장 (실패해도 결과는 반환)

레지스트리, 설정, 저장소는 모두 브로커 인스턴스가 소유합니다.

사용 예시:
    broker = CredentialBroker.from_environment()
    result = broker.assume("dev", AssumeOptions())
    os.environ.update(result.credentials.to_env(result.region))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

from rich.console import Console

from credbroker.settings import Settings, load_settings

from .assume.chain import DEFAULT_DURATION, RoleChainAssumer
from .cache.cache import SSOToken
from .cache.storage import (
    IAM_CREDENTIALS_NAMESPACE,
    SESSION_CREDENTIALS_NAMESPACE,
    SSO_TOKENS_NAMESPACE,
    IAMCredentialStorage,
    SecureStorage,
    SessionCredentialStorage,
    SSOTokenStorage,
)
from .config.profiles import Profile, Profiles, load_profiles
from .context import Context
from .provider.base import AssumerRegistry
from .provider.defaults import create_default_registry
from .session import ClientFactory, create_client
from .sso.login import SSOLoginManager
from .types import AssumeOptions, Credentials

logger = logging.getLogger(__name__)

# credential_process 실행 시 만료 임박으로 간주하는 시간
CREDENTIAL_PROCESS_REFRESH_WINDOW = timedelta(minutes=15)


@dataclass(frozen=True)
class AssumeResult:
    """assume() 결과

    Attributes:
        credentials: 대상 프로파일의 자격 증명
        profile: 해석된 대상 프로파일
        from_cache: 세션 캐시에서 가져왔는지 여부
        region: 대상 프로파일의 리전
    """

    credentials: Credentials
    profile: Profile
    from_cache: bool = False
    region: str | None = None


class CredentialBroker:
    """자격 증명 엔진의 애플리케이션 컨텍스트

    Args:
        profiles: 해석 가능한 프로파일 카탈로그
        settings: 사용자 설정
        sso_tokens: SSO 토큰 저장소
        iam_credentials: 장기 IAM 키 저장소
        sessions: 세션 자격 증명 저장소
        registry: 전략 레지스트리 (None이면 기본 레지스트리)
        client_factory: boto3 클라이언트 생성 함수
        open_url: 디바이스 인증 URL을 여는 함수
        console: 사용자 안내 출력용 Console
    """

    def __init__(
        self,
        profiles: Profiles,
        settings: Settings | None = None,
        sso_tokens: SSOTokenStorage | None = None,
        iam_credentials: IAMCredentialStorage | None = None,
        sessions: SessionCredentialStorage | None = None,
        registry: AssumerRegistry | None = None,
        client_factory: ClientFactory | None = None,
        open_url: Callable[[str], Any] | None = None,
        console: Console | None = None,
        plaintext_cache_dir: str | Path | None = None,
    ):
        self.profiles = profiles
        self.settings = settings or Settings()
        self._client_factory = client_factory or create_client

        self.sso_tokens = sso_tokens or SSOTokenStorage(
            SecureStorage(SSO_TOKENS_NAMESPACE, self.settings),
            client_factory=self._client_factory,
        )
        self.iam_credentials = iam_credentials or IAMCredentialStorage(
            SecureStorage(IAM_CREDENTIALS_NAMESPACE, self.settings)
        )
        self.sessions = sessions or SessionCredentialStorage(
            SecureStorage(SESSION_CREDENTIALS_NAMESPACE, self.settings)
        )
        self.sso = SSOLoginManager(
            self.sso_tokens,
            settings=self.settings,
            client_factory=self._client_factory,
            open_url=open_url,
            console=console,
            plaintext_cache_dir=plaintext_cache_dir,
        )
        self.registry = registry or create_default_registry(
            self.sso,
            iam_credentials=self.iam_credentials,
            sessions=self.sessions,
            settings=self.settings,
            client_factory=self._client_factory,
        )
        self.chain = RoleChainAssumer(self._client_factory, self.settings.resolve_default_region())

    @classmethod
    def from_environment(
        cls,
        config_path: str | Path | None = None,
        credentials_path: str | Path | None = None,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> CredentialBroker:
        """기본 경로의 AWS 설정과 사용자 설정으로 브로커 생성"""
        return cls(
            load_profiles(config_path, credentials_path),
            settings=settings or load_settings(),
            **kwargs,
        )

    # =========================================================================
    # Assume
    # =========================================================================

    def _effective_options(self, profile: Profile, options: AssumeOptions | None) -> AssumeOptions:
        """호출자의 옵션을 복사해 프로파일 기본값을 채움"""
        options = options or AssumeOptions()
        duration = options.duration
        if duration is None:
            if profile.config.duration_seconds:
                duration = timedelta(seconds=profile.config.duration_seconds)
            else:
                duration = DEFAULT_DURATION
        return replace(options, duration=duration, chained=not profile.is_root)

    def assume(
        self,
        profile_name: str,
        options: AssumeOptions | None = None,
        console: bool = False,
        ctx: Context | None = None,
    ) -> AssumeResult:
        """프로파일의 자격 증명 획득

        Args:
            profile_name: 대상 프로파일 이름
            options: 획득 옵션
            console: 콘솔 페더레이션용이면 True
            ctx: 취소/마감 컨텍스트

        Raises:
            ConfigurationError: 프로파일 없음, 순환 참조, 필수 설정 누락
            LoginRequiredError / NoAccessError / ProviderError / ...: 전략 또는 홉 실패
        """
        ctx = ctx or Context.background()
        profile = self.profiles.get(profile_name)
        options = self._effective_options(profile, options)
        region = options.region or profile.region(self.settings.resolve_default_region())

        # 콘솔용 자격 증명 (GetFederationToken 등)은 세션 캐시를 읽거나 쓰지 않음
        use_cache = not console
        if use_cache and not options.force_refresh:
            cached = self.sessions.get(profile.name)
            if cached is not None and cached.is_valid(window=options.refresh_window):
                logger.debug("세션 캐시 히트: %s (만료 %s)", profile.name, cached.expires_at)
                return AssumeResult(cached, profile, from_cache=True, region=region)
            logger.debug("세션 캐시 미스: %s", profile.name)

        assumer = self.registry.resolve(profile)
        root = profile.root
        ctx.check(f"assume:{root.name}")
        if console and profile.is_root:
            credentials = assumer.assume_console(root, options, ctx)
        else:
            credentials = assumer.assume_terminal(root, options, ctx)
        logger.debug("루트 자격 증명 획득: %s (%s)", root.name, assumer.type())

        credentials = self.chain.assume(profile, credentials, options, ctx)

        if use_cache and credentials.can_expire:
            self.sessions.store_quietly(profile.name, credentials)
        return AssumeResult(credentials, profile, from_cache=False, region=region)

    def credential_process(
        self,
        profile_name: str,
        options: AssumeOptions | None = None,
        ctx: Context | None = None,
    ) -> Credentials:
        """credential_process 용 자격 증명

        비대화형 실행으로 표시하고 만료 15분 전부터 갱신합니다.
        disable_credential_process_cache 설정 시 항상 새로 획득합니다.
        """
        options = replace(
            options or AssumeOptions(),
            credential_process=True,
            refresh_window=CREDENTIAL_PROCESS_REFRESH_WINDOW,
        )
        if self.settings.disable_credential_process_cache:
            logger.debug("credential_process 캐시 비활성화: 새로 획득")
            options = replace(options, force_refresh=True)
        return self.assume(profile_name, options, ctx=ctx).credentials

    # =========================================================================
    # SSO / Cache
    # =========================================================================

    def sso_login(
        self,
        start_url: str,
        region: str,
        session_name: str | None = None,
        scopes: list[str] | None = None,
        ctx: Context | None = None,
    ) -> SSOToken:
        """디바이스 인증으로 SSO 로그인 (저장된 토큰 무시)"""
        return self.sso.login(start_url, region, session_name, scopes, ctx)

    def list_cache(self) -> dict[str, list[str]]:
        """네임스페이스별 저장된 키 목록"""
        return {
            SSO_TOKENS_NAMESPACE: self.sso_tokens.storage.list_keys(),
            IAM_CREDENTIALS_NAMESPACE: self.iam_credentials.list_profiles(),
            SESSION_CREDENTIALS_NAMESPACE: self.sessions.list_keys(),
        }

    def clear_cache(self, namespace: str, key: str | None = None) -> int:
        """네임스페이스의 키(또는 전체) 삭제

        Returns:
            삭제된 항목 수

        Raises:
            ValueError: 알 수 없는 네임스페이스
        """
        storages = {
            SSO_TOKENS_NAMESPACE: self.sso_tokens.storage,
            IAM_CREDENTIALS_NAMESPACE: self.iam_credentials.storage,
            SESSION_CREDENTIALS_NAMESPACE: self.sessions.storage,
        }
        if namespace not in storages:
            raise ValueError(f"알 수 없는 네임스페이스: {namespace}")
        storage = storages[namespace]
        keys = [key] if key else storage.list_keys()
        return sum(1 for k in keys if storage.clear(k))
