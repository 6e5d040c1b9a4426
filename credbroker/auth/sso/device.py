# credbroker/auth/sso/device.py
"""
SSO 디바이스 인증 클라이언트

상태 머신:
    1. RegisterClient          - 공개 OIDC 클라이언트 등록 (client id/secret)
    2. StartDeviceAuthorization - 검증 URL / 사용자 코드 발급, 브라우저 열기
    3. Poll (CreateToken)      - 승인될 때까지 주기적으로 토큰 요청
    4. SSOToken 생성

폴링 종료 조건 (먼저 발생한 것 하나):
    - 토큰 발급 성공
    - "pending" 이외의 에러 (ProviderError로 전파)
    - timeout_after 경과 (AuthorizationTimeoutError)
    - 호출자 취소/마감 (CancelledError / DeadlineExceededError)
"""

from __future__ import annotations

import logging
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable

from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console

from credbroker.exceptions import (
    TRANSIENT_NETWORK_ERRORS,
    is_authorization_pending,
    is_slow_down,
)
from credbroker.settings import DEFAULT_SSO_CLIENT_NAME

from ..cache.cache import SSOToken
from ..context import Context
from ..session import create_client
from ..types import AuthorizationTimeoutError, ProviderError
from ..types.types import utcnow

if TYPE_CHECKING:
    from ..session import ClientFactory

logger = logging.getLogger(__name__)

SSO_OIDC_SERVICE = "sso-oidc"
DEVICE_CODE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
REFRESH_TOKEN_GRANT_TYPE = "refresh_token"

# 스코프 미지정 시 갱신 불가능한 레거시 구성
LEGACY_SCOPES = ["sso-portal:*"]

DEFAULT_CHECK_INTERVAL = 5.0
DEFAULT_TIMEOUT_AFTER = 120.0
SLOW_DOWN_INCREMENT = 5.0


# =============================================================================
# Data classes
# =============================================================================


@dataclass(frozen=True)
class PollingConfig:
    """토큰 폴링 정책

    Attributes:
        check_interval: 폴링 간격 (초)
        timeout_after: 전체 대기 한도 (초)
    """

    check_interval: float = DEFAULT_CHECK_INTERVAL
    timeout_after: float = DEFAULT_TIMEOUT_AFTER

    @classmethod
    def from_device_authorization(cls, response: dict[str, Any]) -> PollingConfig:
        """StartDeviceAuthorization 응답의 interval / expiresIn 사용 (없으면 기본값)"""
        interval = response.get("interval") or DEFAULT_CHECK_INTERVAL
        expires_in = response.get("expiresIn") or DEFAULT_TIMEOUT_AFTER
        return cls(check_interval=float(interval), timeout_after=float(expires_in))


@dataclass(frozen=True)
class ClientRegistration:
    """등록된 OIDC 클라이언트"""

    client_id: str
    client_secret: str
    expires_at: datetime | None = None


@dataclass(frozen=True)
class DeviceAuthorization:
    """시작된 디바이스 인증"""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str
    polling: PollingConfig


# =============================================================================
# Polling
# =============================================================================


def poll_token(
    oidc: Any,
    registration: ClientRegistration,
    device_code: str,
    polling: PollingConfig,
    ctx: Context,
) -> dict[str, Any]:
    """사용자 승인이 끝날 때까지 CreateToken 폴링

    시작 시각이 timeout_after를 넘는 시도는 하지 않습니다.
    SlowDown 응답은 간격을 5초 늘리고, 일시적 네트워크 오류는 창이 열려 있는 동안 재시도합니다.

    Returns:
        CreateToken 응답

    Raises:
        AuthorizationTimeoutError: timeout_after 경과
        ProviderError: pending 이외의 에러, 또는 네트워크 오류로 창이 닫힌 경우
        CancelledError / DeadlineExceededError: 호출자 취소/마감
    """
    interval = polling.check_interval
    start = ctx.now()
    attempts = 0
    last_network_error: Exception | None = None

    while True:
        elapsed = ctx.now() - start
        if elapsed + interval > polling.timeout_after:
            if last_network_error is not None:
                raise ProviderError(
                    SSO_OIDC_SERVICE,
                    "create_token",
                    "네트워크 오류로 토큰을 받지 못했습니다",
                    cause=last_network_error,
                )
            logger.debug("디바이스 인증 폴링 시간 초과 (시도 %d회)", attempts)
            raise AuthorizationTimeoutError(polling.timeout_after)

        ctx.wait(interval)
        ctx.check("poll_token", completed_step="start_device_authorization")

        attempts += 1
        try:
            return oidc.create_token(
                clientId=registration.client_id,
                clientSecret=registration.client_secret,
                grantType=DEVICE_CODE_GRANT_TYPE,
                deviceCode=device_code,
            )
        except ClientError as e:
            if is_authorization_pending(e):
                last_network_error = None
                logger.debug("디바이스 인증 대기 중 (시도 %d회)", attempts)
                continue
            if is_slow_down(e):
                interval += SLOW_DOWN_INCREMENT
                logger.debug("SlowDown 응답, 폴링 간격 %.0f초로 증가", interval)
                continue
            raise ProviderError(SSO_OIDC_SERVICE, "create_token", str(e), cause=e) from e
        except TRANSIENT_NETWORK_ERRORS as e:
            last_network_error = e
            logger.debug("폴링 중 네트워크 오류, 재시도: %s", e)


# =============================================================================
# Device Authorization Client
# =============================================================================


class DeviceAuthorizationClient:
    """SSO 디바이스 인증 클라이언트

    Args:
        region: SSO 리전
        client_name: 등록할 OIDC 클라이언트 이름
        scopes: 등록 스코프 (None이면 레거시 sso-portal:*)
        open_url: 검증 URL을 여는 함수 (기본: webbrowser.open)
        client_factory: (service, region) -> boto3 client
        console: 사용자 안내 출력용 rich Console (기본: stderr)
    """

    def __init__(
        self,
        region: str,
        client_name: str = DEFAULT_SSO_CLIENT_NAME,
        scopes: list[str] | None = None,
        open_url: Callable[[str], Any] | None = None,
        client_factory: ClientFactory | None = None,
        console: Console | None = None,
    ):
        self.region = region
        self.client_name = client_name
        self.scopes = list(scopes) if scopes else list(LEGACY_SCOPES)
        self._open_url = open_url
        self._client_factory = client_factory or create_client
        self._console = console or Console(stderr=True)

    def _oidc(self) -> Any:
        return self._client_factory(SSO_OIDC_SERVICE, self.region)

    def register(self, oidc: Any, ctx: Context) -> ClientRegistration:
        """공개 OIDC 클라이언트 등록"""
        ctx.check("register_client")
        try:
            response = oidc.register_client(
                clientName=self.client_name,
                clientType="public",
                scopes=self.scopes,
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(SSO_OIDC_SERVICE, "register_client", str(e), cause=e) from e

        expires_at = None
        if response.get("clientSecretExpiresAt"):
            expires_at = datetime.fromtimestamp(response["clientSecretExpiresAt"], tz=timezone.utc)
        logger.debug("OIDC 클라이언트 등록 완료: %s", self.client_name)
        return ClientRegistration(
            client_id=response["clientId"],
            client_secret=response["clientSecret"],
            expires_at=expires_at,
        )

    def start(
        self,
        oidc: Any,
        registration: ClientRegistration,
        start_url: str,
        ctx: Context,
    ) -> DeviceAuthorization:
        """디바이스 인증 시작"""
        ctx.check("start_device_authorization", completed_step="register_client")
        try:
            response = oidc.start_device_authorization(
                clientId=registration.client_id,
                clientSecret=registration.client_secret,
                startUrl=start_url,
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(SSO_OIDC_SERVICE, "start_device_authorization", str(e), cause=e) from e

        return DeviceAuthorization(
            device_code=response["deviceCode"],
            user_code=response.get("userCode", ""),
            verification_uri=response.get("verificationUri", ""),
            verification_uri_complete=response.get("verificationUriComplete")
            or response.get("verificationUri", ""),
            polling=PollingConfig.from_device_authorization(response),
        )

    def _prompt_user(self, authorization: DeviceAuthorization) -> None:
        url = authorization.verification_uri_complete
        self._console.print(f"[dim]브라우저가 자동으로 열리지 않으면 다음 링크를 여세요:[/dim] {url}")

        open_url = self._open_url or webbrowser.open
        try:
            opened = open_url(url)
        except webbrowser.Error as e:
            logger.debug("브라우저 열기 실패: %s", e)
            opened = False
        if opened is False:
            logger.debug("브라우저를 열지 못했습니다: %s", url)

        self._console.print("[cyan]브라우저에서 AWS 인증을 기다리는 중...[/cyan]")
        self._console.print(f"코드: [bold]{authorization.user_code}[/bold]")

    def login(self, start_url: str, ctx: Context | None = None) -> SSOToken:
        """디바이스 인증 전체 흐름 수행

        Args:
            start_url: SSO 시작 URL
            ctx: 취소/마감 컨텍스트

        Returns:
            새 SSOToken

        Raises:
            AuthorizationTimeoutError: 사용자 승인 대기 시간 초과
            ProviderError: 등록/시작/토큰 요청 실패
        """
        ctx = ctx or Context.background()
        oidc = self._oidc()

        registration = self.register(oidc, ctx)
        authorization = self.start(oidc, registration, start_url, ctx)
        self._prompt_user(authorization)

        response = poll_token(
            oidc,
            registration,
            authorization.device_code,
            authorization.polling,
            ctx,
        )
        logger.debug("SSO 디바이스 인증 완료: %s", start_url)
        return SSOToken(
            access_token=response["accessToken"],
            expiry=utcnow() + timedelta(seconds=response["expiresIn"]),
            client_id=registration.client_id,
            client_secret=registration.client_secret,
            registration_expires_at=registration.expires_at,
            refresh_token=response.get("refreshToken"),
            region=self.region,
        )


# =============================================================================
# Refresh
# =============================================================================


def refresh_sso_token(
    token: SSOToken,
    client_factory: ClientFactory | None = None,
    ctx: Context | None = None,
) -> SSOToken:
    """refresh_token 으로 새 액세스 토큰 발급

    client id/secret/등록 만료 시각은 유지하고 액세스 토큰, 만료 시각, refresh_token을 교체합니다.

    Raises:
        ValueError: refresh_token 또는 region이 없는 토큰
        ClientError / BotoCoreError: 갱신 요청 실패 (호출자가 분류)
    """
    if not token.can_refresh:
        raise ValueError("refresh_token과 region이 있는 토큰만 갱신할 수 있습니다")

    ctx = ctx or Context.background()
    ctx.check("refresh_token")

    oidc = (client_factory or create_client)(SSO_OIDC_SERVICE, token.region)
    response = oidc.create_token(
        clientId=token.client_id,
        clientSecret=token.client_secret,
        grantType=REFRESH_TOKEN_GRANT_TYPE,
        refreshToken=token.refresh_token,
    )
    return SSOToken(
        access_token=response["accessToken"],
        expiry=utcnow() + timedelta(seconds=response["expiresIn"]),
        client_id=token.client_id,
        client_secret=token.client_secret,
        registration_expires_at=token.registration_expires_at,
        refresh_token=response.get("refreshToken") or token.refresh_token,
        region=token.region,
    )
