# credbroker/auth/provider/sso.py
"""
IAM Identity Center (SSO) 전략

1. SSOLoginManager로 유효한 SSO 토큰 확보 (저장소 → 갱신 → 평문 캐시 → 디바이스 로그인)
2. sso:GetRoleCredentials 로 계정/역할 자격 증명 획득

에러 매핑:
- UnauthorizedException 계열: 저장된 SSO 토큰 삭제 (다음 시도에서 새 디바이스 로그인)
- ForbiddenException / 403: NoAccessError
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError

from credbroker.exceptions import is_access_denied, is_unauthorized

from ..session import create_client
from ..sso.login import SSOLoginManager, token_key
from ..types import (
    Assumer,
    AssumeOptions,
    ConfigurationError,
    Credentials,
    NoAccessError,
    ProviderError,
)

if TYPE_CHECKING:
    from ..config.profiles import Profile
    from ..context import Context
    from ..session import ClientFactory

logger = logging.getLogger(__name__)

SSO_SERVICE = "sso"


class SSOAssumer(Assumer):
    """sso_account_id가 설정된 루트 프로파일 처리

    Args:
        login_manager: SSO 토큰 관리자
        client_factory: boto3 클라이언트 생성 함수
    """

    TYPE = "AWS_SSO"

    def __init__(self, login_manager: SSOLoginManager, client_factory: ClientFactory | None = None):
        self.login_manager = login_manager
        self._client_factory = client_factory or create_client

    def type(self) -> str:
        return self.TYPE

    def matches(self, profile: Profile) -> bool:
        return bool(profile.config.sso_account_id)

    @staticmethod
    def _require(profile: Profile) -> tuple[str, str, str, str]:
        config = profile.config
        required = {
            "sso_start_url": config.sso_start_url,
            "sso_region": config.sso_region,
            "sso_account_id": config.sso_account_id,
            "sso_role_name": config.sso_role_name,
        }
        for key, value in required.items():
            if not value:
                raise ConfigurationError(
                    f"SSO 프로파일 '{profile.name}'에 {key}가 없습니다",
                    config_key=key,
                )
        return config.sso_start_url, config.sso_region, config.sso_account_id, config.sso_role_name

    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        start_url, sso_region, account_id, role_name = self._require(profile)
        session_name = profile.config.sso_session

        token = self.login_manager.get_token(
            start_url,
            sso_region,
            session_name=session_name,
            scopes=profile.config.sso_registration_scopes,
            credential_process=options.credential_process,
            ctx=ctx,
        )

        ctx.check("get_role_credentials", completed_step="sso_login")
        sso = self._client_factory(SSO_SERVICE, sso_region)
        try:
            response = sso.get_role_credentials(
                accessToken=token.access_token,
                accountId=account_id,
                roleName=role_name,
            )
        except ClientError as e:
            if is_unauthorized(e):
                logger.debug("SSO 토큰 거부됨, 저장된 토큰 삭제: %s", start_url)
                self.login_manager.tokens.clear_token(token_key(start_url, session_name))
                raise ProviderError(
                    SSO_SERVICE,
                    "get_role_credentials",
                    "SSO 토큰이 거부되어 삭제했습니다. 다시 시도하면 새로 로그인합니다",
                    cause=e,
                ) from e
            if is_access_denied(e):
                raise NoAccessError(account_id, role_name, profile.name, cause=e) from e
            raise ProviderError(SSO_SERVICE, "get_role_credentials", str(e), cause=e) from e
        except BotoCoreError as e:
            raise ProviderError(SSO_SERVICE, "get_role_credentials", str(e), cause=e) from e

        credentials = Credentials.from_sts(response["roleCredentials"], self.TYPE)
        logger.debug("SSO 역할 자격 증명 획득: %s/%s (만료 %s)", account_id, role_name, credentials.expires_at)
        return credentials
