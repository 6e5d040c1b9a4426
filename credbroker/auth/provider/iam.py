# credbroker/auth/provider/iam.py
"""
IAM 액세스 키 전략 (catch-all)

키 출처:
- credential_process가 credbroker를 가리키면 보안 저장소(aws-iam-credentials)
- 아니면 프로파일의 aws_access_key_id / aws_secret_access_key (평문 경고)

추가 동작:
- 체인에 속하지 않은 루트 프로파일에 mfa_serial이 있으면 GetSessionToken 후 세션 저장소에 캐시
- assume_console()은 GetFederationToken(allow-all 정책)으로 콘솔용 임시 자격 증명 발급
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError

from ..assume.session_name import session_name
from ..cache.storage import IAMCredentialStorage, SessionCredentialStorage
from ..config.profiles import is_broker_credential_process
from ..session import create_client
from ..types import (
    Assumer,
    AssumeOptions,
    ConfigurationError,
    Credentials,
    KeyNotFoundError,
    ProviderError,
)

if TYPE_CHECKING:
    from ..config.profiles import Profile
    from ..context import Context
    from ..session import ClientFactory

logger = logging.getLogger(__name__)

STS_SERVICE = "sts"
MFA_DEFAULT_DURATION = timedelta(hours=1)

ALLOW_ALL_POLICY = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [{"Sid": "AllowAll", "Effect": "Allow", "Action": "*", "Resource": "*"}],
    }
)


class IAMAssumer(Assumer):
    """IAM 액세스 키 프로파일

    Args:
        iam_credentials: 보안 저장소의 장기 IAM 키
        sessions: MFA 세션 자격 증명 캐시
        client_factory: boto3 클라이언트 생성 함수
    """

    TYPE = "AWS_IAM"

    def __init__(
        self,
        iam_credentials: IAMCredentialStorage | None = None,
        sessions: SessionCredentialStorage | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.iam_credentials = iam_credentials or IAMCredentialStorage()
        self.sessions = sessions or SessionCredentialStorage()
        self._client_factory = client_factory or create_client
        self._warned: set[str] = set()

    def type(self) -> str:
        return self.TYPE

    def matches(self, profile: Profile) -> bool:
        return True

    def base_credentials(self, profile: Profile) -> Credentials:
        """프로파일의 장기 키

        Raises:
            ConfigurationError: 저장된 키 / 평문 키가 없음
        """
        config = profile.config
        if is_broker_credential_process(config.credential_process):
            try:
                credentials = self.iam_credentials.get(profile.name)
            except KeyNotFoundError as e:
                raise ConfigurationError(
                    f"보안 저장소에 프로파일 '{profile.name}'의 IAM 키가 없습니다. "
                    f"'credbroker credentials add {profile.name}' 로 등록하세요",
                    cause=e,
                ) from e
            logger.debug("보안 저장소의 IAM 키 사용: %s", profile.name)
            return Credentials(
                access_key_id=credentials.access_key_id,
                secret_access_key=credentials.secret_access_key,
                session_token=credentials.session_token,
                source=self.TYPE,
            )

        if not config.aws_access_key_id or not config.aws_secret_access_key:
            raise ConfigurationError(
                f"프로파일 '{profile.name}'에 aws_access_key_id / aws_secret_access_key가 없습니다",
                config_key="aws_access_key_id",
            )

        if profile.name not in self._warned:
            self._warned.add(profile.name)
            logger.warning(
                "프로파일 '%s'의 IAM 키가 평문으로 저장되어 있습니다. "
                "'credbroker credentials add %s' 로 보안 저장소에 등록하고 평문 키를 삭제하는 것을 권장합니다",
                profile.name,
                profile.name,
            )
        return Credentials(
            access_key_id=config.aws_access_key_id,
            secret_access_key=config.aws_secret_access_key,
            session_token=config.aws_session_token,
            source=self.TYPE,
        )

    def _session_token(
        self,
        profile: Profile,
        credentials: Credentials,
        options: AssumeOptions,
        ctx: Context,
    ) -> Credentials:
        serial = profile.config.mfa_serial
        if not options.force_refresh:
            cached = self.sessions.get(profile.name)
            if cached is not None and cached.is_valid(window=options.refresh_window):
                logger.debug("MFA 세션 캐시 히트: %s", profile.name)
                return cached

        token_code = options.prompt_mfa(serial)
        ctx.check("get_session_token")
        duration = options.duration or MFA_DEFAULT_DURATION
        sts = self._client_factory(STS_SERVICE, profile.region(), credentials)
        try:
            response = sts.get_session_token(
                SerialNumber=serial,
                TokenCode=token_code,
                DurationSeconds=int(duration.total_seconds()),
            )
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(STS_SERVICE, "get_session_token", str(e), cause=e) from e

        session = Credentials.from_sts(response["Credentials"], self.TYPE)
        self.sessions.store_quietly(profile.name, session)
        logger.debug("MFA 세션 토큰 발급: %s (만료 %s)", profile.name, session.expires_at)
        return session

    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        credentials = self.base_credentials(profile)
        if profile.config.mfa_serial and not options.chained:
            return self._session_token(profile, credentials, options, ctx)
        return credentials

    def assume_console(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        """콘솔용 임시 자격 증명

        role_arn이 없는 IAM 사용자 키는 콘솔 로그인 URL을 만들 수 없으므로
        GetFederationToken 으로 페더레이션 자격 증명을 발급합니다.
        """
        if profile.config.role_arn:
            return self.assume_terminal(profile, options, ctx)

        credentials = self.base_credentials(profile)
        ctx.check("get_federation_token")
        params = {"Name": session_name(), "Policy": ALLOW_ALL_POLICY}
        if options.duration:
            params["DurationSeconds"] = int(options.duration.total_seconds())

        sts = self._client_factory(STS_SERVICE, profile.region(), credentials)
        try:
            response = sts.get_federation_token(**params)
        except (ClientError, BotoCoreError) as e:
            raise ProviderError(STS_SERVICE, "get_federation_token", str(e), cause=e) from e

        return Credentials.from_sts(response["Credentials"], self.TYPE)
