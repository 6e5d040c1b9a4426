# credbroker/auth/assume/chain.py
"""
Role Chain Assumer

루트 프로파일의 자격 증명에서 시작해 체인(루트의 자식 ~ 대상 프로파일)의
각 프로파일마다 STS AssumeRole 한 번씩 수행합니다.

홉별 옵션:
- RoleArn: 홉의 role_arn (필수)
- RoleSessionName: 홉의 role_session_name 또는 생성된 고유 이름
- SerialNumber / TokenCode: 홉의 mfa_serial, 없으면 대상 프로파일의 mfa_serial
- ExternalId: 홉의 external_id
- DurationSeconds: 홉의 duration_seconds, 없으면 요청 옵션
- 리전: 홉 프로파일 기준으로 해석 (없으면 기본 리전)

마감/취소 시 부분 결과는 버리고 마지막으로 완료된 홉을 에러에 담습니다.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError

from credbroker.exceptions import is_access_denied

from ..session import create_client
from ..types import (
    AssumeOptions,
    ConfigurationError,
    Credentials,
    NoAccessError,
    ProviderError,
)
from .session_name import session_name

if TYPE_CHECKING:
    from ..config.profiles import Profile
    from ..context import Context
    from ..session import ClientFactory

logger = logging.getLogger(__name__)

STS_SERVICE = "sts"
DEFAULT_DURATION = timedelta(hours=1)


def parse_role_arn(role_arn: str) -> tuple[str, str]:
    """역할 ARN에서 (계정 ID, 역할 이름) 추출

    arn:aws:iam::222222222222:role/path/Dev -> ("222222222222", "Dev")
    """
    parts = role_arn.split(":", 5)
    if len(parts) < 6:
        return "", role_arn
    return parts[4], parts[5].rsplit("/", 1)[-1]


class RoleChainAssumer:
    """체인의 STS AssumeRole 홉 수행

    Args:
        client_factory: (service, region, credentials) -> boto3 client
        default_region: 프로파일에 리전이 없을 때 사용할 리전
    """

    def __init__(self, client_factory: ClientFactory | None = None, default_region: str | None = None):
        self._client_factory = client_factory or create_client
        self.default_region = default_region

    def _hop_params(
        self,
        hop: Profile,
        target: Profile,
        options: AssumeOptions,
        authenticated: set[str] | None = None,
    ) -> dict[str, Any]:
        config = hop.config
        if not config.role_arn:
            raise ConfigurationError(
                f"프로파일 '{hop.name}'에 role_arn이 없습니다 (source_profile이 있는 프로파일은 role_arn이 필요합니다)",
                config_key="role_arn",
            )

        params: dict[str, Any] = {
            "RoleArn": config.role_arn,
            "RoleSessionName": config.role_session_name or session_name(),
        }

        if config.duration_seconds:
            params["DurationSeconds"] = config.duration_seconds
        else:
            params["DurationSeconds"] = int((options.duration or DEFAULT_DURATION).total_seconds())

        # 같은 MFA 장치는 체인당 한 번만 인증
        authenticated = authenticated if authenticated is not None else set()
        serial = config.mfa_serial or target.config.mfa_serial
        if serial and serial not in authenticated:
            authenticated.add(serial)
            params["SerialNumber"] = serial
            params["TokenCode"] = options.prompt_mfa(serial)

        if config.external_id:
            params["ExternalId"] = config.external_id

        return params

    def assume_hop(
        self,
        hop: Profile,
        target: Profile,
        credentials: Credentials,
        options: AssumeOptions,
        authenticated: set[str] | None = None,
    ) -> Credentials:
        """STS AssumeRole 한 번 수행

        Args:
            authenticated: 이번 체인에서 이미 인증한 MFA 장치 (호출 중 갱신)

        Raises:
            ConfigurationError: role_arn 없음
            NoAccessError: AccessDenied / 403
            ProviderError: 기타 STS 실패
        """
        params = self._hop_params(hop, target, options, authenticated)
        region = hop.region(self.default_region)
        logger.debug(
            "AssumeRole: %s (프로파일 %s, 리전 %s, 세션 %s)",
            params["RoleArn"],
            hop.name,
            region,
            params["RoleSessionName"],
        )

        sts = self._client_factory(STS_SERVICE, region, credentials)
        try:
            response = sts.assume_role(**params)
        except ClientError as e:
            if is_access_denied(e):
                account_id, role_name = parse_role_arn(params["RoleArn"])
                raise NoAccessError(account_id, role_name, hop.name, cause=e) from e
            raise ProviderError(STS_SERVICE, "assume_role", f"{hop.name}: {e}", cause=e) from e
        except BotoCoreError as e:
            raise ProviderError(STS_SERVICE, "assume_role", f"{hop.name}: {e}", cause=e) from e

        return Credentials.from_sts(response["Credentials"], credentials.source)

    def assume(
        self,
        profile: Profile,
        root_credentials: Credentials,
        options: AssumeOptions,
        ctx: Context,
    ) -> Credentials:
        """루트 자격 증명으로부터 대상 프로파일까지 체인 수행

        Args:
            profile: 대상 프로파일 (parents 포함)
            root_credentials: 루트 프로파일 전략이 만든 자격 증명
            options: 획득 옵션
            ctx: 취소/마감 컨텍스트

        Returns:
            마지막 홉의 자격 증명 (루트 프로파일이면 root_credentials 그대로)
        """
        credentials = root_credentials
        completed = profile.root.name
        hops = profile.chain()[1:]
        authenticated: set[str] = set()

        for index, hop in enumerate(hops):
            ctx.check(f"assume_role:{hop.name}", completed_step=completed)
            credentials = self.assume_hop(hop, profile, credentials, options, authenticated)
            completed = hop.name

            if index < len(hops) - 1:
                logger.info(
                    "상위 프로파일 assume 완료: [%s](%s) 만료까지 %s",
                    hop.name,
                    hop.region(self.default_region),
                    credentials.remaining(),
                )

        return credentials
