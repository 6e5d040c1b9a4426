# credbroker/auth/provider/credential_process.py
"""
일반 credential_process 전략

AWS CLI와 같은 방식으로 credential_process 명령을 실행하고
표준 출력의 JSON(Version 1 스키마)을 자격 증명으로 해석합니다.
stdin / stderr는 사용자 터미널을 그대로 사용합니다 (헬퍼가 프롬프트를 띄울 수 있음).
"""

from __future__ import annotations

import json
import logging
import shlex
from typing import TYPE_CHECKING, Any

from ..config.profiles import is_broker_credential_process
from ..types import Assumer, AssumeOptions, Credentials, ProviderError
from ..types.types import parse_timestamp
from .external import CommandRunner

if TYPE_CHECKING:
    from ..config.profiles import Profile
    from ..context import Context

logger = logging.getLogger(__name__)


def parse_process_output(output: str, source: str) -> Credentials:
    """credential_process 출력(JSON) 해석

    Expiration이 있으면 만료되는 자격 증명으로 취급합니다.

    Raises:
        ProviderError: JSON 형식 오류, 필수 키 누락, 지원하지 않는 Version
    """
    try:
        data: dict[str, Any] = json.loads(output)
    except ValueError as e:
        raise ProviderError(source, "parse_output", "JSON 출력이 아닙니다", cause=e) from e

    if not isinstance(data, dict):
        raise ProviderError(source, "parse_output", "JSON 객체가 아닙니다")

    version = data.get("Version", 1)
    if version != 1:
        raise ProviderError(source, "parse_output", f"지원하지 않는 Version: {version}")

    access_key_id = data.get("AccessKeyId")
    secret_access_key = data.get("SecretAccessKey")
    if not access_key_id or not secret_access_key:
        raise ProviderError(source, "parse_output", "AccessKeyId / SecretAccessKey가 없습니다")

    expires_at = None
    if data.get("Expiration"):
        try:
            expires_at = parse_timestamp(data["Expiration"])
        except ValueError as e:
            raise ProviderError(
                source, "parse_output", f"Expiration 형식 오류: {data['Expiration']}", cause=e
            ) from e

    return Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=data.get("SessionToken") or None,
        can_expire=expires_at is not None,
        expires_at=expires_at,
        source=source,
    )


class CredentialProcessAssumer(Assumer):
    """credbroker 자신을 가리키지 않는 credential_process 실행"""

    TYPE = "AWS_CREDENTIAL_PROCESS"

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()

    def type(self) -> str:
        return self.TYPE

    def matches(self, profile: Profile) -> bool:
        value = profile.config.credential_process
        return bool(value) and not is_broker_credential_process(value)

    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        ctx.check("credential_process")
        command = shlex.split(profile.config.credential_process)
        logger.debug("credential_process 실행: %s (프로파일 %s)", command[0], profile.name)
        output = self.runner.run(command, capture=True)
        return parse_process_output(output, self.TYPE)
