# credbroker/auth/provider/external.py
"""
외부 페더레이션 헬퍼 전략

- Saml2AwsAssumer: credential_process가 saml2aws로 시작
- GimmeAwsCredsAssumer: ~/.okta_aws_login_config 에 같은 이름의 프로파일
- GoogleAuthAssumer: google_config.* 키
- AzureLoginAssumer: azure_* 키

헬퍼의 표준 출력은 stderr로 넘겨 자격 증명 출력(stdout)과 섞이지 않게 합니다.
헬퍼가 credentials 파일에 쓴 자격 증명은 read_shared_credentials()로 다시 읽습니다.
"""

from __future__ import annotations

import configparser
import json
import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError

from credbroker.settings import Settings

from ..cache.storage import SessionCredentialStorage
from ..config.loader import Loader
from ..session import create_client
from ..types import (
    Assumer,
    AssumeOptions,
    Credentials,
    LoginRequiredError,
    ProviderError,
)
from ..types.types import parse_timestamp

if TYPE_CHECKING:
    from ..config.profiles import Profile
    from ..context import Context
    from ..session import ClientFactory

logger = logging.getLogger(__name__)

# 헬퍼 실행 시 자식 환경에서 제거할 변수
SCRUBBED_ENV_VARS = (
    "AWS_PROFILE",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
)

# 헬퍼가 credentials 파일에 남기는 만료 시각 키
EXPIRATION_KEYS = ("aws_expiration", "x_security_token_expires", "expiration")


# =============================================================================
# Command Runner
# =============================================================================


class CommandRunner:
    """외부 명령 실행기

    테스트에서는 run()을 대체한 가짜 실행기를 주입합니다.
    """

    def run(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
        capture: bool = False,
    ) -> str:
        """명령 실행

        Args:
            command: 실행할 명령과 인자
            env: 자식 프로세스 환경 (None이면 현재 환경)
            capture: True면 stdout을 캡처해 반환, False면 stdout을 stderr로 전달

        Returns:
            캡처한 표준 출력 (capture=False면 빈 문자열)

        Raises:
            ProviderError: 명령이 없거나 0이 아닌 종료 코드
        """
        name = command[0]
        try:
            result = subprocess.run(  # noqa: S603
                command,
                env=env,
                stdin=sys.stdin,
                stdout=subprocess.PIPE if capture else sys.stderr,
                stderr=sys.stderr,
                text=True,
                check=True,
            )
        except FileNotFoundError as e:
            raise ProviderError(name, "run", f"{name} 명령을 찾을 수 없습니다. 설치 여부를 확인하세요", cause=e) from e
        except subprocess.CalledProcessError as e:
            raise ProviderError(name, "run", f"종료 코드 {e.returncode}", cause=e) from e
        if not capture:
            return ""
        return result.stdout or ""


def scrubbed_environ() -> dict[str, str]:
    """AWS 자격 증명 관련 변수를 제거한 현재 환경"""
    return {k: v for k, v in os.environ.items() if k not in SCRUBBED_ENV_VARS}


def read_shared_credentials(profile_name: str, path: str | Path | None = None, source: str = "") -> Credentials | None:
    """credentials 파일에서 프로파일 자격 증명 읽기

    Returns:
        Credentials 또는 None (파일/섹션/키가 없는 경우)
    """
    path = Path(path) if path else Loader().credentials_path
    if not path.exists():
        return None

    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, configparser.Error) as e:
        logger.debug("credentials 파일 읽기 실패 (%s): %s", path, e)
        return None

    if not parser.has_section(profile_name):
        return None
    section = parser[profile_name]
    access_key_id = section.get("aws_access_key_id", "").strip()
    secret_access_key = section.get("aws_secret_access_key", "").strip()
    if not access_key_id or not secret_access_key:
        return None

    expires_at = None
    for key in EXPIRATION_KEYS:
        if section.get(key):
            try:
                expires_at = parse_timestamp(section[key])
            except ValueError:
                logger.debug("만료 시각 형식 오류 무시: %s=%s", key, section[key])
            break

    return Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        session_token=section.get("aws_session_token", "").strip() or None,
        can_expire=expires_at is not None,
        expires_at=expires_at,
        source=source,
    )


class _FileBackedHelperAssumer(Assumer):
    """헬퍼 실행 후 credentials 파일에서 자격 증명을 읽는 전략의 공통 구현"""

    TYPE = ""
    BINARY = ""

    def __init__(self, runner: CommandRunner | None = None, credentials_path: str | Path | None = None):
        self.runner = runner or CommandRunner()
        self.credentials_path = credentials_path

    def type(self) -> str:
        return self.TYPE

    def helper_args(self, profile: Profile, options: AssumeOptions) -> list[str]:
        return [f"--profile={profile.name}", *options.args]

    def read_credentials(self, profile: Profile) -> Credentials:
        credentials = read_shared_credentials(profile.name, self.credentials_path, self.TYPE)
        if credentials is None:
            raise ProviderError(
                self.BINARY,
                "read_credentials",
                f"{self.BINARY} 실행 후 credentials 파일에서 프로파일 '{profile.name}'의 자격 증명을 찾을 수 없습니다",
            )
        return credentials

    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        ctx.check(self.BINARY)
        command = [self.BINARY, *self.helper_args(profile, options)]
        logger.debug("%s 실행 (프로파일 %s)", self.BINARY, profile.name)
        self.runner.run(command)
        return self.read_credentials(profile)


# =============================================================================
# saml2aws
# =============================================================================


class Saml2AwsAssumer(_FileBackedHelperAssumer):
    """saml2aws credential_process 프로파일"""

    TYPE = "SAML_2_AWS"
    BINARY = "saml2aws"

    def matches(self, profile: Profile) -> bool:
        value = profile.config.credential_process or ""
        return value.strip().startswith(self.BINARY)

    def helper_args(self, profile: Profile, options: AssumeOptions) -> list[str]:
        # credential_process 값의 인자를 그대로 사용
        return shlex.split(profile.config.credential_process.strip()[len(self.BINARY) :])


# =============================================================================
# aws-google-auth
# =============================================================================


class GoogleAuthAssumer(_FileBackedHelperAssumer):
    """aws-google-auth 프로파일 (google_config.* 키)"""

    TYPE = "AWS_GOOGLE_AUTH"
    BINARY = "aws-google-auth"

    def matches(self, profile: Profile) -> bool:
        return any(key.startswith("google_config.") for key in profile.raw)


# =============================================================================
# aws-azure-login
# =============================================================================


class AzureLoginAssumer(_FileBackedHelperAssumer):
    """aws-azure-login 프로파일 (azure_* 키)

    credentials 파일의 자격 증명이 아직 유효하면(GetCallerIdentity 성공) 헬퍼를 실행하지 않습니다.
    """

    TYPE = "AWS_AZURE_LOGIN"
    BINARY = "aws-azure-login"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        credentials_path: str | Path | None = None,
        client_factory: ClientFactory | None = None,
    ):
        super().__init__(runner, credentials_path)
        self._client_factory = client_factory or create_client

    def matches(self, profile: Profile) -> bool:
        return any(key.startswith("azure_") for key in profile.raw)

    def _existing_credentials(self, profile: Profile) -> Credentials | None:
        credentials = read_shared_credentials(profile.name, self.credentials_path, self.TYPE)
        if credentials is None or not credentials.is_valid():
            return None
        try:
            sts = self._client_factory("sts", profile.region(), credentials)
            sts.get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            logger.debug("기존 aws-azure-login 자격 증명 무효: %s", e)
            return None
        return credentials

    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        if not options.force_refresh:
            existing = self._existing_credentials(profile)
            if existing is not None:
                logger.debug("기존 aws-azure-login 자격 증명 재사용: %s", profile.name)
                return existing
        return super().assume_terminal(profile, options, ctx)


# =============================================================================
# gimme-aws-creds
# =============================================================================


def okta_config_path() -> Path:
    """gimme-aws-creds 설정 파일 경로 (OKTA_CONFIG 또는 ~/.okta_aws_login_config)"""
    return Path(os.environ.get("OKTA_CONFIG") or Path.home() / ".okta_aws_login_config").expanduser()


def load_okta_profiles(path: str | Path | None = None) -> set[str]:
    """gimme-aws-creds 설정의 프로파일(섹션) 이름 목록"""
    path = Path(path) if path else okta_config_path()
    if not path.exists():
        return set()
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, configparser.Error) as e:
        logger.warning("gimme-aws-creds 설정을 읽을 수 없습니다 (%s): %s", path, e)
        return set()
    return set(parser.sections())


def parse_gimme_output(output: str, source: str) -> Credentials:
    """gimme-aws-creds --output-format=json 출력 해석

    Raises:
        ProviderError: 형식 오류
    """
    try:
        data: dict[str, Any] = json.loads(output)
        creds = data["credentials"]
        expiration = creds.get("expiration")
        expires_at = parse_timestamp(expiration) if expiration else None
        return Credentials(
            access_key_id=creds["aws_access_key_id"],
            secret_access_key=creds["aws_secret_access_key"],
            session_token=creds.get("aws_session_token") or None,
            can_expire=expires_at is not None,
            expires_at=expires_at,
            source=source,
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise ProviderError("gimme-aws-creds", "parse_output", "출력 형식을 해석할 수 없습니다", cause=e) from e


class GimmeAwsCredsAssumer(Assumer):
    """gimme-aws-creds (Okta) 프로파일

    프로파일 목록은 생성 시 한 번만 읽어 matches()가 파일 I/O를 하지 않게 합니다.
    획득한 자격 증명은 세션 자격 증명 저장소에 캐시합니다.
    """

    TYPE = "AWS_GIMME_AWS_CREDS"
    BINARY = "gimme-aws-creds"
    OPEN_BROWSER_KEY = "credbroker_okta_open_browser"

    def __init__(
        self,
        runner: CommandRunner | None = None,
        sessions: SessionCredentialStorage | None = None,
        settings: Settings | None = None,
        okta_profiles: set[str] | None = None,
    ):
        self.runner = runner or CommandRunner()
        self.sessions = sessions or SessionCredentialStorage()
        self.settings = settings or Settings()
        self.okta_profiles = okta_profiles if okta_profiles is not None else load_okta_profiles()

    def type(self) -> str:
        return self.TYPE

    def matches(self, profile: Profile) -> bool:
        return profile.name in self.okta_profiles

    def _open_browser(self, profile: Profile, options: AssumeOptions) -> bool:
        if options.credential_process:
            return True
        return profile.raw.get(self.OPEN_BROWSER_KEY, "").strip().lower() == "true"

    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        if not options.force_refresh:
            cached = self.sessions.get(profile.name)
            if cached is not None and cached.is_valid(window=options.refresh_window):
                logger.debug("gimme-aws-creds 세션 캐시 히트: %s", profile.name)
                return cached

        if options.credential_process and not self.settings.credential_process_auto_login:
            raise LoginRequiredError(
                f"프로파일 '{profile.name}'의 gimme-aws-creds 자격 증명을 자동 갱신하지 못했습니다",
                command_hint=f"credbroker assume {profile.name}",
            )

        ctx.check(self.BINARY)
        command = [self.BINARY, f"--profile={profile.name}", "--output-format=json"]
        if self._open_browser(profile, options):
            command.append("--open-browser")
        command.extend(options.args)

        output = self.runner.run(command, env=scrubbed_environ(), capture=True)
        credentials = parse_gimme_output(output, self.TYPE)
        if credentials.can_expire:
            self.sessions.store_quietly(profile.name, credentials)
        return credentials
