# credbroker/auth/types/types.py
"""
credbroker/auth/types/types.py - 자격 증명 엔진의 핵심 타입 정의

이 모듈은 엔진 전체에서 사용되는 기본 타입들을 정의합니다.

포함 항목:
    - ProfileKind: 프로파일 종류 열거형 (SSO, IAM, OTHER)
    - Credentials: AWS 자격 증명 데이터 클래스
    - AssumeOptions: 자격 증명 획득 옵션
    - Assumer: 모든 자격 증명 전략이 구현해야 하는 추상 기본 클래스 (ABC)
    - 에러 클래스: AuthError 이하 설정/로그인/토큰/접근/저장소 에러
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import urlencode

from credbroker.exceptions import BrokerError

if TYPE_CHECKING:
    from credbroker.auth.config.profiles import Profile
    from credbroker.auth.context import Context

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utcnow() -> datetime:
    """현재 UTC 시각 (timezone-aware)"""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """datetime을 RFC3339 UTC 문자열로 변환"""
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """RFC3339 문자열을 timezone-aware datetime으로 변환

    "Z" 접미사, "+00:00" 오프셋, 소수점 초를 모두 허용합니다.

    Raises:
        ValueError: 파싱할 수 없는 형식
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# =============================================================================
# Profile Kind Enum
# =============================================================================


class ProfileKind(Enum):
    """프로파일 종류를 나타내는 열거형

    선언되지 않고 루트 프로파일로부터 유도됩니다.

    - SSO: IAM Identity Center 계정/역할 기반
    - IAM: 액세스 키 기반
    - OTHER: 외부 헬퍼(credential_process, SAML 페더레이션 등) 기반
    """

    SSO = "AWS_SSO"
    IAM = "AWS_IAM"
    OTHER = "OTHER"

    def __str__(self) -> str:
        return self.value


# =============================================================================
# Credentials
# =============================================================================


@dataclass(frozen=True)
class Credentials:
    """AWS 자격 증명

    갱신 시 변경되지 않고 새 객체로 대체됩니다.

    Attributes:
        access_key_id: 액세스 키 ID
        secret_access_key: 시크릿 액세스 키
        session_token: 세션 토큰 (장기 키는 None)
        can_expire: 만료 여부
        expires_at: 만료 시각 (UTC, can_expire일 때 필수)
        source: 자격 증명을 만든 전략 이름
    """

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None
    can_expire: bool = False
    expires_at: datetime | None = None
    source: str = ""

    def __post_init__(self):
        if self.can_expire and self.expires_at is None:
            raise ValueError("can_expire 자격 증명에는 expires_at이 필요합니다")

    def is_valid(self, now: datetime | None = None, window: timedelta = timedelta(0)) -> bool:
        """자격 증명이 유효한지 확인

        만료 시각이 (now + window)보다 엄격하게 이후여야 유효합니다.

        Args:
            now: 기준 시각 (기본: 현재 UTC)
            window: 만료 전 여유 시간

        Returns:
            True if 유효함
        """
        if not self.access_key_id:
            return False
        if not self.can_expire:
            return True
        now = now or utcnow()
        return now + window < self.expires_at

    def remaining(self, now: datetime | None = None) -> timedelta | None:
        """남은 유효 시간 (만료되지 않는 자격 증명은 None)"""
        if not self.can_expire:
            return None
        return self.expires_at - (now or utcnow())

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (보안 저장소 저장용)"""
        data: dict[str, Any] = {
            "AccessKeyId": self.access_key_id,
            "SecretAccessKey": self.secret_access_key,
            "SessionToken": self.session_token or "",
            "CanExpire": self.can_expire,
            "Source": self.source,
        }
        if self.expires_at is not None:
            data["Expires"] = format_timestamp(self.expires_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_can_expire: bool = False) -> Credentials:
        """딕셔너리에서 생성 (보안 저장소 로드용)

        Raises:
            ValueError: 만료 가능한데 만료 시각이 없거나 형식이 잘못된 경우
        """
        expires = data.get("Expires")
        expires_at = parse_timestamp(expires) if expires else None
        can_expire = data.get("CanExpire", default_can_expire)
        return cls(
            access_key_id=data.get("AccessKeyId", ""),
            secret_access_key=data.get("SecretAccessKey", ""),
            session_token=data.get("SessionToken") or None,
            can_expire=bool(can_expire),
            expires_at=expires_at,
            source=data.get("Source", ""),
        )

    @classmethod
    def from_sts(cls, creds: dict[str, Any], source: str) -> Credentials:
        """STS/SSO 응답의 Credentials 블록에서 생성

        STS 응답(AccessKeyId, Expiration datetime)과
        SSO GetRoleCredentials 응답(accessKeyId, expiration epoch ms)을 모두 처리합니다.
        """
        if "accessKeyId" in creds:
            expires_at = datetime.fromtimestamp(creds["expiration"] / 1000, tz=timezone.utc)
            return cls(
                access_key_id=creds["accessKeyId"],
                secret_access_key=creds["secretAccessKey"],
                session_token=creds.get("sessionToken"),
                can_expire=True,
                expires_at=expires_at,
                source=source,
            )

        expiration = creds["Expiration"]
        if isinstance(expiration, str):
            expiration = parse_timestamp(expiration)
        elif expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return cls(
            access_key_id=creds["AccessKeyId"],
            secret_access_key=creds["SecretAccessKey"],
            session_token=creds.get("SessionToken"),
            can_expire=True,
            expires_at=expiration,
            source=source,
        )

    def to_env(self, region: str | None = None) -> dict[str, str]:
        """프로세스 환경 변수 형태로 변환"""
        env = {
            "AWS_ACCESS_KEY_ID": self.access_key_id,
            "AWS_SECRET_ACCESS_KEY": self.secret_access_key,
        }
        if self.session_token:
            env["AWS_SESSION_TOKEN"] = self.session_token
        if self.can_expire:
            env["AWS_CREDENTIAL_EXPIRATION"] = format_timestamp(self.expires_at)
        if region:
            env["AWS_REGION"] = region
            env["AWS_DEFAULT_REGION"] = region
        return env

    def to_process_output(self) -> dict[str, Any]:
        """credential_process 출력 스키마(Version 1)로 변환"""
        output: dict[str, Any] = {
            "Version": 1,
            "AccessKeyId": self.access_key_id,
            "SecretAccessKey": self.secret_access_key,
        }
        if self.session_token:
            output["SessionToken"] = self.session_token
        if self.can_expire:
            output["Expiration"] = format_timestamp(self.expires_at)
        return output

    def to_boto3_kwargs(self) -> dict[str, str | None]:
        """boto3.Session / client 생성 인자로 변환"""
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }


# =============================================================================
# Assume Options
# =============================================================================


@dataclass
class AssumeOptions:
    """자격 증명 획득 옵션

    Attributes:
        duration: 요청할 세션 유효 시간 (None이면 프로파일 설정 또는 1시간)
        force_refresh: 캐시를 무시하고 새로 획득
        credential_process: credential_process로 호출된 비대화형 실행 여부
        refresh_window: 캐시 히트로 인정할 최소 잔여 시간
        mfa_token: 미리 받은 MFA 코드
        mfa_prompt: MFA 코드를 입력받는 함수 (serial -> code)
        args: 외부 헬퍼에 그대로 전달할 인자
        chained: 루트가 역할 체인의 시작점인지 여부 (엔진이 설정)
        region: 명시적 리전
    """

    duration: timedelta | None = None
    force_refresh: bool = False
    credential_process: bool = False
    refresh_window: timedelta = timedelta(0)
    mfa_token: str | None = None
    mfa_prompt: Callable[[str], str] | None = None
    args: list[str] = field(default_factory=list)
    chained: bool = False
    region: str | None = None

    def prompt_mfa(self, serial: str) -> str:
        """MFA 코드 획득

        mfa_token이 있으면 그대로 사용하고, 없으면 주입된 프롬프트를 호출합니다.
        프롬프트가 주입되지 않은 경우 기본 대화형 프롬프트를 사용합니다.
        """
        if self.mfa_token:
            return self.mfa_token
        if self.mfa_prompt is not None:
            return self.mfa_prompt(serial)

        from credbroker.auth.assume.mfa import default_mfa_prompt

        return default_mfa_prompt(serial)


# =============================================================================
# Assumer Interface (Abstract Base Class)
# =============================================================================


class Assumer(ABC):
    """모든 자격 증명 전략이 구현해야 하는 추상 기본 클래스

    matches()는 부수 효과가 없는 순수 판정이어야 합니다.
    레지스트리는 등록 순서대로 matches()를 평가해 첫 번째 전략을 선택합니다.

    Example:
        class MyAssumer(Assumer):
            def type(self) -> str:
                return "MY_ASSUMER"

            def matches(self, profile) -> bool:
                return "my_key" in profile.raw

            def assume_terminal(self, profile, options, ctx) -> Credentials:
                ...
    """

    @abstractmethod
    def type(self) -> str:
        """전략 타입 이름을 반환합니다."""
        pass

    @abstractmethod
    def matches(self, profile: Profile) -> bool:
        """이 전략이 프로파일(루트)을 처리할 수 있는지 판정합니다."""
        pass

    @abstractmethod
    def assume_terminal(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        """터미널(환경 변수 내보내기)용 자격 증명을 획득합니다.

        Raises:
            AuthError: 획득 실패 시
        """
        pass

    def assume_console(self, profile: Profile, options: AssumeOptions, ctx: Context) -> Credentials:
        """콘솔 페더레이션용 자격 증명을 획득합니다.

        기본 구현은 assume_terminal()과 같습니다.
        """
        return self.assume_terminal(profile, options, ctx)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.type()}>"


# =============================================================================
# Error Classes
# =============================================================================


class AuthError(BrokerError):
    """인증 관련 기본 에러 클래스

    모든 인증 에러의 부모 클래스입니다.
    원인 예외(cause)를 체이닝하여 디버깅을 용이하게 합니다.
    """


class ConfigurationError(AuthError):
    """설정 오류가 발생했을 때 발생하는 에러

    설정 파일 파싱 실패, 필수 설정값 누락 등의 경우 발생하며 재시도하지 않습니다.

    Attributes:
        config_key: 문제가 된 설정 키 이름 (옵션)
    """

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause, {"config_key": config_key} if config_key else None)
        self.config_key = config_key


class ProfileNotFoundError(ConfigurationError):
    """프로파일을 찾을 수 없을 때 발생하는 에러"""

    def __init__(self, profile_name: str, cause: Exception | None = None):
        super().__init__(f"프로파일을 찾을 수 없습니다: {profile_name}", cause=cause)
        self.profile_name = profile_name


class CyclicProfileError(ConfigurationError):
    """source_profile 참조가 순환할 때 발생하는 에러

    Attributes:
        cycle: 순환 경로 (첫 항목이 마지막에 반복됨)
    """

    def __init__(self, cycle: list[str]):
        super().__init__(
            f"source_profile 순환 참조: {' -> '.join(cycle)}",
            config_key="source_profile",
        )
        self.cycle = cycle


class NoMatchingAssumerError(ConfigurationError):
    """프로파일을 처리할 전략이 없을 때 발생하는 에러"""

    def __init__(self, profile_name: str):
        super().__init__(f"프로파일 '{profile_name}'을 처리할 수 있는 Assumer가 없습니다")
        self.profile_name = profile_name


class LoginRequiredError(AuthError):
    """비대화형 실행에서 유효한 SSO 토큰이 없을 때 발생하는 에러

    Attributes:
        command_hint: 사용자가 실행해야 할 로그인 명령
    """

    def __init__(self, message: str, command_hint: str, cause: Exception | None = None):
        super().__init__(f"{message}\n다음 명령으로 로그인하세요: {command_hint}", cause)
        self.command_hint = command_hint


class TokenExpiredError(AuthError):
    """토큰이 만료되었을 때 발생하는 에러

    Attributes:
        expired_at: 토큰 만료 시간 (옵션)
    """

    def __init__(
        self,
        message: str = "토큰이 만료되었습니다",
        expired_at: datetime | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.expired_at = expired_at


class AuthorizationTimeoutError(TokenExpiredError):
    """디바이스 인증 폴링 시간이 초과되었을 때 발생하는 에러"""

    def __init__(self, timeout_after: float, cause: Exception | None = None):
        super().__init__(f"디바이스 인증 대기 시간이 초과되었습니다 ({timeout_after:g}초)", cause=cause)
        self.timeout_after = timeout_after


class CancelledError(AuthError):
    """호출자가 작업을 취소했을 때 발생하는 에러

    Attributes:
        step: 취소 시점의 단계 이름
    """

    def __init__(self, step: str):
        super().__init__(f"작업이 취소되었습니다 (단계: {step})", details={"step": step})
        self.step = step


class DeadlineExceededError(AuthError):
    """호출자 마감 시간이 지났을 때 발생하는 에러

    Attributes:
        step: 마감 시점의 단계 이름
        completed_step: 마지막으로 완료된 단계 (없으면 None)
    """

    def __init__(self, step: str, completed_step: str | None = None):
        message = f"마감 시간을 초과했습니다 (단계: {step}"
        if completed_step:
            message += f", 마지막 완료: {completed_step}"
        message += ")"
        super().__init__(message, details={"step": step, "completed_step": completed_step})
        self.step = step
        self.completed_step = completed_step


class NoAccessError(AuthError):
    """역할에 대한 접근이 허용되지 않았을 때 발생하는 에러

    접근 요청 URL이나 안내 메시지를 만들 수 있도록 계정/역할 정보를 담습니다.

    Attributes:
        account_id: 대상 계정 ID
        role_name: 대상 역할 이름
        profile_name: 요청한 프로파일 이름
    """

    def __init__(
        self,
        account_id: str,
        role_name: str,
        profile_name: str = "",
        cause: Exception | None = None,
    ):
        super().__init__(
            f"계정 {account_id}의 역할 {role_name}에 대한 접근 권한이 없습니다",
            cause,
            {"account_id": account_id, "role_name": role_name, "profile_name": profile_name},
        )
        self.account_id = account_id
        self.role_name = role_name
        self.profile_name = profile_name

    def request_url(self, base: str) -> str:
        """접근 요청 URL 생성"""
        query = urlencode(
            [
                ("type", "commonfate/aws-sso"),
                ("permissionSetArn.label", self.role_name),
                ("accountId", self.account_id),
            ]
        )
        return f"{base.rstrip('/')}/access?{query}"

    def hint(self, base: str | None = None) -> str:
        """사용자 안내 메시지"""
        if base:
            return f"다음 URL에서 접근을 요청하세요: {self.request_url(base)}"
        return f"관리자에게 계정 {self.account_id}의 {self.role_name} 역할 접근 권한을 요청하세요"


class ProviderError(AuthError):
    """Provider(외부 서비스/헬퍼)에서 발생하는 에러

    에러 메시지 형식: "[provider] operation: message"

    Attributes:
        provider: 에러가 발생한 Provider 이름
        operation: 실패한 작업 이름 (예: "create_token", "assume_role")
    """

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str,
        cause: Exception | None = None,
    ):
        full_message = f"[{provider}] {operation}: {message}"
        super().__init__(full_message, cause)
        self.provider = provider
        self.operation = operation


class StorageError(AuthError):
    """보안 저장소 에러 (잠긴 키체인, 암호 누락, 복호화 실패 등)

    Attributes:
        namespace: 저장소 네임스페이스
        key: 대상 키 (옵션)
    """

    def __init__(
        self,
        message: str,
        namespace: str,
        key: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause, {"namespace": namespace, "key": key})
        self.namespace = namespace
        self.key = key


class KeyNotFoundError(StorageError):
    """보안 저장소에 키가 없을 때 발생하는 에러"""

    def __init__(self, namespace: str, key: str):
        super().__init__(f"키를 찾을 수 없습니다: {namespace}/{key}", namespace, key)
