# credbroker/auth/config/loader.py
"""
AWS 설정 파일 로더

- SSOSessionConfig: [sso-session NAME] 섹션
- ProfileConfig: 프로파일 하나의 원시 속성 + 해석된 주요 필드
- ParsedConfig: 파싱 결과 전체
- Loader: config / credentials 파일 로더

규칙:
- config 파일의 [profile NAME], [default] 섹션이 프로파일
- credentials 파일의 default 이외 섹션도 프로파일 (config에 같은 이름이 있으면 config 우선,
  단 정적 키 값은 병합)
- 이름에 \\ ] [ ; ' " 또는 공백이 포함된 프로파일은 경고 후 건너뜀
"""

from __future__ import annotations

import configparser
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from ..types import ConfigurationError

logger = logging.getLogger(__name__)

ILLEGAL_PROFILE_NAME = re.compile(r"[\\\[\];'\" ]")

# credentials 파일에서 병합할 정적 키
STATIC_KEY_FIELDS = ("aws_access_key_id", "aws_secret_access_key", "aws_session_token")


def is_legal_profile_name(name: str) -> bool:
    """설정 파일 형식을 깨뜨리는 문자가 없는지 확인 (있으면 경고)"""
    if ILLEGAL_PROFILE_NAME.search(name):
        logger.warning(
            "프로파일 '%s' 이름에 사용할 수 없는 문자(\\][;'\" 공백)가 있어 건너뜁니다. '%s' 로 이름을 바꿔보세요",
            name,
            ILLEGAL_PROFILE_NAME.sub("-", name),
        )
        return False
    return True


# =============================================================================
# Data classes
# =============================================================================


@dataclass
class SSOSessionConfig:
    """SSO 세션 설정 ([sso-session NAME])

    Attributes:
        name: 세션 이름
        start_url: SSO 시작 URL
        region: SSO 리전
        registration_scopes: 등록 스코프 목록
    """

    name: str
    start_url: str
    region: str
    registration_scopes: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.start_url:
            raise ConfigurationError(
                f"SSO 세션 '{self.name}'에 sso_start_url이 없습니다",
                config_key="sso_start_url",
            )
        if not self.region:
            raise ConfigurationError(
                f"SSO 세션 '{self.name}'에 sso_region이 없습니다",
                config_key="sso_region",
            )


def _split_scopes(value: str | None) -> list[str]:
    if not value:
        return []
    return [scope.strip() for scope in value.split(",") if scope.strip()]


@dataclass
class ProfileConfig:
    """프로파일 설정

    raw는 선언 순서를 유지한 원시 속성입니다.
    나머지 필드는 raw와 참조한 sso-session에서 해석된 값입니다.
    """

    name: str
    raw: dict[str, str] = field(default_factory=dict)
    file: Path | None = None
    region: str | None = None
    # SSO
    sso_session: str | None = None
    sso_start_url: str | None = None
    sso_region: str | None = None
    sso_account_id: str | None = None
    sso_role_name: str | None = None
    sso_registration_scopes: list[str] = field(default_factory=list)
    # AssumeRole
    role_arn: str | None = None
    source_profile: str | None = None
    external_id: str | None = None
    mfa_serial: str | None = None
    duration_seconds: int | None = None
    role_session_name: str | None = None
    # 외부 헬퍼 / 정적 키
    credential_process: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_session_token: str | None = None

    @classmethod
    def from_raw(
        cls,
        name: str,
        raw: dict[str, str],
        sessions: dict[str, SSOSessionConfig] | None = None,
        file: Path | None = None,
    ) -> ProfileConfig:
        """원시 속성에서 생성

        Raises:
            ConfigurationError: 존재하지 않는 sso_session 참조, 잘못된 duration_seconds
        """
        sessions = sessions or {}

        def get(key: str) -> str | None:
            value = raw.get(key)
            return value.strip() if value and value.strip() else None

        duration = get("duration_seconds")
        if duration is not None:
            try:
                duration_seconds: int | None = int(duration)
            except ValueError as e:
                raise ConfigurationError(
                    f"프로파일 '{name}'의 duration_seconds가 숫자가 아닙니다: {duration}",
                    config_key="duration_seconds",
                    cause=e,
                ) from e
        else:
            duration_seconds = None

        sso_session = get("sso_session")
        sso_start_url = get("sso_start_url")
        sso_region = get("sso_region")
        scopes = _split_scopes(get("sso_registration_scopes"))
        if sso_session:
            session = sessions.get(sso_session)
            if session is None:
                raise ConfigurationError(
                    f"프로파일 '{name}'이 참조하는 sso-session '{sso_session}'이 없습니다",
                    config_key="sso_session",
                )
            sso_start_url = session.start_url
            sso_region = session.region
            scopes = session.registration_scopes or scopes

        return cls(
            name=name,
            raw=dict(raw),
            file=file,
            region=get("region"),
            sso_session=sso_session,
            sso_start_url=sso_start_url,
            sso_region=sso_region,
            sso_account_id=get("sso_account_id"),
            sso_role_name=get("sso_role_name"),
            sso_registration_scopes=scopes,
            role_arn=get("role_arn"),
            source_profile=get("source_profile"),
            external_id=get("external_id"),
            mfa_serial=get("mfa_serial"),
            duration_seconds=duration_seconds,
            role_session_name=get("role_session_name"),
            credential_process=get("credential_process"),
            aws_access_key_id=get("aws_access_key_id"),
            aws_secret_access_key=get("aws_secret_access_key"),
            aws_session_token=get("aws_session_token"),
        )


@dataclass
class ParsedConfig:
    """파싱된 설정 전체

    Attributes:
        sessions: {세션 이름: SSOSessionConfig}
        profiles: {프로파일 이름: ProfileConfig} (선언 순서)
        default_profile: [default] 섹션이 있으면 "default"
        config_path: config 파일 경로
        credentials_path: credentials 파일 경로
    """

    sessions: dict[str, SSOSessionConfig] = field(default_factory=dict)
    profiles: dict[str, ProfileConfig] = field(default_factory=dict)
    default_profile: str | None = None
    config_path: str | None = None
    credentials_path: str | None = None


# =============================================================================
# Loader
# =============================================================================


class Loader:
    """AWS 설정 파일 로더

    Args:
        config_path: config 파일 경로 (기본: AWS_CONFIG_FILE 또는 ~/.aws/config)
        credentials_path: credentials 파일 경로
            (기본: AWS_SHARED_CREDENTIALS_FILE 또는 ~/.aws/credentials)
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        credentials_path: str | Path | None = None,
    ):
        home = Path.home()
        self.config_path = Path(
            config_path or os.environ.get("AWS_CONFIG_FILE") or home / ".aws" / "config"
        ).expanduser()
        self.credentials_path = Path(
            credentials_path
            or os.environ.get("AWS_SHARED_CREDENTIALS_FILE")
            or home / ".aws" / "credentials"
        ).expanduser()

    @staticmethod
    def _read(path: Path) -> configparser.ConfigParser | None:
        if not path.exists():
            return None
        parser = configparser.ConfigParser(interpolation=None, default_section="__credbroker_defaults__")
        try:
            with open(path, encoding="utf-8") as f:
                parser.read_file(f)
        except configparser.Error as e:
            raise ConfigurationError(f"설정 파일 파싱 실패: {path}", cause=e) from e
        return parser

    def load(self) -> ParsedConfig:
        """config / credentials 파일 파싱

        Raises:
            ConfigurationError: 파일 형식 오류, 잘못된 sso-session 참조
        """
        parsed = ParsedConfig(
            config_path=str(self.config_path),
            credentials_path=str(self.credentials_path),
        )

        config = self._read(self.config_path)
        if config is not None:
            raw_profiles: dict[str, dict[str, str]] = {}
            for section in config.sections():
                items = dict(config.items(section))
                if section.startswith("sso-session "):
                    name = section[len("sso-session ") :].strip()
                    parsed.sessions[name] = SSOSessionConfig(
                        name=name,
                        start_url=items.get("sso_start_url", ""),
                        region=items.get("sso_region", ""),
                        registration_scopes=_split_scopes(items.get("sso_registration_scopes")),
                    )
                elif section == "default" or (section.startswith("profile ") and len(section) > 8):
                    name = section[len("profile ") :] if section.startswith("profile ") else section
                    if not is_legal_profile_name(name):
                        continue
                    raw_profiles[name] = items
                else:
                    logger.debug("프로파일이 아닌 섹션 무시: [%s]", section)

            for name, items in raw_profiles.items():
                parsed.profiles[name] = ProfileConfig.from_raw(
                    name, items, parsed.sessions, self.config_path
                )
            if "default" in parsed.profiles:
                parsed.default_profile = "default"

        credentials = self._read(self.credentials_path)
        if credentials is not None:
            for section in credentials.sections():
                items = dict(credentials.items(section))
                existing = parsed.profiles.get(section)
                if existing is not None:
                    for key in STATIC_KEY_FIELDS:
                        if items.get(key) and not getattr(existing, key):
                            setattr(existing, key, items[key].strip())
                    logger.debug("credentials 파일 프로파일 '%s': config 정의 우선", section)
                    continue
                if section == "default" or not is_legal_profile_name(section):
                    continue
                parsed.profiles[section] = ProfileConfig.from_raw(
                    section, items, parsed.sessions, self.credentials_path
                )

        logger.debug(
            "설정 로드 완료: 프로파일 %d개, SSO 세션 %d개",
            len(parsed.profiles),
            len(parsed.sessions),
        )
        return parsed

    def list_profiles(self) -> list[str]:
        return sorted(self.load().profiles)

    def list_sso_sessions(self) -> list[str]:
        return sorted(self.load().sessions)


def load_config(
    config_path: str | Path | None = None,
    credentials_path: str | Path | None = None,
) -> ParsedConfig:
    """설정 파일 로드 편의 함수"""
    return Loader(config_path, credentials_path).load()
