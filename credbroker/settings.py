"""
credbroker/settings.py - 사용자 설정 및 환경 변수

~/.credbroker/config.yaml (CREDBROKER_CONFIG_DIR로 디렉토리 변경 가능)을
읽어 Settings 객체로 반환합니다. 파일이 없으면 기본값을 사용합니다.

config.yaml 예시:
    keyring:
      backend: file
      file_dir: ~/.credbroker/store
    credential_process_auto_login: true
    access_request_url: https://commonfate.example.com
    default_region: ap-northeast-2
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from credbroker.exceptions import BrokerError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "CREDBROKER_CONFIG_DIR"
DEBUG_ENV = "CREDBROKER_DEBUG"
NON_INTERACTIVE_ENVS = ("CREDBROKER_NON_INTERACTIVE", "CREDBROKER_NO_ALIAS")
FILE_PASSPHRASE_ENV = "CREDBROKER_FILE_PASSPHRASE"

DEFAULT_REGION = "us-east-1"
DEFAULT_SSO_CLIENT_NAME = "credbroker-cli"

# keyring.backend 허용값
KEYRING_BACKENDS = ("keychain", "wincred", "secret-service", "kwallet", "keyring", "file")

_TRUTHY = {"1", "true", "yes", "on"}


# =============================================================================
# 환경 변수 플래그
# =============================================================================


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def is_debug() -> bool:
    """진단 로깅 플래그 (CREDBROKER_DEBUG)"""
    return _env_flag(DEBUG_ENV)


def is_non_interactive() -> bool:
    """비대화형 모드 여부

    CREDBROKER_NON_INTERACTIVE / CREDBROKER_NO_ALIAS 가 설정되었거나
    stdin이 터미널이 아니면 프롬프트를 띄우지 않습니다.
    """
    if any(_env_flag(name) for name in NON_INTERACTIVE_ENVS):
        return True
    try:
        return not sys.stdin.isatty()
    except (AttributeError, ValueError):
        return True


def env_default_region() -> str | None:
    """AWS_REGION / AWS_DEFAULT_REGION 환경 변수"""
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION") or None


def get_config_dir() -> Path:
    """설정 디렉토리 (~/.credbroker)"""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".credbroker"


# =============================================================================
# Settings
# =============================================================================


class SettingsError(BrokerError):
    """config.yaml 파싱/검증 실패"""


@dataclass
class KeyringSettings:
    """보안 저장소 백엔드 설정

    Attributes:
        backend: 백엔드 종류 (KEYRING_BACKENDS 중 하나, None이면 자동 선택)
        keychain_name: macOS 키체인 이름
        file_dir: 암호화 파일 저장소 디렉토리
        libsecret_collection_name: Secret Service 컬렉션 이름
    """

    backend: str | None = None
    keychain_name: str = "login"
    file_dir: Path = field(default_factory=lambda: get_config_dir() / "store")
    libsecret_collection_name: str | None = None

    @property
    def allowed_backends(self) -> list[str]:
        """시도할 백엔드 순서"""
        if self.backend:
            return [self.backend]
        return ["keyring", "file"]


@dataclass
class Settings:
    """credbroker 사용자 설정"""

    keyring: KeyringSettings = field(default_factory=KeyringSettings)
    credential_process_auto_login: bool = False
    disable_credential_process_cache: bool = False
    access_request_url: str | None = None
    default_region: str | None = None
    export_sso_token: bool = False
    sso_client_name: str = DEFAULT_SSO_CLIENT_NAME

    def resolve_default_region(self) -> str:
        """기본 리전: 설정 → 환경 변수 → us-east-1"""
        return self.default_region or env_default_region() or DEFAULT_REGION

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """딕셔너리에서 생성

        Raises:
            SettingsError: 허용되지 않은 keyring.backend
        """
        keyring_data = data.get("keyring") or {}
        backend = keyring_data.get("backend")
        if backend is not None and backend not in KEYRING_BACKENDS:
            raise SettingsError(
                f"지원하지 않는 keyring.backend: {backend}",
                details={"allowed": list(KEYRING_BACKENDS)},
            )

        keyring_settings = KeyringSettings(backend=backend)
        if keyring_data.get("keychain_name"):
            keyring_settings.keychain_name = keyring_data["keychain_name"]
        if keyring_data.get("file_dir"):
            keyring_settings.file_dir = Path(keyring_data["file_dir"]).expanduser()
        keyring_settings.libsecret_collection_name = keyring_data.get("libsecret_collection_name")

        return cls(
            keyring=keyring_settings,
            credential_process_auto_login=bool(data.get("credential_process_auto_login", False)),
            disable_credential_process_cache=bool(data.get("disable_credential_process_cache", False)),
            access_request_url=data.get("access_request_url"),
            default_region=data.get("default_region"),
            export_sso_token=bool(data.get("export_sso_token", False)),
            sso_client_name=data.get("sso_client_name") or DEFAULT_SSO_CLIENT_NAME,
        )


def load_settings(config_dir: Path | None = None) -> Settings:
    """config.yaml 로드

    Args:
        config_dir: 설정 디렉토리 (기본: get_config_dir())

    Returns:
        Settings (파일이 없으면 기본값)

    Raises:
        SettingsError: YAML 형식 오류
    """
    config_file = (config_dir or get_config_dir()) / "config.yaml"
    if not config_file.exists():
        logger.debug("설정 파일 없음, 기본값 사용: %s", config_file)
        return Settings()

    try:
        with config_file.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise SettingsError(f"설정 파일 파싱 실패: {config_file}", cause=e) from e

    if not isinstance(data, dict):
        raise SettingsError(f"설정 파일 최상위는 매핑이어야 합니다: {config_file}")

    logger.debug("설정 파일 로드: %s", config_file)
    return Settings.from_dict(data)
