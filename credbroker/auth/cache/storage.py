# credbroker/auth/cache/storage.py
"""
네임스페이스 단위 보안 저장소와 용도별 저장소

- SecureStorage: retrieve / store / clear / list_keys (JSON 값)
- SSOTokenStorage: SSO 토큰 (aws-sso-tokens), 조회 시 만료 토큰 자동 갱신
- IAMCredentialStorage: 장기 IAM 키 (aws-iam-credentials)
- SessionCredentialStorage: 임시 세션 자격 증명 (aws-session-credentials)

저장소는 TTL 기반 삭제를 하지 않습니다.
유효성(만료 시각) 판단은 호출자 책임이며, 오래된 항목은 다음 저장 시 덮어씁니다.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from credbroker.exceptions import is_access_denied, is_unauthorized
from credbroker.settings import Settings

from ..types import Credentials, KeyNotFoundError, StorageError
from ..types.types import utcnow
from .backends import PassphraseProvider, SecretBackend, open_backend
from .cache import SSOToken

if TYPE_CHECKING:
    from ..context import Context
    from ..session import ClientFactory

logger = logging.getLogger(__name__)

IAM_CREDENTIALS_NAMESPACE = "aws-iam-credentials"
SSO_TOKENS_NAMESPACE = "aws-sso-tokens"
SESSION_CREDENTIALS_NAMESPACE = "aws-session-credentials"


# =============================================================================
# Secure Storage
# =============================================================================


class SecureStorage:
    """네임스페이스 단위 보안 키/값 저장소

    백엔드는 첫 사용 시점에 엽니다.
    같은 프로세스 안에서 쓴 값은 즉시 다시 읽을 수 있습니다.
    프로세스 간 동시 쓰기는 마지막 쓰기가 이깁니다.
    """

    def __init__(
        self,
        namespace: str,
        settings: Settings | None = None,
        backend: SecretBackend | None = None,
        passphrase: PassphraseProvider | None = None,
    ):
        self.namespace = namespace
        self._settings = settings or Settings()
        self._backend = backend
        self._passphrase = passphrase

    @property
    def backend(self) -> SecretBackend:
        if self._backend is None:
            self._backend = open_backend(self.namespace, self._settings.keyring, self._passphrase)
        return self._backend

    def retrieve(self, key: str) -> Any:
        """값 조회

        Raises:
            KeyNotFoundError: 키 없음
            StorageError: 백엔드 오류 / 손상된 값
        """
        raw = self.backend.get(key)
        if raw is None:
            raise KeyNotFoundError(self.namespace, key)
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError("저장된 값이 손상되었습니다", self.namespace, key, cause=e) from e

    def store(self, key: str, value: Any) -> None:
        """값 저장 (기존 값을 완전히 대체)"""
        self.backend.set(key, json.dumps(value))
        logger.debug("저장소 쓰기: %s/%s", self.namespace, key)

    def clear(self, key: str) -> bool:
        """값 삭제

        Returns:
            True if 값이 있었음
        """
        deleted = self.backend.delete(key)
        logger.debug("저장소 삭제: %s/%s (%s)", self.namespace, key, deleted)
        return deleted

    def list_keys(self) -> list[str]:
        return self.backend.keys()


# =============================================================================
# SSO Token Storage
# =============================================================================


@dataclass(frozen=True)
class TokenLookup:
    """get_valid_token() 결과

    Attributes:
        token: 유효한 토큰 (없으면 None)
        refreshed: 이번 조회에서 갱신이 일어났는지 여부
    """

    token: SSOToken | None
    refreshed: bool = False


class SSOTokenStorage:
    """SSO 토큰 저장소

    키는 start URL(+ sso-session 이름)입니다.
    """

    def __init__(
        self,
        storage: SecureStorage | None = None,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage or SecureStorage(SSO_TOKENS_NAMESPACE)
        self._client_factory = client_factory
        self._clock = clock

    def get_token(self, key: str) -> SSOToken | None:
        """저장된 토큰 조회 (유효성 검사 없음, 읽기 실패 시 None)"""
        try:
            return SSOToken.from_dict(self.storage.retrieve(key))
        except KeyNotFoundError:
            return None
        except StorageError as e:
            logger.debug("SSO 토큰 읽기 실패 (%s): %s", key, e)
            return None
        except (KeyError, ValueError, TypeError) as e:
            logger.debug("SSO 토큰 형식 오류 (%s): %s", key, e)
            return None

    def get_valid_token(self, key: str, ctx: Context | None = None) -> TokenLookup:
        """유효한 토큰 조회 (만료 시 갱신 시도)

        - 만료 전: 그대로 반환
        - 만료 + refresh_token 없음: 폐기하고 None
        - 만료 + region 없음: 갱신하지 않고 None
        - 만료 + 갱신 가능: refresh_token으로 한 번 갱신 후 저장

        Returns:
            TokenLookup
        """
        from ..sso.device import refresh_sso_token

        token = self.get_token(key)
        if token is None:
            return TokenLookup(None)

        if token.is_valid(self._clock()):
            return TokenLookup(token)

        if not token.refresh_token:
            logger.debug("만료된 SSO 토큰 (refresh_token 없음), 폐기: %s", key)
            self.clear_token(key)
            return TokenLookup(None)

        if not token.region:
            logger.error("SSO 토큰에 리전 정보가 없어 갱신할 수 없습니다: %s", key)
            return TokenLookup(None)

        try:
            new_token = refresh_sso_token(token, client_factory=self._client_factory, ctx=ctx)
        except ClientError as e:
            logger.debug("SSO 토큰 갱신 실패 (%s): %s", key, e)
            if is_unauthorized(e) or is_access_denied(e):
                self.clear_token(key)
            return TokenLookup(None)
        except BotoCoreError as e:
            logger.debug("SSO 토큰 갱신 실패 (%s): %s", key, e)
            return TokenLookup(None)

        logger.debug("SSO 토큰 갱신 완료: %s (만료 %s)", key, new_token.expiry)
        self.store_token(key, new_token)
        return TokenLookup(new_token, refreshed=True)

    def store_token(self, key: str, token: SSOToken) -> None:
        """토큰 저장 (실패는 debug 로그만)"""
        try:
            self.storage.store(key, token.to_dict())
        except StorageError as e:
            logger.debug("SSO 토큰 저장 실패 (%s): %s", key, e)

    def clear_token(self, key: str) -> None:
        """토큰 삭제 (실패는 debug 로그만)"""
        try:
            self.storage.clear(key)
        except StorageError as e:
            logger.debug("SSO 토큰 삭제 실패 (%s): %s", key, e)


# =============================================================================
# Credential Storages
# =============================================================================


class IAMCredentialStorage:
    """장기 IAM 액세스 키 저장소 (키: 프로파일 이름)"""

    def __init__(self, storage: SecureStorage | None = None):
        self.storage = storage or SecureStorage(IAM_CREDENTIALS_NAMESPACE)

    def get(self, profile_name: str) -> Credentials:
        """
        Raises:
            KeyNotFoundError: 저장된 키 없음
            StorageError: 백엔드 오류
        """
        return Credentials.from_dict(self.storage.retrieve(profile_name))

    def store(self, profile_name: str, credentials: Credentials) -> None:
        self.storage.store(profile_name, credentials.to_dict())

    def clear(self, profile_name: str) -> bool:
        return self.storage.clear(profile_name)

    def list_profiles(self) -> list[str]:
        return self.storage.list_keys()


class SessionCredentialStorage:
    """임시 세션 자격 증명 저장소 (키: 프로파일 이름 등)"""

    def __init__(self, storage: SecureStorage | None = None):
        self.storage = storage or SecureStorage(SESSION_CREDENTIALS_NAMESPACE)

    def get(self, key: str) -> Credentials | None:
        """저장된 자격 증명 조회 (없거나 읽기 실패 시 None)

        만료 여부는 확인하지 않습니다.
        CanExpire가 기록되지 않은 항목은 만료 가능한 것으로 간주합니다.
        """
        try:
            data = self.storage.retrieve(key)
        except KeyNotFoundError:
            return None
        except StorageError as e:
            logger.debug("세션 자격 증명 읽기 실패 (%s): %s", key, e)
            return None
        try:
            return Credentials.from_dict(data, default_can_expire=True)
        except (AttributeError, ValueError, TypeError) as e:
            logger.debug("세션 자격 증명 형식 오류 (%s): %s", key, e)
            return None

    def store(self, key: str, credentials: Credentials) -> None:
        """
        Raises:
            ValueError: access_key_id가 비어 있음
            StorageError: 백엔드 오류
        """
        if not credentials.access_key_id:
            raise ValueError("access_key_id가 비어 있는 자격 증명은 저장할 수 없습니다")
        self.storage.store(key, credentials.to_dict())

    def store_quietly(self, key: str, credentials: Credentials) -> None:
        """저장 실패를 debug 로그로만 남기는 저장"""
        try:
            self.store(key, credentials)
        except (StorageError, ValueError) as e:
            logger.debug("세션 자격 증명 저장 실패 (%s): %s", key, e)

    def clear(self, key: str) -> bool:
        return self.storage.clear(key)

    def list_keys(self) -> list[str]:
        return self.storage.list_keys()
