# credbroker/auth/cache/backends.py
"""
보안 저장소 백엔드

- SecretBackend: 문자열 키/값 백엔드 인터페이스
- MemoryBackend: 프로세스 메모리 (테스트/임시용)
- KeyringBackend: OS 비밀 저장소 (macOS Keychain, Windows Credential Manager,
  Secret Service, KWallet, keyring 플러그인)
- EncryptedFileBackend: Fernet 암호화 파일 (OS 저장소가 없을 때의 대체 수단)

open_backend()는 설정의 keyring.backend 순서대로 사용 가능한 백엔드를 엽니다.
"""

from __future__ import annotations

import base64
import importlib
import json
import logging
import os
import secrets
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import keyring
import questionary
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.backends import fail as keyring_fail
from keyring.errors import KeyringError, PasswordDeleteError

from credbroker.settings import FILE_PASSPHRASE_ENV, is_non_interactive

from ..types import StorageError

if TYPE_CHECKING:
    from credbroker.settings import KeyringSettings

logger = logging.getLogger(__name__)


# =============================================================================
# Backend Interface
# =============================================================================


class SecretBackend(ABC):
    """문자열 키/값 비밀 저장소 인터페이스

    값이 없으면 get()은 None을 반환합니다.
    백엔드 오류는 StorageError로 전파합니다.
    """

    name: str = "backend"

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass


class MemoryBackend(SecretBackend):
    """프로세스 메모리 백엔드

    Thread-safe 구현.
    """

    name = "memory"

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


# =============================================================================
# Keyring Backend
# =============================================================================


class KeyringBackend(SecretBackend):
    """OS 비밀 저장소 백엔드

    서비스 이름은 "credbroker-{namespace}" 입니다.
    keyring API는 키 목록을 제공하지 않으므로 인덱스 항목을 별도로 유지합니다.
    """

    name = "keyring"
    INDEX_KEY = "__credbroker_index__"

    def __init__(self, namespace: str, keyring_impl: Any = None):
        self.namespace = namespace
        self.service = f"credbroker-{namespace}"
        self._keyring = keyring_impl if keyring_impl is not None else keyring.get_keyring()

    def _error(self, action: str, key: str, e: Exception) -> StorageError:
        return StorageError(f"키체인 {action} 실패", self.namespace, key, cause=e)

    def get(self, key: str) -> str | None:
        try:
            return self._keyring.get_password(self.service, key)
        except KeyringError as e:
            raise self._error("읽기", key, e) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._keyring.set_password(self.service, key, value)
        except KeyringError as e:
            raise self._error("쓰기", key, e) from e
        keys = self.keys()
        if key not in keys:
            self._write_index(sorted([*keys, key]))

    def delete(self, key: str) -> bool:
        try:
            self._keyring.delete_password(self.service, key)
            deleted = True
        except PasswordDeleteError:
            deleted = False
        except KeyringError as e:
            raise self._error("삭제", key, e) from e
        keys = self.keys()
        if key in keys:
            self._write_index([k for k in keys if k != key])
        return deleted

    def keys(self) -> list[str]:
        try:
            index = self._keyring.get_password(self.service, self.INDEX_KEY)
        except KeyringError as e:
            raise self._error("인덱스 읽기", self.INDEX_KEY, e) from e
        if not index:
            return []
        try:
            return list(json.loads(index))
        except ValueError:
            logger.warning("키체인 인덱스 손상, 초기화합니다: %s", self.service)
            return []

    def _write_index(self, keys: list[str]) -> None:
        try:
            self._keyring.set_password(self.service, self.INDEX_KEY, json.dumps(keys))
        except KeyringError as e:
            logger.warning("키체인 인덱스 갱신 실패 (%s): %s", self.service, e)


# 설정 이름 → keyring 백엔드 클래스
_KEYRING_CLASSES = {
    "keychain": ("keyring.backends.macOS", "Keyring"),
    "wincred": ("keyring.backends.Windows", "WinVaultKeyring"),
    "secret-service": ("keyring.backends.SecretService", "Keyring"),
    "kwallet": ("keyring.backends.kwallet", "DBusKeyring"),
}


def load_keyring(name: str, settings: KeyringSettings) -> Any | None:
    """설정 이름에 해당하는 keyring 구현 로드

    Returns:
        keyring 백엔드 인스턴스 또는 None (이 플랫폼에서 사용 불가)
    """
    if name == "keyring":
        impl = keyring.get_keyring()
        if isinstance(impl, keyring_fail.Keyring):
            return None
        return impl

    module_name, class_name = _KEYRING_CLASSES[name]
    try:
        backend_cls = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        logger.debug("keyring 백엔드 로드 실패 (%s): %s", name, e)
        return None
    if not getattr(backend_cls, "viable", False):
        return None

    impl = backend_cls()
    if name == "keychain":
        impl.keychain = settings.keychain_name
    elif name == "secret-service" and settings.libsecret_collection_name:
        impl.preferred_collection = settings.libsecret_collection_name
    return impl


# =============================================================================
# Encrypted File Backend
# =============================================================================


class PassphraseProvider:
    """암호화 파일 저장소 암호 제공자

    순서: 명시적 값 → CREDBROKER_FILE_PASSPHRASE → 대화형 프롬프트.
    비대화형 모드에서 암호가 없으면 즉시 StorageError를 발생시킵니다.
    한 번 얻은 암호는 프로세스 내에서 재사용합니다.
    """

    def __init__(
        self,
        passphrase: str | None = None,
        prompt: Callable[[str], str | None] | None = None,
    ):
        self._passphrase = passphrase
        self._prompt = prompt or _questionary_password
        self._lock = threading.Lock()

    def __call__(self, namespace: str) -> str:
        with self._lock:
            if self._passphrase:
                return self._passphrase

            passphrase = os.environ.get(FILE_PASSPHRASE_ENV)
            if not passphrase:
                if is_non_interactive():
                    raise StorageError(
                        f"비대화형 모드에서 파일 저장소 암호가 없습니다 ({FILE_PASSPHRASE_ENV} 설정 필요)",
                        namespace,
                    )
                passphrase = self._prompt("credbroker 파일 저장소 암호를 입력하세요")
            if not passphrase:
                raise StorageError("파일 저장소 암호가 입력되지 않았습니다", namespace)

            self._passphrase = passphrase
            return passphrase


def _questionary_password(message: str) -> str | None:
    return questionary.password(message).ask()


class EncryptedFileBackend(SecretBackend):
    """Fernet 암호화 파일 백엔드

    {base_dir}/{namespace}/ 아래 키마다 파일 하나를 둡니다.
    파일 이름은 키의 urlsafe-base64, 암호화 키는 PBKDF2-HMAC-SHA256으로
    base_dir의 salt 파일과 암호에서 유도합니다.
    """

    name = "file"
    SALT_FILE = ".salt"
    ITERATIONS = 480000

    def __init__(
        self,
        base_dir: str | Path,
        namespace: str,
        passphrase: PassphraseProvider | None = None,
    ):
        self.base_dir = Path(base_dir).expanduser()
        self.namespace = namespace
        self.directory = self.base_dir / namespace
        self._passphrase = passphrase or PassphraseProvider()
        self._fernet: Fernet | None = None

    def _salt(self) -> bytes:
        salt_path = self.base_dir / self.SALT_FILE
        if salt_path.exists():
            return salt_path.read_bytes()

        self.base_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
        salt = secrets.token_bytes(16)
        try:
            fd = os.open(salt_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # 다른 프로세스가 먼저 생성
            logger.debug("salt 파일이 동시에 생성됨, 기존 salt 사용: %s", salt_path)
            return salt_path.read_bytes()
        with os.fdopen(fd, "wb") as f:
            f.write(salt)
        return salt

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            try:
                salt = self._salt()
            except OSError as e:
                raise StorageError("파일 저장소 salt 준비 실패", self.namespace, cause=e) from e
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=salt,
                iterations=self.ITERATIONS,
            )
            key = base64.urlsafe_b64encode(kdf.derive(self._passphrase(self.namespace).encode()))
            self._fernet = Fernet(key)
        return self._fernet

    def _path(self, key: str) -> Path:
        filename = base64.urlsafe_b64encode(key.encode()).decode().rstrip("=")
        return self.directory / filename

    @staticmethod
    def _decode_name(filename: str) -> str:
        padding = "=" * (-len(filename) % 4)
        return base64.urlsafe_b64decode(filename + padding).decode()

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return self._cipher().decrypt(path.read_bytes()).decode()
        except InvalidToken as e:
            raise StorageError("파일 저장소 복호화 실패 (암호 불일치?)", self.namespace, key, cause=e) from e
        except OSError as e:
            raise StorageError("파일 저장소 읽기 실패", self.namespace, key, cause=e) from e

    def set(self, key: str, value: str) -> None:
        content = self._cipher().encrypt(value.encode())
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(content)
        except OSError as e:
            raise StorageError("파일 저장소 쓰기 실패", self.namespace, key, cause=e) from e

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError("파일 저장소 삭제 실패", self.namespace, key, cause=e) from e

    def keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        result = []
        for path in self.directory.iterdir():
            if path.is_file() and not path.name.startswith("."):
                try:
                    result.append(self._decode_name(path.name))
                except ValueError:
                    logger.debug("알 수 없는 파일 무시: %s", path)
        return sorted(result)


# =============================================================================
# Backend 선택
# =============================================================================


def open_backend(
    namespace: str,
    settings: KeyringSettings,
    passphrase: PassphraseProvider | None = None,
) -> SecretBackend:
    """설정된 순서대로 사용 가능한 첫 번째 백엔드를 연다

    Args:
        namespace: 저장소 네임스페이스
        settings: keyring 설정
        passphrase: 파일 백엔드 암호 제공자

    Raises:
        StorageError: 사용 가능한 백엔드가 없음
    """
    for name in settings.allowed_backends:
        if name == "file":
            logger.debug("보안 저장소 백엔드: file (%s)", settings.file_dir)
            return EncryptedFileBackend(settings.file_dir, namespace, passphrase)

        impl = load_keyring(name, settings)
        if impl is not None:
            logger.debug("보안 저장소 백엔드: %s (%s)", name, type(impl).__name__)
            return KeyringBackend(namespace, impl)
        logger.debug("보안 저장소 백엔드 사용 불가: %s", name)

    raise StorageError(
        f"사용 가능한 보안 저장소 백엔드가 없습니다: {', '.join(settings.allowed_backends)}",
        namespace,
    )
