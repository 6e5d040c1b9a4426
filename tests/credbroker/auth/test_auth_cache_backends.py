# tests/credbroker/auth/test_auth_cache_backends.py
"""
credbroker/auth/cache/backends.py 테스트

테스트 대상:
- MemoryBackend: 기본 get/set/delete/keys
- KeyringBackend: 서비스 이름, 인덱스 유지, 삭제 실패 처리
- PassphraseProvider: 명시적 암호, 환경 변수, 비대화형 모드
- EncryptedFileBackend: 암호화 저장, 암호 불일치, 파일 권한
- open_backend: 설정 기반 백엔드 선택
"""

import os
import stat
from unittest.mock import patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from credbroker.auth.cache.backends import (
    EncryptedFileBackend,
    KeyringBackend,
    MemoryBackend,
    PassphraseProvider,
    open_backend,
)
from credbroker.auth.types import StorageError
from credbroker.settings import KeyringSettings


class FakeKeyring:
    """keyring 백엔드 흉내 (서비스, 사용자) -> 암호"""

    def __init__(self):
        self.passwords: dict[tuple[str, str], str] = {}
        self.fail = False

    def get_password(self, service, username):
        if self.fail:
            raise KeyringError("locked")
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        if self.fail:
            raise KeyringError("locked")
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("not found")
        del self.passwords[(service, username)]


class TestMemoryBackend:
    """MemoryBackend 테스트"""

    def test_basic_operations(self):
        backend = MemoryBackend()
        assert backend.get("a") is None
        backend.set("b", "2")
        backend.set("a", "1")
        assert backend.get("a") == "1"
        assert backend.keys() == ["a", "b"]
        assert backend.delete("a") is True
        assert backend.delete("a") is False
        assert backend.keys() == ["b"]


class TestKeyringBackend:
    """KeyringBackend 테스트"""

    def test_service_name(self):
        backend = KeyringBackend("aws-sso-tokens", FakeKeyring())
        assert backend.service == "credbroker-aws-sso-tokens"

    def test_set_maintains_index(self):
        impl = FakeKeyring()
        backend = KeyringBackend("ns", impl)
        backend.set("dev", "v1")
        backend.set("prod", "v2")
        backend.set("dev", "v3")

        assert backend.get("dev") == "v3"
        assert backend.keys() == ["dev", "prod"]
        assert (backend.service, KeyringBackend.INDEX_KEY) in impl.passwords

    def test_delete(self):
        backend = KeyringBackend("ns", FakeKeyring())
        backend.set("dev", "v1")
        assert backend.delete("dev") is True
        assert backend.get("dev") is None
        assert backend.keys() == []

    def test_delete_missing_returns_false(self):
        backend = KeyringBackend("ns", FakeKeyring())
        assert backend.delete("missing") is False

    def test_locked_keyring_raises_storage_error(self):
        impl = FakeKeyring()
        impl.fail = True
        backend = KeyringBackend("ns", impl)
        with pytest.raises(StorageError) as exc_info:
            backend.get("dev")
        assert exc_info.value.namespace == "ns"
        assert exc_info.value.key == "dev"

    def test_corrupt_index(self):
        impl = FakeKeyring()
        backend = KeyringBackend("ns", impl)
        impl.passwords[(backend.service, KeyringBackend.INDEX_KEY)] = "{not json"
        assert backend.keys() == []


class TestPassphraseProvider:
    """PassphraseProvider 테스트"""

    def test_explicit(self):
        assert PassphraseProvider("secret")("ns") == "secret"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("CREDBROKER_FILE_PASSPHRASE", "from-env")
        assert PassphraseProvider()("ns") == "from-env"

    def test_non_interactive_without_env(self):
        """비대화형 모드에서 암호가 없으면 프롬프트 없이 실패"""
        prompted = []
        provider = PassphraseProvider(prompt=lambda message: prompted.append(message) or "x")
        with pytest.raises(StorageError):
            provider("ns")
        assert prompted == []

    def test_prompt_result_reused(self, monkeypatch):
        monkeypatch.delenv("CREDBROKER_NON_INTERACTIVE")
        monkeypatch.setattr("credbroker.auth.cache.backends.is_non_interactive", lambda: False)
        calls = []
        provider = PassphraseProvider(prompt=lambda message: calls.append(message) or "typed")
        assert provider("ns") == "typed"
        assert provider("ns") == "typed"
        assert len(calls) == 1


class TestEncryptedFileBackend:
    """EncryptedFileBackend 테스트"""

    def test_round_trip(self, tmp_path):
        backend = EncryptedFileBackend(tmp_path / "store", "aws-sso-tokens", PassphraseProvider("pw"))
        backend.set("https://example.awsapps.com/start", '{"a": 1}')

        assert backend.get("https://example.awsapps.com/start") == '{"a": 1}'
        assert backend.keys() == ["https://example.awsapps.com/start"]
        assert backend.get("missing") is None

    def test_contents_are_encrypted(self, tmp_path):
        backend = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw"))
        backend.set("dev", "plain-secret-value")
        files = list((tmp_path / "ns").iterdir())
        assert len(files) == 1
        assert b"plain-secret-value" not in files[0].read_bytes()

    def test_file_permissions(self, tmp_path):
        backend = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw"))
        backend.set("dev", "value")
        path = next((tmp_path / "ns").iterdir())
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(tmp_path / ".salt").st_mode) == 0o600

    def test_wrong_passphrase(self, tmp_path):
        EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("right")).set("dev", "value")
        other = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("wrong"))
        with pytest.raises(StorageError):
            other.get("dev")

    def test_shared_salt_across_instances(self, tmp_path):
        EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw")).set("dev", "value")
        reopened = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw"))
        assert reopened.get("dev") == "value"

    def test_salt_created_concurrently(self, tmp_path):
        """다른 프로세스가 salt를 먼저 만들면 그 salt 사용"""
        existing = b"s" * 16
        real_open = os.open

        def racing_open(path, flags, mode=0o777):
            if str(path).endswith(".salt"):
                (tmp_path / ".salt").write_bytes(existing)
                raise FileExistsError(path)
            return real_open(path, flags, mode)

        backend = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw"))
        with patch("credbroker.auth.cache.backends.os.open", side_effect=racing_open):
            backend.set("dev", "value")

        assert (tmp_path / ".salt").read_bytes() == existing
        reopened = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw"))
        assert reopened.get("dev") == "value"

    def test_delete(self, tmp_path):
        backend = EncryptedFileBackend(tmp_path, "ns", PassphraseProvider("pw"))
        backend.set("dev", "value")
        assert backend.delete("dev") is True
        assert backend.delete("dev") is False
        assert backend.keys() == []


class TestOpenBackend:
    """open_backend 테스트"""

    def test_file_backend(self, tmp_path):
        settings = KeyringSettings(backend="file", file_dir=tmp_path)
        backend = open_backend("ns", settings, PassphraseProvider("pw"))
        assert isinstance(backend, EncryptedFileBackend)
        assert backend.directory == tmp_path / "ns"

    def test_falls_back_to_file(self, tmp_path, monkeypatch):
        """keyring 사용 불가 시 다음 백엔드"""
        monkeypatch.setattr("credbroker.auth.cache.backends.load_keyring", lambda name, settings: None)
        backend = open_backend("ns", KeyringSettings(file_dir=tmp_path))
        assert isinstance(backend, EncryptedFileBackend)

    def test_keyring_backend(self, monkeypatch):
        impl = FakeKeyring()
        monkeypatch.setattr("credbroker.auth.cache.backends.load_keyring", lambda name, settings: impl)
        backend = open_backend("ns", KeyringSettings())
        assert isinstance(backend, KeyringBackend)

    def test_no_backend_available(self, monkeypatch):
        monkeypatch.setattr("credbroker.auth.cache.backends.load_keyring", lambda name, settings: None)
        with pytest.raises(StorageError):
            open_backend("ns", KeyringSettings(backend="keychain"))
