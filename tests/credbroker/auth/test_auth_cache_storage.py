# tests/credbroker/auth/test_auth_cache_storage.py
"""
credbroker/auth/cache/storage.py 테스트

테스트 대상:
- SecureStorage: 저장/조회/삭제, 값 대체, 손상된 값
- SSOTokenStorage: 만료 토큰 갱신 규칙
- IAMCredentialStorage / SessionCredentialStorage
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from credbroker.auth.cache import SSOToken
from credbroker.auth.cache.backends import MemoryBackend
from credbroker.auth.cache.storage import (
    IAMCredentialStorage,
    SecureStorage,
    SessionCredentialStorage,
    SSOTokenStorage,
)
from credbroker.auth.types import Credentials, KeyNotFoundError, StorageError

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
START_URL = "https://example.awsapps.com/start"


def sso_token(expiry=NOW - timedelta(minutes=1), refresh_token="refresh-1", region="us-east-1"):
    return SSOToken(
        access_token="old-access",
        expiry=expiry,
        client_id="client-id",
        client_secret="client-secret",
        refresh_token=refresh_token,
        region=region,
    )


def make_token_storage(memory_storage, oidc):
    factory = MagicMock(return_value=oidc)
    storage = SSOTokenStorage(memory_storage("aws-sso-tokens"), client_factory=factory, clock=lambda: NOW)
    return storage, factory


class TestSecureStorage:
    """SecureStorage 테스트"""

    def test_store_and_retrieve(self, memory_storage):
        storage = memory_storage()
        storage.store("dev", {"a": 1})
        assert storage.retrieve("dev") == {"a": 1}

    def test_store_supersedes(self, memory_storage):
        storage = memory_storage()
        storage.store("dev", {"a": 1, "b": 2})
        storage.store("dev", {"c": 3})
        assert storage.retrieve("dev") == {"c": 3}

    def test_missing_key(self, memory_storage):
        with pytest.raises(KeyNotFoundError) as exc_info:
            memory_storage("ns").retrieve("nope")
        assert exc_info.value.namespace == "ns"
        assert exc_info.value.key == "nope"

    def test_corrupt_value(self):
        backend = MemoryBackend()
        backend.set("dev", "{broken")
        storage = SecureStorage("ns", backend=backend)
        with pytest.raises(StorageError):
            storage.retrieve("dev")

    def test_clear_and_list(self, memory_storage):
        storage = memory_storage()
        storage.store("b", 1)
        storage.store("a", 2)
        assert storage.list_keys() == ["a", "b"]
        assert storage.clear("a") is True
        assert storage.clear("a") is False
        assert storage.list_keys() == ["b"]


class TestSSOTokenStorage:
    """SSOTokenStorage 갱신 규칙 테스트"""

    def test_missing_token(self, memory_storage):
        storage, factory = make_token_storage(memory_storage, MagicMock())
        lookup = storage.get_valid_token(START_URL)
        assert lookup.token is None
        factory.assert_not_called()

    def test_valid_token_returned_as_is(self, memory_storage):
        storage, factory = make_token_storage(memory_storage, MagicMock())
        token = sso_token(expiry=NOW + timedelta(hours=1))
        storage.store_token(START_URL, token)

        lookup = storage.get_valid_token(START_URL)
        assert lookup.token == token
        assert lookup.refreshed is False
        factory.assert_not_called()

    def test_expired_token_refreshed_once(self, memory_storage):
        """만료된 토큰은 정확히 한 번 갱신되고 저장됨"""
        oidc = MagicMock()
        oidc.create_token.return_value = {
            "accessToken": "new-access",
            "expiresIn": 3600,
            "refreshToken": "refresh-2",
        }
        storage, factory = make_token_storage(memory_storage, oidc)
        storage.store_token(START_URL, sso_token())

        lookup = storage.get_valid_token(START_URL)

        assert lookup.refreshed is True
        assert lookup.token.access_token == "new-access"
        assert lookup.token.refresh_token == "refresh-2"
        assert lookup.token.client_id == "client-id"
        factory.assert_called_once_with("sso-oidc", "us-east-1")
        oidc.create_token.assert_called_once_with(
            clientId="client-id",
            clientSecret="client-secret",
            grantType="refresh_token",
            refreshToken="refresh-1",
        )
        assert storage.get_token(START_URL).access_token == "new-access"

    def test_refresh_keeps_old_refresh_token(self, memory_storage):
        oidc = MagicMock()
        oidc.create_token.return_value = {"accessToken": "new-access", "expiresIn": 3600}
        storage, _ = make_token_storage(memory_storage, oidc)
        storage.store_token(START_URL, sso_token())

        assert storage.get_valid_token(START_URL).token.refresh_token == "refresh-1"

    def test_expired_without_refresh_token_is_cleared(self, memory_storage):
        oidc = MagicMock()
        storage, factory = make_token_storage(memory_storage, oidc)
        storage.store_token(START_URL, sso_token(refresh_token=None))

        assert storage.get_valid_token(START_URL).token is None
        factory.assert_not_called()
        assert storage.get_token(START_URL) is None

    def test_expired_without_region_not_refreshed(self, memory_storage):
        """리전 없는 토큰은 갱신하지 않음 (저장된 토큰은 유지)"""
        storage, factory = make_token_storage(memory_storage, MagicMock())
        storage.store_token(START_URL, sso_token(region=None))

        assert storage.get_valid_token(START_URL).token is None
        factory.assert_not_called()
        assert storage.get_token(START_URL) is not None

    def test_unauthorized_refresh_clears_token(self, memory_storage):
        oidc = MagicMock()
        oidc.create_token.side_effect = ClientError(
            {"Error": {"Code": "InvalidGrantException", "Message": "expired"}}, "CreateToken"
        )
        storage, _ = make_token_storage(memory_storage, oidc)
        storage.store_token(START_URL, sso_token())

        assert storage.get_valid_token(START_URL).token is None
        assert storage.get_token(START_URL) is None

    def test_transient_refresh_failure_keeps_token(self, memory_storage):
        oidc = MagicMock()
        oidc.create_token.side_effect = ClientError(
            {"Error": {"Code": "InternalServerException", "Message": "boom"}}, "CreateToken"
        )
        storage, _ = make_token_storage(memory_storage, oidc)
        storage.store_token(START_URL, sso_token())

        assert storage.get_valid_token(START_URL).token is None
        assert storage.get_token(START_URL) is not None

    def test_malformed_entry(self, memory_storage):
        storage, _ = make_token_storage(memory_storage, MagicMock())
        storage.storage.store(START_URL, {"Expiry": "2025-01-01T00:00:00Z"})
        assert storage.get_token(START_URL) is None


class TestIAMCredentialStorage:
    """IAMCredentialStorage 테스트"""

    def test_round_trip(self, memory_storage):
        storage = IAMCredentialStorage(memory_storage("aws-iam-credentials"))
        storage.store("dev", Credentials(access_key_id="AKIA1", secret_access_key="secret"))

        creds = storage.get("dev")
        assert creds.access_key_id == "AKIA1"
        assert creds.can_expire is False
        assert storage.list_profiles() == ["dev"]

    def test_missing(self, memory_storage):
        storage = IAMCredentialStorage(memory_storage())
        with pytest.raises(KeyNotFoundError):
            storage.get("dev")


class TestSessionCredentialStorage:
    """SessionCredentialStorage 테스트"""

    def test_round_trip(self, memory_storage, credentials_factory):
        storage = SessionCredentialStorage(memory_storage("aws-session-credentials"))
        creds = credentials_factory()
        storage.store("dev", creds)
        assert storage.get("dev") == creds

    def test_missing_returns_none(self, memory_storage):
        assert SessionCredentialStorage(memory_storage()).get("dev") is None

    def test_expired_entry_still_returned(self, memory_storage, credentials_factory):
        """만료 판단은 호출자 책임"""
        storage = SessionCredentialStorage(memory_storage())
        storage.store("dev", credentials_factory(expires_in=timedelta(minutes=-5)))
        cached = storage.get("dev")
        assert cached is not None
        assert cached.is_valid() is False

    def test_legacy_entry_without_can_expire(self, memory_storage):
        storage = SessionCredentialStorage(memory_storage())
        storage.storage.store(
            "dev",
            {"AccessKeyId": "ASIA1", "SecretAccessKey": "s", "SessionToken": "t", "Expires": "2099-01-01T00:00:00Z"},
        )
        assert storage.get("dev").can_expire is True

    def test_empty_access_key_rejected(self, memory_storage):
        storage = SessionCredentialStorage(memory_storage())
        with pytest.raises(ValueError):
            storage.store("dev", Credentials(access_key_id="", secret_access_key="s"))

    def test_store_quietly_swallows_storage_error(self, credentials_factory):
        backend = MagicMock()
        backend.set.side_effect = StorageError("locked", "aws-session-credentials", "dev")
        storage = SessionCredentialStorage(SecureStorage("aws-session-credentials", backend=backend))
        storage.store_quietly("dev", credentials_factory())
        backend.set.assert_called_once()
