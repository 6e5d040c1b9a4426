"""
tests/conftest.py - pytest 공통 픽스처

AWS API 모킹, 메모리 저장소, 가짜 시계, 임시 AWS 설정 파일 헬퍼를 제공합니다.

Usage:
    def test_something(memory_storage, aws_config, fake_clock):
        profiles = aws_config("[profile dev]\nregion = ap-northeast-2\n")
        ctx = fake_clock.context()
"""

import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from credbroker.auth.cache.backends import MemoryBackend  # noqa: E402
from credbroker.auth.cache.storage import SecureStorage  # noqa: E402
from credbroker.auth.config.profiles import Profiles, load_profiles  # noqa: E402
from credbroker.auth.context import Context  # noqa: E402
from credbroker.auth.types import Credentials  # noqa: E402
from credbroker.auth.types.types import utcnow  # noqa: E402

# =============================================================================
# 환경 설정
# =============================================================================


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """테스트 환경 설정

    실제 ~/.aws, ~/.credbroker, 키체인에 닿지 않도록 경로와 플래그를 격리합니다.
    """
    monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-northeast-2")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "aws" / "config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "aws" / "credentials"))
    monkeypatch.setenv("CREDBROKER_CONFIG_DIR", str(tmp_path / "credbroker"))
    monkeypatch.setenv("CREDBROKER_NON_INTERACTIVE", "1")
    monkeypatch.setenv("OKTA_CONFIG", str(tmp_path / "okta_aws_login_config"))
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_REGION", raising=False)
    monkeypatch.delenv("AWS_SESSION_TOKEN", raising=False)
    monkeypatch.delenv("CREDBROKER_DEBUG", raising=False)
    monkeypatch.delenv("CREDBROKER_FILE_PASSPHRASE", raising=False)

    yield


# =============================================================================
# 저장소 / 자격 증명
# =============================================================================


@pytest.fixture
def memory_storage():
    """메모리 백엔드 SecureStorage 팩토리"""

    def _make(namespace: str = "test") -> SecureStorage:
        return SecureStorage(namespace, backend=MemoryBackend())

    return _make


def make_credentials(
    access_key_id: str = "ASIATEST123",
    expires_in: timedelta | None = timedelta(hours=1),
    source: str = "TEST",
) -> Credentials:
    """테스트용 자격 증명 (expires_in=None이면 만료 없음)"""
    if expires_in is None:
        return Credentials(access_key_id=access_key_id, secret_access_key="secret", source=source)
    return Credentials(
        access_key_id=access_key_id,
        secret_access_key="secret",
        session_token="token",
        can_expire=True,
        expires_at=utcnow() + expires_in,
        source=source,
    )


@pytest.fixture
def credentials_factory():
    return make_credentials


# =============================================================================
# AWS 설정 파일
# =============================================================================


@pytest.fixture
def aws_config(tmp_path):
    """임시 config / credentials 파일을 쓰고 Profiles 반환"""

    def _write(config: str = "", credentials: str = "") -> Profiles:
        aws_dir = tmp_path / "aws"
        aws_dir.mkdir(exist_ok=True)
        config_path = aws_dir / "config"
        credentials_path = aws_dir / "credentials"
        config_path.write_text(config, encoding="utf-8")
        credentials_path.write_text(credentials, encoding="utf-8")
        return load_profiles(config_path, credentials_path)

    return _write


# =============================================================================
# 가짜 시계
# =============================================================================


class FakeClock:
    """Context용 가짜 단조 시계

    wait()가 호출되면 실제로 자지 않고 시간만 앞으로 이동합니다.
    """

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.waits: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def wait(self, seconds: float) -> None:
        self.waits.append(seconds)
        self.now += seconds

    def context(self, timeout: float | None = None) -> Context:
        return Context(timeout=timeout, clock=self, waiter=self.wait)


@pytest.fixture
def fake_clock():
    return FakeClock()


# =============================================================================
# AWS 모킹 픽스처
# =============================================================================


@pytest.fixture
def mock_sts_client():
    """STS 클라이언트 모킹"""
    mock_client = MagicMock()

    mock_client.get_caller_identity.return_value = {
        "UserId": "AIDATEST123",
        "Account": "123456789012",
        "Arn": "arn:aws:iam::123456789012:user/test-user",
    }

    mock_client.assume_role.return_value = {
        "Credentials": {
            "AccessKeyId": "ASIATEST123",
            "SecretAccessKey": "test-secret",
            "SessionToken": "test-token",
            "Expiration": (utcnow() + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
    }

    yield mock_client
