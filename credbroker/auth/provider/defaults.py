# credbroker/auth/provider/defaults.py
"""기본 Assumer 레지스트리 구성"""

from __future__ import annotations

from typing import TYPE_CHECKING

from credbroker.settings import Settings

from .base import AssumerRegistry
from .credential_process import CredentialProcessAssumer
from .external import (
    AzureLoginAssumer,
    CommandRunner,
    GimmeAwsCredsAssumer,
    GoogleAuthAssumer,
    Saml2AwsAssumer,
)
from .iam import IAMAssumer
from .sso import SSOAssumer

if TYPE_CHECKING:
    from ..cache.storage import IAMCredentialStorage, SessionCredentialStorage
    from ..session import ClientFactory
    from ..sso.login import SSOLoginManager


def create_default_registry(
    login_manager: SSOLoginManager,
    iam_credentials: IAMCredentialStorage | None = None,
    sessions: SessionCredentialStorage | None = None,
    settings: Settings | None = None,
    client_factory: ClientFactory | None = None,
    runner: CommandRunner | None = None,
    okta_profiles: set[str] | None = None,
) -> AssumerRegistry:
    """기본 순서로 전략을 등록한 레지스트리 생성

    순서: 페더레이션 헬퍼 → SSO → credential_process → IAM (catch-all)
    """
    settings = settings or Settings()
    runner = runner or CommandRunner()

    registry = AssumerRegistry()
    registry.register(Saml2AwsAssumer(runner))
    registry.register(GimmeAwsCredsAssumer(runner, sessions, settings, okta_profiles))
    registry.register(GoogleAuthAssumer(runner))
    registry.register(AzureLoginAssumer(runner, client_factory=client_factory))
    registry.register(SSOAssumer(login_manager, client_factory))
    registry.register(CredentialProcessAssumer(runner))
    registry.register(IAMAssumer(iam_credentials, sessions, client_factory))
    return registry
