# credbroker/auth/session.py
"""
boto3 클라이언트 생성 헬퍼

모든 AWS API 호출은 이 모듈의 create_client()를 통해 클라이언트를 만듭니다.
테스트에서는 client_factory를 주입하거나 boto3.Session을 patch합니다.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import boto3
from botocore import UNSIGNED
from botocore.config import Config

if TYPE_CHECKING:
    from credbroker.auth.types import Credentials

# (service, region, credentials) -> boto3 client
ClientFactory = Callable[..., Any]

# SSO / SSO-OIDC는 서명 없이 호출 (Bearer 토큰 또는 공개 클라이언트)
UNSIGNED_SERVICES = {"sso", "sso-oidc"}


def create_client(service: str, region: str, credentials: Credentials | None = None) -> Any:
    """boto3 클라이언트 생성

    Args:
        service: 서비스 이름 (sts, sso, sso-oidc)
        region: AWS 리전
        credentials: 서명에 사용할 자격 증명 (None이면 기본 체인/무서명)

    Returns:
        boto3 client
    """
    session_kwargs: dict[str, Any] = {"region_name": region}
    if credentials is not None:
        session_kwargs.update(credentials.to_boto3_kwargs())

    session = boto3.Session(**session_kwargs)
    if service in UNSIGNED_SERVICES:
        return session.client(service, config=Config(signature_version=UNSIGNED))
    return session.client(service)
