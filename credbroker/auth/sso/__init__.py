# credbroker/auth/sso/__init__.py
"""
SSO 디바이스 인증 클라이언트 (OAuth2 device authorization grant)

- DeviceAuthorizationClient: 클라이언트 등록 → 디바이스 인증 시작 → 토큰 폴링
- PollingConfig / poll_token: 폴링 정책
- refresh_sso_token: refresh_token 으로 토큰 갱신
- SSOLoginManager: 저장소 조회 → 평문 캐시 가져오기 → 디바이스 로그인

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    "DeviceAuthorizationClient",
    "DeviceAuthorization",
    "ClientRegistration",
    "PollingConfig",
    "poll_token",
    "refresh_sso_token",
    "SSOLoginManager",
    "token_key",
]

_IMPORT_MAPPING = {
    "DeviceAuthorizationClient": (".device", "DeviceAuthorizationClient"),
    "DeviceAuthorization": (".device", "DeviceAuthorization"),
    "ClientRegistration": (".device", "ClientRegistration"),
    "PollingConfig": (".device", "PollingConfig"),
    "poll_token": (".device", "poll_token"),
    "refresh_sso_token": (".device", "refresh_sso_token"),
    "SSOLoginManager": (".login", "SSOLoginManager"),
    "token_key": (".login", "token_key"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
