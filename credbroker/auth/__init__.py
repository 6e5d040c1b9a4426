# credbroker/auth/__init__.py
"""
자격 증명 엔진 (credbroker/auth)

구성 요소:
- Secure Store (cache): OS 키체인 / 암호화 파일 기반 네임스페이스 저장소
- SSO Device Authorization Client (sso): 디바이스 코드 로그인, 폴링, 토큰 갱신
- Profile Resolver (config): source_profile 체인 해석, 프로파일 종류 판정
- Assumer Dispatch Registry (provider): 우선순위 전략 선택
- Role Chain Assumer (assume): 체인의 STS AssumeRole 홉
- CredentialBroker (broker): 위 구성 요소를 소유하는 애플리케이션 컨텍스트

사용 예시:
    from credbroker.auth import CredentialBroker, AssumeOptions

    broker = CredentialBroker.from_environment()
    result = broker.assume("dev", AssumeOptions())
    print(result.credentials.to_env(result.region))

    # 테스트: 모든 해석을 가로채는 가짜 전략
    broker.registry.register(FakeAssumer(), position=0)

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
    실제 사용 시점에만 하위 모듈이 로드되어 CLI 시작 시간을 최적화합니다.
"""

__all__ = [
    # Types
    "ProfileKind",
    "Credentials",
    "AssumeOptions",
    "Assumer",
    "AuthError",
    "ConfigurationError",
    "ProfileNotFoundError",
    "CyclicProfileError",
    "NoMatchingAssumerError",
    "LoginRequiredError",
    "TokenExpiredError",
    "AuthorizationTimeoutError",
    "CancelledError",
    "DeadlineExceededError",
    "NoAccessError",
    "ProviderError",
    "StorageError",
    "KeyNotFoundError",
    # Context
    "Context",
    # Config
    "Loader",
    "load_config",
    "Profile",
    "Profiles",
    "load_profiles",
    # Cache
    "SSOToken",
    "SecureStorage",
    "SSOTokenStorage",
    "IAMCredentialStorage",
    "SessionCredentialStorage",
    # SSO
    "DeviceAuthorizationClient",
    "SSOLoginManager",
    # Provider
    "AssumerRegistry",
    "create_default_registry",
    # Assume
    "RoleChainAssumer",
    "expand_region",
    # Broker
    "CredentialBroker",
    "AssumeResult",
]

_TYPE_NAMES = {
    "ProfileKind",
    "Credentials",
    "AssumeOptions",
    "Assumer",
    "AuthError",
    "ConfigurationError",
    "ProfileNotFoundError",
    "CyclicProfileError",
    "NoMatchingAssumerError",
    "LoginRequiredError",
    "TokenExpiredError",
    "AuthorizationTimeoutError",
    "CancelledError",
    "DeadlineExceededError",
    "NoAccessError",
    "ProviderError",
    "StorageError",
    "KeyNotFoundError",
}

# Lazy import 매핑 테이블
_IMPORT_MAPPING = {
    **{name: (".types", name) for name in _TYPE_NAMES},
    # Context
    "Context": (".context", "Context"),
    # Config
    "Loader": (".config", "Loader"),
    "load_config": (".config", "load_config"),
    "Profile": (".config", "Profile"),
    "Profiles": (".config", "Profiles"),
    "load_profiles": (".config", "load_profiles"),
    # Cache
    "SSOToken": (".cache", "SSOToken"),
    "SecureStorage": (".cache", "SecureStorage"),
    "SSOTokenStorage": (".cache", "SSOTokenStorage"),
    "IAMCredentialStorage": (".cache", "IAMCredentialStorage"),
    "SessionCredentialStorage": (".cache", "SessionCredentialStorage"),
    # SSO
    "DeviceAuthorizationClient": (".sso", "DeviceAuthorizationClient"),
    "SSOLoginManager": (".sso", "SSOLoginManager"),
    # Provider
    "AssumerRegistry": (".provider", "AssumerRegistry"),
    "create_default_registry": (".provider", "create_default_registry"),
    # Assume
    "RoleChainAssumer": (".assume", "RoleChainAssumer"),
    "expand_region": (".assume", "expand_region"),
    # Broker
    "CredentialBroker": (".broker", "CredentialBroker"),
    "AssumeResult": (".broker", "AssumeResult"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
