# credbroker/auth/cache/__init__.py
"""
보안 토큰/자격 증명 저장소

- SSOToken: SSO 토큰 데이터 구조
- PlaintextTokenCache: AWS CLI 호환 평문 SSO 토큰 캐시
- SecureStorage: 네임스페이스 단위 보안 키/값 저장소
- SSOTokenStorage / IAMCredentialStorage / SessionCredentialStorage: 용도별 저장소

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    "SSOToken",
    "PlaintextTokenCache",
    "SecretBackend",
    "MemoryBackend",
    "KeyringBackend",
    "EncryptedFileBackend",
    "PassphraseProvider",
    "open_backend",
    "SecureStorage",
    "TokenLookup",
    "SSOTokenStorage",
    "IAMCredentialStorage",
    "SessionCredentialStorage",
]

_IMPORT_MAPPING = {
    "SSOToken": (".cache", "SSOToken"),
    "PlaintextTokenCache": (".cache", "PlaintextTokenCache"),
    "SecretBackend": (".backends", "SecretBackend"),
    "MemoryBackend": (".backends", "MemoryBackend"),
    "KeyringBackend": (".backends", "KeyringBackend"),
    "EncryptedFileBackend": (".backends", "EncryptedFileBackend"),
    "PassphraseProvider": (".backends", "PassphraseProvider"),
    "open_backend": (".backends", "open_backend"),
    "SecureStorage": (".storage", "SecureStorage"),
    "TokenLookup": (".storage", "TokenLookup"),
    "SSOTokenStorage": (".storage", "SSOTokenStorage"),
    "IAMCredentialStorage": (".storage", "IAMCredentialStorage"),
    "SessionCredentialStorage": (".storage", "SessionCredentialStorage"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
