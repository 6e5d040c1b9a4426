"""
credbroker - 로컬 AWS 자격 증명 브로커

프로파일 카탈로그(~/.aws/config)를 해석하여 단기 자격 증명을
획득/캐시/갱신합니다. 상주 프로세스 없이 CLI 호출마다 동작합니다.

사용 예시:
    from credbroker import CredentialBroker, AssumeOptions

    broker = CredentialBroker.from_environment()
    result = broker.assume("dev", AssumeOptions())
    print(result.credentials.to_env())

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__version__ = "0.4.0"

__all__ = [
    "CredentialBroker",
    "AssumeResult",
    "AssumeOptions",
    "Credentials",
    "BrokerError",
    "Settings",
]

_IMPORT_MAPPING = {
    "CredentialBroker": (".auth.broker", "CredentialBroker"),
    "AssumeResult": (".auth.broker", "AssumeResult"),
    "AssumeOptions": (".auth.types", "AssumeOptions"),
    "Credentials": (".auth.types", "Credentials"),
    "BrokerError": (".exceptions", "BrokerError"),
    "Settings": (".settings", "Settings"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
