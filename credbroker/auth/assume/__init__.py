# credbroker/auth/assume/__init__.py
"""
역할 체인 및 보조 유틸리티

- RoleChainAssumer: 루트 자격 증명에서 시작해 체인의 각 프로파일로 STS AssumeRole
- session_name: 감사 추적용 고유 세션 이름
- expand_region: ue1 → us-east-1 같은 약어 리전 확장
- default_mfa_prompt: questionary 기반 MFA 코드 입력

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

# 서브모듈 이름과 함수 이름이 같으므로, 서브모듈 import 시 패키지 속성이
# 모듈 객체로 가려지지 않도록 함수를 명시적으로 바인딩
from .session_name import session_name

__all__ = [
    "RoleChainAssumer",
    "session_name",
    "expand_region",
    "default_mfa_prompt",
]

_IMPORT_MAPPING = {
    "RoleChainAssumer": (".chain", "RoleChainAssumer"),
    "session_name": (".session_name", "session_name"),
    "expand_region": (".region", "expand_region"),
    "default_mfa_prompt": (".mfa", "default_mfa_prompt"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
