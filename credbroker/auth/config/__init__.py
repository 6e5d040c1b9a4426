# credbroker/auth/config/__init__.py
"""
프로파일 카탈로그 파싱 및 Profile Resolver

~/.aws/config 및 ~/.aws/credentials 파일을 파싱하고
source_profile 링크를 부모 체인으로 해석합니다.

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    # Data classes
    "ProfileConfig",
    "SSOSessionConfig",
    "ParsedConfig",
    "Profile",
    # Classes
    "Loader",
    "Profiles",
    # Functions
    "load_config",
    "load_profiles",
    "classify_root",
]

_IMPORT_MAPPING = {
    "ProfileConfig": (".loader", "ProfileConfig"),
    "SSOSessionConfig": (".loader", "SSOSessionConfig"),
    "ParsedConfig": (".loader", "ParsedConfig"),
    "Loader": (".loader", "Loader"),
    "load_config": (".loader", "load_config"),
    "Profile": (".profiles", "Profile"),
    "Profiles": (".profiles", "Profiles"),
    "load_profiles": (".profiles", "load_profiles"),
    "classify_root": (".profiles", "classify_root"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
