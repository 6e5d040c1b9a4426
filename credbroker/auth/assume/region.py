# credbroker/auth/assume/region.py
"""
약어 리전 확장

    expand_region("")      -> "us-east-1"
    expand_region("ue1")   -> "us-east-1"
    expand_region("apne2") -> "ap-northeast-2"
    expand_region("eu-west-1") -> "eu-west-1" (그대로)
"""

from __future__ import annotations

from credbroker.settings import DEFAULT_REGION

# 첫 글자 → (기본 major, {두 번째 글자: major})
_MAJORS: dict[str, tuple[str, dict[str, str]]] = {
    "u": ("us", {"g": "us-gov", "s": "us"}),
    "e": ("eu", {"u": "eu"}),
    "a": ("ap", {"f": "af", "p": "ap"}),
    "c": ("ca", {"n": "cn", "a": "ca"}),
    "m": ("me", {"e": "me"}),
    "s": ("sa", {"a": "sa"}),
}

_MINORS = {"e": "east", "w": "west", "c": "central"}


def expand_region(region: str) -> str:
    """약어 리전을 전체 이름으로 확장

    Raises:
        ValueError: 해석할 수 없는 약어
    """
    if not region:
        return DEFAULT_REGION
    if "-" in region:
        return region
    if len(region) < 2:
        raise ValueError("리전 약어는 최소 두 글자가 필요합니다 (예: ue)")

    first = region[0]
    if first not in _MAJORS:
        raise ValueError(f"알 수 없는 리전 약어: {region} (리전의 첫 글자를 사용하세요)")
    major, second = _MAJORS[first]
    consumed = 1
    if region[1] in second:
        major = second[region[1]]
        consumed = 2

    rest = region[consumed:]
    if not rest:
        raise ValueError(f"리전 방향을 알 수 없습니다: {region}")

    if rest[0] in ("n", "s"):
        minor = "north" if rest[0] == "n" else "south"
        consumed = 1
        if len(rest) > 1 and rest[1] in ("w", "e"):
            minor += "west" if rest[1] == "w" else "east"
            consumed = 2
    elif rest[0] in _MINORS:
        minor = _MINORS[rest[0]]
        consumed = 1
    else:
        raise ValueError(f"리전 방향을 알 수 없습니다: {region} (major: {major})")

    number = rest[consumed:] or "1"
    if not number.isdigit():
        raise ValueError(f"리전 번호를 알 수 없습니다: {region} (major: {major}, minor: {minor})")

    return f"{major}-{minor}-{number}"
