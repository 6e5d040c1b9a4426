# credbroker/auth/assume/mfa.py
"""MFA 코드 입력 프롬프트"""

from __future__ import annotations

import questionary

from credbroker.settings import is_non_interactive

from ..types import AuthError


def default_mfa_prompt(serial: str) -> str:
    """questionary로 MFA 코드 입력

    Raises:
        AuthError: 비대화형 실행이거나 입력이 취소된 경우
    """
    if is_non_interactive():
        raise AuthError(f"MFA 코드가 필요하지만 비대화형 실행입니다 (장치: {serial}). --mfa-token 옵션을 사용하세요")

    code = questionary.text(
        f"MFA 코드 ({serial}):",
        validate=lambda text: text.strip().isdigit() or "숫자 코드를 입력하세요",
    ).ask()
    if not code:
        raise AuthError("MFA 코드 입력이 취소되었습니다")
    return code.strip()
