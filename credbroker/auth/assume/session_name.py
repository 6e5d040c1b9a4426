# credbroker/auth/assume/session_name.py
"""역할 세션 이름 생성"""

import uuid

SESSION_NAME_PREFIX = "cbkr-"


def session_name() -> str:
    """감사 추적용 고유 세션 이름 (32자)"""
    return SESSION_NAME_PREFIX + uuid.uuid4().hex[:27]
