"""
credbroker/exceptions.py - 통합 예외 계층 구조

credbroker 전체에서 사용되는 예외의 베이스 클래스와
botocore 에러 분류 헬퍼를 정의합니다.

예외 계층 구조:
    BrokerError (베이스)
    └── AuthError (인증 관련) - credbroker.auth.types에서 정의
        ├── ConfigurationError
        │   ├── ProfileNotFoundError
        │   ├── CyclicProfileError
        │   └── NoMatchingAssumerError
        ├── LoginRequiredError
        ├── TokenExpiredError
        │   └── AuthorizationTimeoutError
        ├── CancelledError
        ├── DeadlineExceededError
        ├── NoAccessError
        ├── ProviderError
        └── StorageError
            └── KeyNotFoundError

Usage:
    from credbroker.exceptions import error_code, is_access_denied

    try:
        sts.assume_role(...)
    except ClientError as e:
        if is_access_denied(e):
            ...
"""

from typing import Any, Dict, Optional

from botocore.exceptions import (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

# =============================================================================
# 베이스 예외
# =============================================================================


class BrokerError(Exception):
    """credbroker 기본 예외 클래스

    모든 커스텀 예외의 베이스 클래스입니다.

    Attributes:
        message: 에러 메시지
        cause: 원인 예외 (체이닝용)
        details: 추가 상세 정보
    """

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """예외 정보를 딕셔너리로 반환"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
            "details": self.details,
        }


# =============================================================================
# botocore 에러 분류 유틸리티
# =============================================================================

ACCESS_DENIED_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "ForbiddenException",
}

UNAUTHORIZED_CODES = {
    "UnauthorizedException",
    "UnauthorizedClientException",
    "InvalidGrantException",
}

TRANSIENT_NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ReadTimeoutError,
    ConnectTimeoutError,
)


def error_code(error: Exception) -> str:
    """ClientError 형식의 예외에서 에러 코드 추출

    Args:
        error: 확인할 예외

    Returns:
        에러 코드 (없으면 빈 문자열)
    """
    response = getattr(error, "response", None)
    if not isinstance(response, dict):
        return ""
    return response.get("Error", {}).get("Code", "") or ""


def http_status(error: Exception) -> Optional[int]:
    """ClientError 형식의 예외에서 HTTP 상태 코드 추출"""
    response = getattr(error, "response", None)
    if not isinstance(response, dict):
        return None
    return response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_access_denied(error: Exception) -> bool:
    """접근 거부(403) 오류인지 확인

    Args:
        error: 확인할 예외

    Returns:
        접근 거부 오류이면 True
    """
    return error_code(error) in ACCESS_DENIED_CODES or http_status(error) == 403


def is_unauthorized(error: Exception) -> bool:
    """토큰이 거부된(unauthorized) 오류인지 확인

    캐시된 SSO 토큰을 폐기해야 하는 신호입니다.
    """
    return error_code(error) in UNAUTHORIZED_CODES


def is_authorization_pending(error: Exception) -> bool:
    """디바이스 인증 대기 중 응답인지 확인"""
    return error_code(error) == "AuthorizationPendingException"


def is_slow_down(error: Exception) -> bool:
    """디바이스 인증 폴링 속도 제한 응답인지 확인"""
    return error_code(error) == "SlowDownException"


def is_transient_network_error(error: Exception) -> bool:
    """재시도 가능한 네트워크 오류인지 확인"""
    return isinstance(error, TRANSIENT_NETWORK_ERRORS)
