# cli/ui - 콘솔 출력 컴포넌트 (rich)
"""
콘솔 출력 모듈

CLI 전용 UI 컴포넌트들 (stderr 콘솔, 로깅 설정, 메시지 출력)
"""

from .console import (
    console,
    get_console,
    print_error,
    print_info,
    print_success,
    print_table,
    print_warning,
    setup_logging,
)

__all__ = [
    "console",
    "get_console",
    "setup_logging",
    "print_success",
    "print_error",
    "print_warning",
    "print_info",
    "print_table",
]
