"""
cli/ui/console.py - Rich 콘솔 및 로깅 설정

stdout은 자격 증명 출력(export 문, credential_process JSON) 전용이므로
모든 안내 메시지와 로그는 stderr 콘솔로 출력합니다.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from credbroker.settings import is_debug

# botocore 노이즈 로그 제한
NOISY_LOGGERS = (
    "botocore.httpchecksum",
    "botocore.credentials",
    "botocore.loaders",
    "botocore.session",
    "botocore.hooks",
    "urllib3.connectionpool",
)

ENGINE_LOGGER = "credbroker"


def get_console() -> Console:
    """stderr에 출력하는 Rich Console 인스턴스를 생성하고 반환합니다."""
    return Console(stderr=True, highlight=False, soft_wrap=True)


# 전역 콘솔 인스턴스
console = get_console()


def setup_logging(verbose: bool = False) -> logging.Logger:
    """credbroker 로거에 Rich 핸들러 설정

    Args:
        verbose: True이거나 CREDBROKER_DEBUG가 설정되면 DEBUG, 아니면 WARNING

    Returns:
        logging.Logger: 설정된 credbroker 로거
    """
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(ENGINE_LOGGER)
    logger.setLevel(logging.DEBUG if verbose or is_debug() else logging.WARNING)

    # 이미 핸들러가 설정되어 있으면 레벨만 갱신
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger


# =============================================================================
# 표준 출력 스타일 (이모지 없이 Rich 스타일만 사용)
# =============================================================================

SYMBOL_SUCCESS = "✓"
SYMBOL_ERROR = "✗"
SYMBOL_WARNING = "!"
SYMBOL_INFO = "•"


def print_success(message: str) -> None:
    """성공 메시지 출력 (초록색 체크마크)"""
    console.print(f"[green]{SYMBOL_SUCCESS} {escape(message)}[/green]")


def print_error(message: str) -> None:
    """에러 메시지 출력 (빨간색 X)"""
    console.print(f"[red]{SYMBOL_ERROR} {escape(message)}[/red]")


def print_warning(message: str) -> None:
    """경고 메시지 출력 (노란색 경고)"""
    console.print(f"[yellow]{SYMBOL_WARNING} {escape(message)}[/yellow]")


def print_info(message: str) -> None:
    """정보 메시지 출력 (파란색 정보)"""
    console.print(f"[blue]{SYMBOL_INFO} {escape(message)}[/blue]")


def print_table(title: str, columns: list[str], rows: list[list[str]]) -> None:
    """간단한 표 출력

    Args:
        title: 표 제목
        columns: 컬럼 이름
        rows: 행 데이터
    """
    table = Table(title=title, title_justify="left", show_lines=False)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*row)
    console.print(table)
