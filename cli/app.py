"""
cli/app.py - 메인 CLI 엔트리포인트

Click 기반의 CLI 애플리케이션 진입점입니다.
자격 증명 엔진(credbroker)의 공개 인터페이스만 사용합니다.

명령어 구조:
    credbroker --version
    credbroker assume PROFILE                       # export 문 출력 (eval 용)
    credbroker credential-process --profile PROFILE # credential_process JSON 출력
    credbroker sso login --sso-start-url URL --sso-region REGION
    credbroker sso logout --sso-start-url URL
    credbroker profiles                              # 프로파일 / 전략 목록
    credbroker cache list
    credbroker cache clear NAMESPACE [KEY]
    credbroker credentials add|remove|list

Usage:
    $ eval "$(credbroker assume dev)"

    # ~/.aws/config
    [profile dev-cp]
    credential_process = credbroker credential-process --profile dev
"""

from __future__ import annotations

import functools
import json
import re
import shlex
from datetime import timedelta

import click
import questionary
from rich.markup import escape

from cli.ui import console, print_error, print_info, print_success, print_table, print_warning, setup_logging
from credbroker import __version__
from credbroker.auth import (
    AssumeOptions,
    ConfigurationError,
    Credentials,
    CredentialBroker,
    NoAccessError,
    expand_region,
)
from credbroker.exceptions import BrokerError
from credbroker.settings import load_settings

_DURATION_PATTERN = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")


def parse_duration(value: str | None) -> timedelta | None:
    """세션 유효 시간 파싱 ("3600", "1h", "1h30m", "45m")

    Raises:
        click.BadParameter: 형식 오류
    """
    if not value:
        return None
    if value.isdigit():
        return timedelta(seconds=int(value))
    match = _DURATION_PATTERN.match(value)
    if not match or not any(match.groups()):
        raise click.BadParameter(f"유효 시간 형식 오류: {value} (예: 3600, 1h, 30m)")
    hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def _region_option(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return expand_region(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def handle_errors(func):
    """BrokerError를 사용자 메시지로 출력하고 종료 코드 1로 종료"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except NoAccessError as e:
            print_error(str(e))
            try:
                base = load_settings().access_request_url
            except BrokerError:
                base = None
            print_info(e.hint(base))
            raise SystemExit(1) from e
        except BrokerError as e:
            print_error(str(e))
            raise SystemExit(1) from e

    return wrapper


def export_lines(credentials: Credentials, region: str | None) -> list[str]:
    """셸 export 문 생성"""
    return [f"export {key}={shlex.quote(value)}" for key, value in credentials.to_env(region).items()]


# =============================================================================
# Root group
# =============================================================================


@click.group()
@click.version_option(__version__, prog_name="credbroker")
@click.option("-v", "--verbose", is_flag=True, help="진단 로그 출력 (CREDBROKER_DEBUG 와 동일)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """로컬 AWS 자격 증명 브로커"""
    setup_logging(verbose)
    ctx.ensure_object(dict)


def get_broker(ctx: click.Context) -> CredentialBroker:
    """명령 실행 중 한 번만 브로커 생성"""
    obj = ctx.ensure_object(dict)
    if "broker" not in obj:
        obj["broker"] = CredentialBroker.from_environment(console=console)
    return obj["broker"]


# =============================================================================
# assume / credential-process
# =============================================================================


@cli.command()
@click.argument("profile")
@click.option("-r", "--region", help="리전 (약어 허용: ue1, apne2)")
@click.option("-d", "--duration", help="세션 유효 시간 (예: 1h, 30m, 3600)")
@click.option("-f", "--force-refresh", is_flag=True, help="캐시를 무시하고 새로 획득")
@click.option("--mfa-token", help="MFA 코드")
@click.option("-c", "--console", "for_console", is_flag=True, help="콘솔 페더레이션용 자격 증명")
@click.option("-a", "--pass-through", "pass_through", help="외부 헬퍼에 전달할 인자")
@click.option("--json", "as_json", is_flag=True, help="credential_process JSON 형식으로 출력")
@click.pass_context
@handle_errors
def assume(
    ctx: click.Context,
    profile: str,
    region: str | None,
    duration: str | None,
    force_refresh: bool,
    mfa_token: str | None,
    for_console: bool,
    pass_through: str | None,
    as_json: bool,
):
    """프로파일 자격 증명을 획득해 export 문으로 출력"""
    options = AssumeOptions(
        duration=parse_duration(duration),
        force_refresh=force_refresh,
        mfa_token=mfa_token,
        args=shlex.split(pass_through) if pass_through else [],
        region=_region_option(region),
    )
    result = get_broker(ctx).assume(profile, options, console=for_console)

    if as_json:
        click.echo(json.dumps(result.credentials.to_process_output(), indent=2))
    else:
        for line in export_lines(result.credentials, result.region):
            click.echo(line)

    status = "캐시" if result.from_cache else "새로 획득"
    remaining = result.credentials.remaining()
    if remaining is not None:
        minutes = int(remaining.total_seconds() // 60)
        print_success(f"[{profile}]({result.region}) 자격 증명 {status}, {minutes}분 후 만료")
    else:
        print_success(f"[{profile}]({result.region}) 자격 증명 {status}")


@cli.command("credential-process")
@click.option("-p", "--profile", required=True, help="프로파일 이름")
@click.option("-r", "--region", help="리전")
@click.pass_context
@handle_errors
def credential_process(ctx: click.Context, profile: str, region: str | None):
    """AWS CLI / SDK credential_process 용 JSON 출력"""
    options = AssumeOptions(region=_region_option(region))
    credentials = get_broker(ctx).credential_process(profile, options)
    click.echo(json.dumps(credentials.to_process_output()))


# =============================================================================
# profiles
# =============================================================================


@cli.command()
@click.pass_context
@handle_errors
def profiles(ctx: click.Context):
    """프로파일 목록과 선택되는 전략 출력"""
    broker = get_broker(ctx)
    rows = []
    for name in broker.profiles.names:
        try:
            profile = broker.profiles.get(name)
            assumer = broker.registry.resolve(profile)
        except ConfigurationError as e:
            rows.append([name, "-", "-", f"[red]{escape(str(e))}[/red]"])
            continue
        parents = " → ".join(p.name for p in profile.parents) or "-"
        rows.append([name, str(profile.kind), parents, assumer.type()])
    print_table("프로파일", ["이름", "종류", "부모 체인", "전략"], rows)


# =============================================================================
# sso
# =============================================================================


@cli.group()
def sso():
    """SSO 디바이스 인증"""


@sso.command("login")
@click.option("--sso-start-url", required=True, help="SSO 시작 URL")
@click.option("--sso-region", required=True, help="SSO 리전")
@click.option("--sso-session", help="sso-session 이름")
@click.option("--scope", "scopes", multiple=True, help="등록 스코프 (여러 번 지정 가능)")
@click.pass_context
@handle_errors
def sso_login(ctx: click.Context, sso_start_url: str, sso_region: str, sso_session: str | None, scopes: tuple):
    """디바이스 인증으로 SSO 토큰 발급"""
    token = get_broker(ctx).sso_login(
        sso_start_url,
        _region_option(sso_region),
        session_name=sso_session,
        scopes=list(scopes) or None,
    )
    print_success(f"SSO 로그인 완료: {sso_start_url} (만료 {token.expiry:%Y-%m-%d %H:%M:%S} UTC)")


@sso.command("logout")
@click.option("--sso-start-url", required=True, help="SSO 시작 URL")
@click.option("--sso-session", help="sso-session 이름")
@click.pass_context
@handle_errors
def sso_logout(ctx: click.Context, sso_start_url: str, sso_session: str | None):
    """저장된 SSO 토큰 삭제"""
    get_broker(ctx).sso.logout(sso_start_url, sso_session)
    print_success(f"SSO 토큰 삭제: {sso_start_url}")


# =============================================================================
# cache
# =============================================================================


@cli.group()
def cache():
    """보안 저장소 캐시 관리"""


@cache.command("list")
@click.pass_context
@handle_errors
def cache_list(ctx: click.Context):
    """네임스페이스별 저장된 키 목록"""
    listing = get_broker(ctx).list_cache()
    rows = [[namespace, key] for namespace, keys in listing.items() for key in keys]
    if not rows:
        print_info("저장된 항목이 없습니다")
        return
    print_table("보안 저장소", ["네임스페이스", "키"], rows)


@cache.command("clear")
@click.argument(
    "namespace",
    type=click.Choice(["aws-sso-tokens", "aws-session-credentials", "aws-iam-credentials"]),
)
@click.argument("key", required=False)
@click.option("-y", "--yes", is_flag=True, help="확인 없이 삭제")
@click.pass_context
@handle_errors
def cache_clear(ctx: click.Context, namespace: str, key: str | None, yes: bool):
    """네임스페이스의 키(또는 전체) 삭제"""
    if not key and not yes:
        confirmed = questionary.confirm(f"{namespace} 의 모든 항목을 삭제할까요?", default=False).ask()
        if not confirmed:
            print_warning("취소되었습니다")
            return
    count = get_broker(ctx).clear_cache(namespace, key)
    print_success(f"{namespace}: {count}개 삭제")


# =============================================================================
# credentials (IAM 키)
# =============================================================================


@cli.group()
def credentials():
    """보안 저장소의 IAM 액세스 키 관리"""


@credentials.command("add")
@click.argument("profile")
@click.option("--access-key-id", help="액세스 키 ID (없으면 입력)")
@click.option("--secret-access-key", help="시크릿 액세스 키 (없으면 입력)")
@click.pass_context
@handle_errors
def credentials_add(ctx: click.Context, profile: str, access_key_id: str | None, secret_access_key: str | None):
    """IAM 키를 보안 저장소에 저장"""
    access_key_id = access_key_id or questionary.text("Access Key ID:").ask()
    secret_access_key = secret_access_key or questionary.password("Secret Access Key:").ask()
    if not access_key_id or not secret_access_key:
        print_warning("취소되었습니다")
        raise SystemExit(1)

    get_broker(ctx).iam_credentials.store(
        profile,
        Credentials(access_key_id=access_key_id.strip(), secret_access_key=secret_access_key.strip()),
    )
    print_success(f"프로파일 '{profile}'의 IAM 키를 저장했습니다")
    print_info(f"~/.aws/config: [profile {profile}] credential_process = credbroker credential-process --profile {profile}")


@credentials.command("remove")
@click.argument("profile")
@click.pass_context
@handle_errors
def credentials_remove(ctx: click.Context, profile: str):
    """보안 저장소에서 IAM 키 삭제"""
    if get_broker(ctx).iam_credentials.clear(profile):
        print_success(f"프로파일 '{profile}'의 IAM 키를 삭제했습니다")
    else:
        print_warning(f"프로파일 '{profile}'의 저장된 IAM 키가 없습니다")


@credentials.command("list")
@click.pass_context
@handle_errors
def credentials_list(ctx: click.Context):
    """IAM 키가 저장된 프로파일 목록"""
    names = get_broker(ctx).iam_credentials.list_profiles()
    if not names:
        print_info("저장된 IAM 키가 없습니다")
        return
    for name in sorted(names):
        console.print(f"  {name}")


if __name__ == "__main__":
    cli()
