# tests/credbroker/auth/test_auth_provider_strategies.py
"""
credbroker/auth/provider/ 전략 테스트

테스트 대상:
- SSOAssumer: 토큰 확보 → GetRoleCredentials, 에러 매핑
- IAMAssumer: 보안 저장소 / 평문 키, MFA 세션 토큰, 페더레이션 토큰
- CredentialProcessAssumer / parse_process_output
- 외부 헬퍼: saml2aws, aws-google-auth, aws-azure-login, gimme-aws-creds
- CommandRunner
"""

import json
import subprocess
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from credbroker.auth.cache.cache import SSOToken
from credbroker.auth.cache.storage import IAMCredentialStorage, SessionCredentialStorage
from credbroker.auth.context import Context
from credbroker.auth.provider import (
    AzureLoginAssumer,
    CommandRunner,
    CredentialProcessAssumer,
    GimmeAwsCredsAssumer,
    GoogleAuthAssumer,
    IAMAssumer,
    Saml2AwsAssumer,
    SSOAssumer,
    parse_process_output,
)
from credbroker.auth.provider.external import load_okta_profiles, read_shared_credentials, scrubbed_environ
from credbroker.auth.types import (
    AssumeOptions,
    ConfigurationError,
    Credentials,
    LoginRequiredError,
    NoAccessError,
    ProviderError,
)
from credbroker.auth.types.types import format_timestamp, utcnow
from credbroker.settings import Settings

SSO_CONFIG = """
[profile dev]
sso_start_url = https://corp.awsapps.com/start
sso_region = ap-northeast-2
sso_account_id = 111111111111
sso_role_name = Developer
"""


def client_error(code, status=400, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}}, operation)


def sts_credentials(access_key_id="ASIASTS"):
    return {
        "Credentials": {
            "AccessKeyId": access_key_id,
            "SecretAccessKey": "secret",
            "SessionToken": "token",
            "Expiration": utcnow() + timedelta(hours=1),
        }
    }


class FakeRunner:
    """CommandRunner 대체: 호출 기록, 출력 반환, credentials 파일 쓰기"""

    def __init__(self, output="", write_credentials=None):
        self.calls = []
        self.output = output
        self.write_credentials = write_credentials

    def run(self, command, env=None, capture=False):
        self.calls.append({"command": command, "env": env, "capture": capture})
        if self.write_credentials:
            self.write_credentials()
        return self.output if capture else ""


def write_shared_credentials(path, profile_name, expires_at=None):
    lines = [
        f"[{profile_name}]",
        "aws_access_key_id = ASIAHELPER",
        "aws_secret_access_key = helper-secret",
        "aws_session_token = helper-token",
    ]
    if expires_at is not None:
        lines.append(f"aws_expiration = {format_timestamp(expires_at)}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


# =============================================================================
# SSO
# =============================================================================


class TestSSOAssumer:
    """SSOAssumer 테스트"""

    def make(self, sso_client):
        login_manager = MagicMock()
        login_manager.get_token.return_value = SSOToken(access_token="sso-access", expiry=utcnow() + timedelta(hours=1))
        factory = MagicMock(return_value=sso_client)
        return SSOAssumer(login_manager, factory), login_manager, factory

    def test_get_role_credentials(self, aws_config):
        profile = aws_config(SSO_CONFIG).get("dev")
        sso_client = MagicMock()
        expiration_ms = int((utcnow() + timedelta(hours=1)).timestamp() * 1000)
        sso_client.get_role_credentials.return_value = {
            "roleCredentials": {
                "accessKeyId": "ASIASSO",
                "secretAccessKey": "secret",
                "sessionToken": "token",
                "expiration": expiration_ms,
            }
        }
        assumer, login_manager, factory = self.make(sso_client)

        creds = assumer.assume_terminal(profile, AssumeOptions(credential_process=True), Context.background())

        assert creds.access_key_id == "ASIASSO"
        assert creds.source == "AWS_SSO"
        assert creds.can_expire is True
        factory.assert_called_once_with("sso", "ap-northeast-2")
        sso_client.get_role_credentials.assert_called_once_with(
            accessToken="sso-access", accountId="111111111111", roleName="Developer"
        )
        assert login_manager.get_token.call_args.kwargs["credential_process"] is True

    def test_missing_role_name(self, aws_config):
        profile = aws_config(
            "[profile dev]\nsso_start_url = u\nsso_region = r\nsso_account_id = 1\n"
        ).get("dev")
        assumer, _, _ = self.make(MagicMock())
        with pytest.raises(ConfigurationError) as exc_info:
            assumer.assume_terminal(profile, AssumeOptions(), Context.background())
        assert exc_info.value.config_key == "sso_role_name"

    def test_forbidden_is_no_access(self, aws_config):
        profile = aws_config(SSO_CONFIG).get("dev")
        sso_client = MagicMock()
        sso_client.get_role_credentials.side_effect = client_error("ForbiddenException", 403)
        assumer, _, _ = self.make(sso_client)

        with pytest.raises(NoAccessError) as exc_info:
            assumer.assume_terminal(profile, AssumeOptions(), Context.background())
        assert exc_info.value.account_id == "111111111111"
        assert exc_info.value.role_name == "Developer"
        assert exc_info.value.profile_name == "dev"

    def test_unauthorized_clears_token(self, aws_config):
        profile = aws_config(SSO_CONFIG).get("dev")
        sso_client = MagicMock()
        sso_client.get_role_credentials.side_effect = client_error("UnauthorizedException", 401)
        assumer, login_manager, _ = self.make(sso_client)

        with pytest.raises(ProviderError):
            assumer.assume_terminal(profile, AssumeOptions(), Context.background())
        login_manager.tokens.clear_token.assert_called_once_with("https://corp.awsapps.com/start")

    def test_cancelled_before_role_credentials(self, aws_config):
        from credbroker.auth.types import CancelledError

        profile = aws_config(SSO_CONFIG).get("dev")
        sso_client = MagicMock()
        assumer, login_manager, _ = self.make(sso_client)
        ctx = Context.background()
        login_manager.get_token.side_effect = lambda *args, **kwargs: ctx.cancel() or SSOToken(
            access_token="a", expiry=utcnow() + timedelta(hours=1)
        )

        with pytest.raises(CancelledError):
            assumer.assume_terminal(profile, AssumeOptions(), ctx)
        sso_client.get_role_credentials.assert_not_called()


# =============================================================================
# IAM
# =============================================================================


class TestIAMAssumer:
    """IAMAssumer 테스트"""

    def make(self, memory_storage, sts_client=None):
        factory = MagicMock(return_value=sts_client or MagicMock())
        iam_credentials = IAMCredentialStorage(memory_storage("aws-iam-credentials"))
        sessions = SessionCredentialStorage(memory_storage("aws-session-credentials"))
        return IAMAssumer(iam_credentials, sessions, factory), factory

    def test_plaintext_keys(self, aws_config, memory_storage):
        profile = aws_config("[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\n").get("dev")
        assumer, factory = self.make(memory_storage)

        creds = assumer.assume_terminal(profile, AssumeOptions(), Context.background())

        assert creds.access_key_id == "AKIA1"
        assert creds.can_expire is False
        assert creds.source == "AWS_IAM"
        factory.assert_not_called()

    @patch("credbroker.auth.provider.iam.logger")
    def test_plaintext_warning_once(self, mock_logger, aws_config, memory_storage):
        profile = aws_config("[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\n").get("dev")
        assumer, _ = self.make(memory_storage)
        assumer.base_credentials(profile)
        assumer.base_credentials(profile)
        assert mock_logger.warning.call_count == 1

    def test_secure_store_keys(self, aws_config, memory_storage):
        profile = aws_config(
            "[profile dev]\ncredential_process = credbroker credential-process --profile dev\n"
        ).get("dev")
        assumer, _ = self.make(memory_storage)
        assumer.iam_credentials.store("dev", Credentials(access_key_id="AKIASTORED", secret_access_key="s"))

        assert assumer.assume_terminal(profile, AssumeOptions(), Context.background()).access_key_id == "AKIASTORED"

    def test_secure_store_missing(self, aws_config, memory_storage):
        profile = aws_config(
            "[profile dev]\ncredential_process = credbroker credential-process --profile dev\n"
        ).get("dev")
        assumer, _ = self.make(memory_storage)
        with pytest.raises(ConfigurationError) as exc_info:
            assumer.assume_terminal(profile, AssumeOptions(), Context.background())
        assert "credbroker credentials add dev" in str(exc_info.value)

    def test_missing_keys(self, aws_config, memory_storage):
        profile = aws_config("[profile dev]\nregion = us-east-1\n").get("dev")
        assumer, _ = self.make(memory_storage)
        with pytest.raises(ConfigurationError):
            assumer.assume_terminal(profile, AssumeOptions(), Context.background())

    def test_mfa_session_token(self, aws_config, memory_storage):
        profile = aws_config(
            "[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\n"
            "mfa_serial = arn:aws:iam::1:mfa/me\nregion = us-west-2\n"
        ).get("dev")
        sts = MagicMock()
        sts.get_session_token.return_value = sts_credentials("ASIAMFA")
        assumer, factory = self.make(memory_storage, sts)

        options = AssumeOptions(mfa_token="123456", duration=timedelta(hours=2))
        creds = assumer.assume_terminal(profile, options, Context.background())

        assert creds.access_key_id == "ASIAMFA"
        sts.get_session_token.assert_called_once_with(
            SerialNumber="arn:aws:iam::1:mfa/me", TokenCode="123456", DurationSeconds=7200
        )
        assert factory.call_args.args[:2] == ("sts", "us-west-2")
        assert factory.call_args.args[2].access_key_id == "AKIA1"
        assert assumer.sessions.get("dev").access_key_id == "ASIAMFA"

    def test_mfa_session_cached(self, aws_config, memory_storage, credentials_factory):
        profile = aws_config(
            "[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\nmfa_serial = arn:mfa\n"
        ).get("dev")
        sts = MagicMock()
        assumer, _ = self.make(memory_storage, sts)
        assumer.sessions.store("dev", credentials_factory("ASIACACHED"))

        creds = assumer.assume_terminal(profile, AssumeOptions(mfa_token="1"), Context.background())

        assert creds.access_key_id == "ASIACACHED"
        sts.get_session_token.assert_not_called()

    def test_mfa_skipped_when_chained(self, aws_config, memory_storage):
        """체인의 루트로 쓰일 때는 홉에서 MFA를 처리"""
        profile = aws_config(
            "[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\nmfa_serial = arn:mfa\n"
        ).get("dev")
        sts = MagicMock()
        assumer, _ = self.make(memory_storage, sts)

        creds = assumer.assume_terminal(profile, AssumeOptions(chained=True), Context.background())

        assert creds.access_key_id == "AKIA1"
        sts.get_session_token.assert_not_called()

    def test_console_federation_token(self, aws_config, memory_storage):
        profile = aws_config("[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\n").get("dev")
        sts = MagicMock()
        sts.get_federation_token.return_value = sts_credentials("ASIAFED")
        assumer, _ = self.make(memory_storage, sts)

        creds = assumer.assume_console(profile, AssumeOptions(duration=timedelta(hours=1)), Context.background())

        assert creds.access_key_id == "ASIAFED"
        kwargs = sts.get_federation_token.call_args.kwargs
        assert kwargs["Name"].startswith("cbkr-")
        assert len(kwargs["Name"]) <= 32
        assert json.loads(kwargs["Policy"])["Statement"][0]["Action"] == "*"
        assert kwargs["DurationSeconds"] == 3600

    def test_console_federation_error(self, aws_config, memory_storage):
        profile = aws_config("[profile dev]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\n").get("dev")
        sts = MagicMock()
        sts.get_federation_token.side_effect = client_error("AccessDenied", 403)
        assumer, _ = self.make(memory_storage, sts)

        with pytest.raises(ProviderError) as exc_info:
            assumer.assume_console(profile, AssumeOptions(), Context.background())
        assert exc_info.value.operation == "get_federation_token"


# =============================================================================
# credential_process
# =============================================================================


class TestParseProcessOutput:
    """parse_process_output 테스트"""

    def test_expiring(self):
        output = json.dumps(
            {
                "Version": 1,
                "AccessKeyId": "ASIA1",
                "SecretAccessKey": "s",
                "SessionToken": "t",
                "Expiration": "2099-01-01T00:00:00Z",
            }
        )
        creds = parse_process_output(output, "X")
        assert creds.can_expire is True
        assert creds.session_token == "t"

    def test_long_term(self):
        creds = parse_process_output('{"Version": 1, "AccessKeyId": "AKIA", "SecretAccessKey": "s"}', "X")
        assert creds.can_expire is False
        assert creds.session_token is None

    @pytest.mark.parametrize(
        "output",
        [
            "not json",
            "[1, 2]",
            '{"Version": 2, "AccessKeyId": "A", "SecretAccessKey": "s"}',
            '{"Version": 1, "AccessKeyId": "A"}',
            '{"Version": 1, "AccessKeyId": "A", "SecretAccessKey": "s", "Expiration": "soon"}',
        ],
    )
    def test_invalid(self, output):
        with pytest.raises(ProviderError) as exc_info:
            parse_process_output(output, "X")
        assert exc_info.value.operation == "parse_output"


class TestCredentialProcessAssumer:
    """CredentialProcessAssumer 테스트"""

    def test_matches(self, aws_config):
        profiles = aws_config(
            "[profile ext]\ncredential_process = /bin/get-creds --json\n\n"
            "[profile self]\ncredential_process = credbroker credential-process --profile self\n"
        )
        assumer = CredentialProcessAssumer(FakeRunner())
        assert assumer.matches(profiles.get("ext")) is True
        assert assumer.matches(profiles.get("self")) is False

    def test_runs_command(self, aws_config):
        profile = aws_config("[profile ext]\ncredential_process = /bin/get-creds --name 'my profile'\n").get("ext")
        runner = FakeRunner('{"Version": 1, "AccessKeyId": "AKIA", "SecretAccessKey": "s"}')

        creds = CredentialProcessAssumer(runner).assume_terminal(profile, AssumeOptions(), Context.background())

        assert creds.access_key_id == "AKIA"
        assert creds.source == "AWS_CREDENTIAL_PROCESS"
        assert runner.calls == [{"command": ["/bin/get-creds", "--name", "my profile"], "env": None, "capture": True}]


# =============================================================================
# 외부 헬퍼
# =============================================================================


class TestCommandRunner:
    """CommandRunner 테스트"""

    @patch("credbroker.auth.provider.external.subprocess.run")
    def test_capture(self, mock_run):
        mock_run.return_value = MagicMock(stdout="out")
        assert CommandRunner().run(["helper"], capture=True) == "out"
        assert mock_run.call_args.kwargs["stdout"] == subprocess.PIPE
        assert mock_run.call_args.kwargs["check"] is True

    @patch("credbroker.auth.provider.external.subprocess.run")
    def test_passthrough(self, mock_run):
        assert CommandRunner().run(["helper"]) == ""

    @patch("credbroker.auth.provider.external.subprocess.run")
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("helper")
        with pytest.raises(ProviderError) as exc_info:
            CommandRunner().run(["helper"])
        assert exc_info.value.provider == "helper"

    @patch("credbroker.auth.provider.external.subprocess.run")
    def test_non_zero_exit(self, mock_run):
        mock_run.side_effect = subprocess.CalledProcessError(2, ["helper"])
        with pytest.raises(ProviderError):
            CommandRunner().run(["helper"])


class TestSharedCredentials:
    """read_shared_credentials / scrubbed_environ 테스트"""

    def test_read(self, tmp_path):
        path = tmp_path / "credentials"
        expires = utcnow().replace(microsecond=0) + timedelta(hours=1)
        write_shared_credentials(path, "dev", expires)

        creds = read_shared_credentials("dev", path, "SRC")
        assert creds.access_key_id == "ASIAHELPER"
        assert creds.expires_at == expires
        assert creds.source == "SRC"

    def test_missing(self, tmp_path):
        assert read_shared_credentials("dev", tmp_path / "none") is None
        path = tmp_path / "credentials"
        write_shared_credentials(path, "other")
        assert read_shared_credentials("dev", path) is None

    def test_scrubbed_environ(self, monkeypatch):
        monkeypatch.setenv("AWS_PROFILE", "dev")
        monkeypatch.setenv("KEEP_ME", "1")
        env = scrubbed_environ()
        assert "AWS_PROFILE" not in env
        assert "AWS_ACCESS_KEY_ID" not in env
        assert env["KEEP_ME"] == "1"


class TestSaml2AwsAssumer:
    """Saml2AwsAssumer 테스트"""

    def test_runs_helper_and_reads_file(self, aws_config, tmp_path):
        profile = aws_config(
            "[profile saml]\ncredential_process = saml2aws login --credential-process --role arn:aws:iam::1:role/x\n"
        ).get("saml")
        credentials_path = tmp_path / "aws" / "credentials"
        runner = FakeRunner(
            write_credentials=lambda: write_shared_credentials(
                credentials_path, "saml", utcnow() + timedelta(hours=1)
            )
        )
        assumer = Saml2AwsAssumer(runner)

        creds = assumer.assume_terminal(profile, AssumeOptions(), Context.background())

        assert runner.calls[0]["command"] == [
            "saml2aws",
            "login",
            "--credential-process",
            "--role",
            "arn:aws:iam::1:role/x",
        ]
        assert runner.calls[0]["capture"] is False
        assert creds.access_key_id == "ASIAHELPER"
        assert creds.source == "SAML_2_AWS"

    def test_no_credentials_written(self, aws_config):
        profile = aws_config("[profile saml]\ncredential_process = saml2aws login\n").get("saml")
        with pytest.raises(ProviderError) as exc_info:
            Saml2AwsAssumer(FakeRunner()).assume_terminal(profile, AssumeOptions(), Context.background())
        assert exc_info.value.operation == "read_credentials"


class TestGoogleAuthAssumer:
    """GoogleAuthAssumer 테스트"""

    def test_pass_through_args(self, aws_config, tmp_path):
        profile = aws_config("[profile g]\ngoogle_config.google_idp_id = idp\n").get("g")
        credentials_path = tmp_path / "aws" / "credentials"
        runner = FakeRunner(write_credentials=lambda: write_shared_credentials(credentials_path, "g"))

        creds = GoogleAuthAssumer(runner).assume_terminal(
            profile, AssumeOptions(args=["--ask-role"]), Context.background()
        )

        assert runner.calls[0]["command"] == ["aws-google-auth", "--profile=g", "--ask-role"]
        assert creds.source == "AWS_GOOGLE_AUTH"


class TestAzureLoginAssumer:
    """AzureLoginAssumer 테스트"""

    def test_reuses_valid_credentials(self, aws_config, tmp_path):
        profile = aws_config("[profile az]\nazure_tenant_id = t\n").get("az")
        write_shared_credentials(tmp_path / "aws" / "credentials", "az", utcnow() + timedelta(hours=1))
        sts = MagicMock()
        runner = FakeRunner()

        creds = AzureLoginAssumer(runner, client_factory=MagicMock(return_value=sts)).assume_terminal(
            profile, AssumeOptions(), Context.background()
        )

        assert creds.access_key_id == "ASIAHELPER"
        sts.get_caller_identity.assert_called_once()
        assert runner.calls == []

    def test_runs_helper_when_rejected(self, aws_config, tmp_path):
        profile = aws_config("[profile az]\nazure_tenant_id = t\n").get("az")
        write_shared_credentials(tmp_path / "aws" / "credentials", "az", utcnow() + timedelta(hours=1))
        sts = MagicMock()
        sts.get_caller_identity.side_effect = client_error("ExpiredToken", 403)
        runner = FakeRunner()

        AzureLoginAssumer(runner, client_factory=MagicMock(return_value=sts)).assume_terminal(
            profile, AssumeOptions(), Context.background()
        )

        assert runner.calls[0]["command"] == ["aws-azure-login", "--profile=az"]

    def test_force_refresh_skips_check(self, aws_config, tmp_path):
        profile = aws_config("[profile az]\nazure_tenant_id = t\n").get("az")
        write_shared_credentials(tmp_path / "aws" / "credentials", "az", utcnow() + timedelta(hours=1))
        factory = MagicMock()
        runner = FakeRunner()

        AzureLoginAssumer(runner, client_factory=factory).assume_terminal(
            profile, AssumeOptions(force_refresh=True), Context.background()
        )

        factory.assert_not_called()
        assert len(runner.calls) == 1


class TestGimmeAwsCredsAssumer:
    """GimmeAwsCredsAssumer 테스트"""

    OUTPUT = json.dumps(
        {
            "shared_profile": "okta",
            "credentials": {
                "aws_access_key_id": "ASIAOKTA",
                "aws_secret_access_key": "s",
                "aws_session_token": "t",
                "expiration": "2099-01-01T00:00:00+00:00",
            },
        }
    )

    def make(self, memory_storage, runner, settings=None):
        sessions = SessionCredentialStorage(memory_storage("aws-session-credentials"))
        return GimmeAwsCredsAssumer(runner, sessions, settings, okta_profiles={"okta"})

    def test_load_okta_profiles(self, tmp_path):
        path = tmp_path / "okta"
        path.write_text("[DEFAULT]\nokta_org_url = x\n\n[okta]\ngimme_creds_server = appurl\n")
        assert load_okta_profiles(path) == {"okta"}
        assert load_okta_profiles(tmp_path / "missing") == set()

    def test_runs_and_caches(self, aws_config, memory_storage):
        profile = aws_config("[profile okta]\nregion = us-east-1\n").get("okta")
        runner = FakeRunner(self.OUTPUT)
        assumer = self.make(memory_storage, runner)

        creds = assumer.assume_terminal(profile, AssumeOptions(), Context.background())

        assert creds.access_key_id == "ASIAOKTA"
        call = runner.calls[0]
        assert call["command"] == ["gimme-aws-creds", "--profile=okta", "--output-format=json"]
        assert call["capture"] is True
        assert "AWS_ACCESS_KEY_ID" not in call["env"]
        assert assumer.sessions.get("okta").access_key_id == "ASIAOKTA"

        assumer.assume_terminal(profile, AssumeOptions(), Context.background())
        assert len(runner.calls) == 1

    def test_open_browser_flag(self, aws_config, memory_storage):
        profile = aws_config("[profile okta]\ncredbroker_okta_open_browser = true\n").get("okta")
        runner = FakeRunner(self.OUTPUT)
        self.make(memory_storage, runner).assume_terminal(profile, AssumeOptions(), Context.background())
        assert "--open-browser" in runner.calls[0]["command"]

    def test_credential_process_requires_login(self, aws_config, memory_storage):
        profile = aws_config("[profile okta]\nregion = us-east-1\n").get("okta")
        runner = FakeRunner(self.OUTPUT)
        with pytest.raises(LoginRequiredError) as exc_info:
            self.make(memory_storage, runner).assume_terminal(
                profile, AssumeOptions(credential_process=True), Context.background()
            )
        assert exc_info.value.command_hint == "credbroker assume okta"
        assert runner.calls == []

    def test_credential_process_auto_login(self, aws_config, memory_storage):
        profile = aws_config("[profile okta]\nregion = us-east-1\n").get("okta")
        runner = FakeRunner(self.OUTPUT)
        assumer = self.make(memory_storage, runner, Settings(credential_process_auto_login=True))
        assumer.assume_terminal(profile, AssumeOptions(credential_process=True), Context.background())
        assert "--open-browser" in runner.calls[0]["command"]

    def test_bad_output(self, aws_config, memory_storage):
        profile = aws_config("[profile okta]\nregion = us-east-1\n").get("okta")
        with pytest.raises(ProviderError):
            self.make(memory_storage, FakeRunner("{}")).assume_terminal(profile, AssumeOptions(), Context.background())
