# tests/credbroker/auth/test_auth_config_loader.py
"""
credbroker/auth/config/loader.py 테스트

테스트 대상:
- Loader: config / credentials 파일 파싱, sso-session 해석
- 프로파일 이름 검증, config 우선 병합 규칙
"""

import pytest

from credbroker.auth.config.loader import Loader, ProfileConfig, is_legal_profile_name, load_config
from credbroker.auth.types import ConfigurationError


def write_files(tmp_path, config="", credentials=""):
    config_path = tmp_path / "config"
    credentials_path = tmp_path / "credentials"
    config_path.write_text(config, encoding="utf-8")
    credentials_path.write_text(credentials, encoding="utf-8")
    return config_path, credentials_path


class TestLoader:
    """Loader 테스트"""

    def test_env_paths(self, tmp_path):
        loader = Loader()
        assert loader.config_path == tmp_path / "aws" / "config"
        assert loader.credentials_path == tmp_path / "aws" / "credentials"

    def test_missing_files(self, tmp_path):
        parsed = Loader(tmp_path / "none", tmp_path / "none2").load()
        assert parsed.profiles == {}
        assert parsed.default_profile is None

    def test_profiles_and_default(self, tmp_path):
        paths = write_files(
            tmp_path,
            config=(
                "[default]\nregion = us-east-1\n\n"
                "[profile dev]\nregion = ap-northeast-2\noutput = json\n\n"
                "[services my-services]\nfoo = bar\n"
            ),
        )
        parsed = load_config(*paths)

        assert list(parsed.profiles) == ["default", "dev"]
        assert parsed.default_profile == "default"
        assert parsed.profiles["dev"].region == "ap-northeast-2"
        assert parsed.profiles["dev"].raw["output"] == "json"
        assert parsed.profiles["dev"].file == paths[0]

    def test_sso_session_resolution(self, tmp_path):
        paths = write_files(
            tmp_path,
            config=(
                "[sso-session corp]\n"
                "sso_start_url = https://corp.awsapps.com/start\n"
                "sso_region = ap-northeast-2\n"
                "sso_registration_scopes = sso:account:access, other:scope\n\n"
                "[profile dev]\n"
                "sso_session = corp\n"
                "sso_account_id = 111111111111\n"
                "sso_role_name = Developer\n"
            ),
        )
        parsed = load_config(*paths)
        dev = parsed.profiles["dev"]

        assert dev.sso_start_url == "https://corp.awsapps.com/start"
        assert dev.sso_region == "ap-northeast-2"
        assert dev.sso_registration_scopes == ["sso:account:access", "other:scope"]
        assert "corp" in parsed.sessions

    def test_unknown_sso_session(self, tmp_path):
        paths = write_files(tmp_path, config="[profile dev]\nsso_session = nope\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(*paths)
        assert exc_info.value.config_key == "sso_session"

    def test_sso_session_missing_start_url(self, tmp_path):
        paths = write_files(tmp_path, config="[sso-session corp]\nsso_region = us-east-1\n")
        with pytest.raises(ConfigurationError):
            load_config(*paths)

    def test_invalid_duration(self, tmp_path):
        paths = write_files(tmp_path, config="[profile dev]\nduration_seconds = forever\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(*paths)
        assert exc_info.value.config_key == "duration_seconds"

    def test_malformed_file(self, tmp_path):
        paths = write_files(tmp_path, config="region = us-east-1\n")
        with pytest.raises(ConfigurationError):
            load_config(*paths)

    def test_illegal_name_skipped(self, tmp_path):
        paths = write_files(tmp_path, config="[profile bad;name]\nregion = x\n\n[profile ok]\nregion = y\n")
        assert list(load_config(*paths).profiles) == ["ok"]

    def test_credentials_only_profile(self, tmp_path):
        paths = write_files(
            tmp_path,
            credentials="[ci]\naws_access_key_id = AKIA1\naws_secret_access_key = secret\n",
        )
        ci = load_config(*paths).profiles["ci"]
        assert ci.aws_access_key_id == "AKIA1"
        assert ci.file == paths[1]

    def test_config_wins_with_static_keys_merged(self, tmp_path):
        """같은 이름이면 config 정의 우선, 정적 키만 병합"""
        paths = write_files(
            tmp_path,
            config="[profile dev]\nregion = eu-west-1\nmfa_serial = arn:aws:iam::1:mfa/me\n",
            credentials=(
                "[dev]\nregion = us-west-2\n"
                "aws_access_key_id = AKIA1\naws_secret_access_key = secret\n"
            ),
        )
        dev = load_config(*paths).profiles["dev"]
        assert dev.region == "eu-west-1"
        assert dev.aws_access_key_id == "AKIA1"
        assert dev.aws_secret_access_key == "secret"
        assert dev.file == paths[0]

    def test_list_helpers(self, tmp_path):
        paths = write_files(
            tmp_path,
            config=(
                "[sso-session b]\nsso_start_url = u\nsso_region = r\n\n"
                "[profile zeta]\nregion = x\n\n[profile alpha]\nregion = y\n"
            ),
        )
        loader = Loader(*paths)
        assert loader.list_profiles() == ["alpha", "zeta"]
        assert loader.list_sso_sessions() == ["b"]


class TestProfileConfig:
    """ProfileConfig 테스트"""

    def test_blank_values_are_none(self):
        config = ProfileConfig.from_raw("dev", {"region": "  ", "role_arn": "arn:aws:iam::1:role/x"})
        assert config.region is None
        assert config.role_arn == "arn:aws:iam::1:role/x"

    def test_legal_names(self):
        assert is_legal_profile_name("dev-01_prod.x") is True
        assert is_legal_profile_name("has space") is False
        assert is_legal_profile_name('quote"') is False
