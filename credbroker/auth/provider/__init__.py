# credbroker/auth/provider/__init__.py
"""
Assumer Dispatch Registry 및 자격 증명 전략 구현

전략 목록 (기본 등록 순서):
- Saml2AwsAssumer: saml2aws credential_process
- GimmeAwsCredsAssumer: gimme-aws-creds (Okta)
- GoogleAuthAssumer: aws-google-auth
- AzureLoginAssumer: aws-azure-login
- SSOAssumer: IAM Identity Center 계정/역할
- CredentialProcessAssumer: 일반 credential_process
- IAMAssumer: 액세스 키 (마지막, catch-all)

Note:
    이 모듈은 Lazy Import 패턴을 사용합니다.
"""

__all__ = [
    # Registry
    "AssumerRegistry",
    "create_default_registry",
    # Strategies
    "SSOAssumer",
    "IAMAssumer",
    "CredentialProcessAssumer",
    "Saml2AwsAssumer",
    "GimmeAwsCredsAssumer",
    "GoogleAuthAssumer",
    "AzureLoginAssumer",
    # Helpers
    "CommandRunner",
    "parse_process_output",
]

_IMPORT_MAPPING = {
    "AssumerRegistry": (".base", "AssumerRegistry"),
    "create_default_registry": (".defaults", "create_default_registry"),
    "SSOAssumer": (".sso", "SSOAssumer"),
    "IAMAssumer": (".iam", "IAMAssumer"),
    "CredentialProcessAssumer": (".credential_process", "CredentialProcessAssumer"),
    "parse_process_output": (".credential_process", "parse_process_output"),
    "CommandRunner": (".external", "CommandRunner"),
    "Saml2AwsAssumer": (".external", "Saml2AwsAssumer"),
    "GimmeAwsCredsAssumer": (".external", "GimmeAwsCredsAssumer"),
    "GoogleAuthAssumer": (".external", "GoogleAuthAssumer"),
    "AzureLoginAssumer": (".external", "AzureLoginAssumer"),
}


def __getattr__(name: str):
    """Lazy import - 실제 사용 시점에만 모듈 로드"""
    if name in _IMPORT_MAPPING:
        module_name, attr_name = _IMPORT_MAPPING[name]
        import importlib

        module = importlib.import_module(module_name, __name__)
        return getattr(module, attr_name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
