import aws_cdk as cdk
import pytest
from aws_cdk.assertions import Template

from settings import DeploymentSettings
from topology import build_stacks

ACCOUNT = "123456789012"
REGION = "ap-southeast-3"
CERTIFICATE_ARN = f"arn:aws:acm:{REGION}:{ACCOUNT}:certificate/00000000-0000-0000-0000-000000000000"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell configuration out of the tests."""
    for name in ("CDK_DEFAULT_ACCOUNT", "CDK_DEFAULT_REGION", "CERTIFICATE_ARN", "CONTAINER_IMAGE",
                 "IMAGE_PATH", "AWS_KEYPAIR", "STACKS", "ADMIN_CIDR", "NAT_AMI_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope="session")
def settings() -> DeploymentSettings:
    return DeploymentSettings(account=ACCOUNT, region=REGION, certificate_arn=CERTIFICATE_ARN)


@pytest.fixture(scope="session")
def stacks(settings):
    # Concrete account/region so AZ and AMI lookups resolve to dummy values
    return build_stacks(cdk.App(), settings)


@pytest.fixture(scope="session")
def template(stacks):
    def _template(name: str) -> Template:
        return Template.from_stack(stacks[name])
    return _template
