import aws_cdk as cdk
import pytest

from settings import DEFAULT_CONTAINER_IMAGE, ConfigurationError, DeploymentSettings


def test_context_values_take_precedence(monkeypatch):
    monkeypatch.setenv("CONTAINER_IMAGE", "from-env:latest")
    app = cdk.App(context={
        "account": "111111111111",
        "region": "eu-west-1",
        "container_image": "from-context:latest",
        "stacks": "Network*",
    })

    settings = DeploymentSettings.from_app(app)

    assert settings.account == "111111111111"
    assert settings.region == "eu-west-1"
    assert settings.container_image == "from-context:latest"
    assert settings.stack_filter == "Network*"


def test_environment_fallback_and_defaults(monkeypatch):
    monkeypatch.setenv("CDK_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_KEYPAIR", "ops")

    settings = DeploymentSettings.from_app(cdk.App())

    assert settings.region == "us-east-1"
    assert settings.key_pair_name == "ops"
    assert settings.container_image == DEFAULT_CONTAINER_IMAGE
    assert settings.vpc_cidr == "10.0.0.0/16"
    assert settings.stack_filter is None


def test_environment_property():
    env = DeploymentSettings(account="123456789012", region="ap-southeast-3").environment
    assert env.account == "123456789012"
    assert env.region == "ap-southeast-3"


def test_invalid_vpc_cidr_fails_fast():
    with pytest.raises(ConfigurationError, match="vpc_cidr"):
        DeploymentSettings(vpc_cidr="10.0.0.0/33")


@pytest.mark.parametrize("cidr", ["0.0.0.0/0", "::/0"])
def test_unrestricted_admin_cidr_is_rejected(cidr):
    with pytest.raises(ConfigurationError, match="unrestricted"):
        DeploymentSettings(admin_cidr=cidr)


def test_restricted_admin_cidr_is_accepted():
    assert DeploymentSettings(admin_cidr="203.0.113.0/24").admin_cidr == "203.0.113.0/24"


def test_nat_image_source_required():
    with pytest.raises(ConfigurationError, match="nat_ami"):
        DeploymentSettings(nat_ami_name="")


def test_pinned_nat_image_requires_region():
    with pytest.raises(ConfigurationError, match="region"):
        DeploymentSettings(nat_ami_id="ami-0123456789abcdef0")
