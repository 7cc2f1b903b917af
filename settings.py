import ipaddress
import os
from dataclasses import dataclass
from typing import Optional

import aws_cdk as cdk


class ConfigurationError(ValueError):
    """Raised when deployment configuration is invalid."""


DEFAULT_VPC_CIDR = "10.0.0.0/16"
DEFAULT_CONTAINER_IMAGE = "frappe/erpnext:latest"
DEFAULT_KEY_PAIR = "frappe"
DEFAULT_CLUSTER_NAME = "frappe-cluster"

# fck-nat images, published for arm64 by the project's account
DEFAULT_NAT_AMI_NAME = "fck-nat-al2023-*-arm64-ebs"
DEFAULT_NAT_AMI_OWNER = "568608671756"

UNRESTRICTED_CIDRS = ("0.0.0.0/0", "::/0")


@dataclass(frozen=True)
class DeploymentSettings:
    account: Optional[str] = None
    region: Optional[str] = None
    certificate_arn: Optional[str] = None
    container_image: str = DEFAULT_CONTAINER_IMAGE
    image_path: Optional[str] = None
    key_pair_name: str = DEFAULT_KEY_PAIR
    stack_filter: Optional[str] = None
    vpc_cidr: str = DEFAULT_VPC_CIDR
    admin_cidr: Optional[str] = None
    cluster_name: str = DEFAULT_CLUSTER_NAME
    nat_ami_name: str = DEFAULT_NAT_AMI_NAME
    nat_ami_owner: str = DEFAULT_NAT_AMI_OWNER
    nat_ami_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_app(cls, app: cdk.App) -> "DeploymentSettings":
        """Read settings from CDK context, falling back to environment variables."""

        def lookup(key: str, env_var: Optional[str] = None, default=None):
            value = app.node.try_get_context(key)
            if value is None and env_var:
                value = os.getenv(env_var)
            return default if value in (None, "") else value

        return cls(
            account=lookup("account", "CDK_DEFAULT_ACCOUNT"),
            region=lookup("region", "CDK_DEFAULT_REGION"),
            certificate_arn=lookup("certificate_arn", "CERTIFICATE_ARN"),
            container_image=lookup("container_image", "CONTAINER_IMAGE", DEFAULT_CONTAINER_IMAGE),
            image_path=lookup("image_path", "IMAGE_PATH"),
            key_pair_name=lookup("key_pair_name", "AWS_KEYPAIR", DEFAULT_KEY_PAIR),
            stack_filter=lookup("stacks", "STACKS"),
            vpc_cidr=lookup("vpc_cidr", default=DEFAULT_VPC_CIDR),
            admin_cidr=lookup("admin_cidr", "ADMIN_CIDR"),
            cluster_name=lookup("cluster_name", default=DEFAULT_CLUSTER_NAME),
            nat_ami_name=lookup("nat_ami_name", default=DEFAULT_NAT_AMI_NAME),
            nat_ami_owner=lookup("nat_ami_owner", default=DEFAULT_NAT_AMI_OWNER),
            nat_ami_id=lookup("nat_ami_id", "NAT_AMI_ID"),
        )

    def validate(self) -> None:
        try:
            ipaddress.ip_network(self.vpc_cidr)
        except ValueError as e:
            raise ConfigurationError(f"Invalid vpc_cidr {self.vpc_cidr!r}: {e}") from e

        if self.admin_cidr is not None:
            try:
                network = ipaddress.ip_network(self.admin_cidr)
            except ValueError as e:
                raise ConfigurationError(f"Invalid admin_cidr {self.admin_cidr!r}: {e}") from e
            if str(network) in UNRESTRICTED_CIDRS:
                raise ConfigurationError("admin_cidr must not be an unrestricted address range")

        if not self.nat_ami_id and not self.nat_ami_name:
            raise ConfigurationError("Either nat_ami_id or nat_ami_name must be set for the NAT instance")
        if self.nat_ami_id and not self.region:
            raise ConfigurationError("nat_ami_id is region specific; region must be set as well")

    @property
    def environment(self) -> cdk.Environment:
        return cdk.Environment(account=self.account, region=self.region)
