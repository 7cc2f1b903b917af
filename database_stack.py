from typing import List

from aws_cdk import (
    Stack, CfnOutput, Duration, RemovalPolicy,
    aws_ec2 as ec2,
    aws_rds as rds
)
from constructs import Construct

REDIS_CONF = "/etc/redis6/redis6.conf"


def cache_bootstrap_commands(max_memory: str = "1gb", eviction_policy: str = "allkeys-lru") -> List[str]:
    """First-boot script for the Redis node.

    Config edits are in-place substitutions of the packaged defaults, so a
    replacement instance re-running the script ends in the same state.
    """
    return [
        "yum update -y",
        "dnf install -y redis6",
        "systemctl enable redis6.service",
        "systemctl start redis6.service",
        "redis6-cli ping",
        f'sed -i "s/^bind 127.0.0.1.*/bind 0.0.0.0/" {REDIS_CONF}',
        f'sed -i "s/^# maxmemory <bytes>/maxmemory {max_memory}/" {REDIS_CONF}',
        f'sed -i "s/^# maxmemory-policy noeviction/maxmemory-policy {eviction_policy}/" {REDIS_CONF}',
        "systemctl restart redis6.service",
        "redis6-cli ping",
    ]


class DatabaseStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, vpc: ec2.Vpc,
                 database_security_group: ec2.SecurityGroup,
                 redis_security_group: ec2.SecurityGroup,
                 key_pair_name: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Aurora Serverless v2, min capacity 0 lets the writer pause when idle
        self.database = rds.DatabaseCluster(
            self, "MainDatabase",
            engine=rds.DatabaseClusterEngine.aurora_mysql(
                version=rds.AuroraMysqlEngineVersion.VER_3_08_1
            ),
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED),
            credentials=rds.Credentials.from_generated_secret("admin"),
            serverless_v2_min_capacity=0,
            serverless_v2_max_capacity=1,
            storage_encrypted=True,
            backup=rds.BackupProps(
                retention=Duration.days(7),
                preferred_window="19:00-20:00"
            ),
            monitoring_interval=Duration.seconds(60),
            writer=rds.ClusterInstance.serverless_v2("writer"),
            security_groups=[database_security_group],
            removal_policy=RemovalPolicy.RETAIN
        )

        # Single Redis node, no replica
        user_data = ec2.UserData.for_linux()
        user_data.add_commands(*cache_bootstrap_commands())

        self.redis = ec2.Instance(
            self, "RedisNode",
            instance_type=ec2.InstanceType.of(ec2.InstanceClass.T4G, ec2.InstanceSize.MICRO),
            machine_image=ec2.MachineImage.latest_amazon_linux2023(
                cpu_type=ec2.AmazonLinuxCpuType.ARM_64
            ),
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_group=redis_security_group,
            key_pair=ec2.KeyPair.from_key_pair_name(self, "KeyPair", key_pair_name),
            user_data=user_data
        )

        CfnOutput(self, "DatabaseEndpoint", value=self.database.cluster_endpoint.hostname)
        CfnOutput(self, "RedisPrivateIp", value=self.redis.instance_private_ip)
