from aws_cdk import (
    Stack, CfnOutput, RemovalPolicy,
    aws_ec2 as ec2,
    aws_efs as efs
)
from constructs import Construct

from service_config import LOGS_VOLUME, POSIX_GID, POSIX_UID, SITES_VOLUME


class StorageStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, vpc: ec2.Vpc,
                 efs_security_group: ec2.SecurityGroup, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Site data outlives the stack, logs do not
        self.sites_fs = self._create_file_system(
            "SitesFs", vpc, efs_security_group,
            lifecycle_policy=efs.LifecyclePolicy.AFTER_14_DAYS,
            removal_policy=RemovalPolicy.RETAIN
        )
        self.logs_fs = self._create_file_system(
            "LogsFs", vpc, efs_security_group,
            lifecycle_policy=efs.LifecyclePolicy.AFTER_7_DAYS,
            removal_policy=RemovalPolicy.DESTROY
        )

        self.sites_access_point = self._create_access_point(self.sites_fs, "SitesAccess", SITES_VOLUME)
        self.logs_access_point = self._create_access_point(self.logs_fs, "LogsAccess", LOGS_VOLUME)

        CfnOutput(self, "SitesFileSystemId", value=self.sites_fs.file_system_id)
        CfnOutput(self, "LogsFileSystemId", value=self.logs_fs.file_system_id)

    def _create_file_system(self, construct_id: str, vpc: ec2.Vpc, security_group: ec2.SecurityGroup,
                            lifecycle_policy: efs.LifecyclePolicy,
                            removal_policy: RemovalPolicy) -> efs.FileSystem:
        return efs.FileSystem(
            self, construct_id,
            vpc=vpc,
            lifecycle_policy=lifecycle_policy,
            throughput_mode=efs.ThroughputMode.ELASTIC,
            encrypted=True,
            removal_policy=removal_policy,
            performance_mode=efs.PerformanceMode.GENERAL_PURPOSE,
            security_group=security_group,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_ISOLATED)
        )

    def _create_access_point(self, file_system: efs.FileSystem, construct_id: str,
                             directory: str) -> efs.AccessPoint:
        return file_system.add_access_point(
            construct_id,
            path=f"/{directory}",
            posix_user=efs.PosixUser(uid=POSIX_UID, gid=POSIX_GID),
            create_acl=efs.Acl(owner_uid=POSIX_UID, owner_gid=POSIX_GID, permissions="755")
        )
