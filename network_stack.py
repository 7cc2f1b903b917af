import logging
from typing import Optional

from aws_cdk import CfnOutput, Stack, aws_ec2 as ec2
from constructs import Construct

from service_config import BACKEND, FRONTEND, MYSQL_PORT, NFS_PORT, REALTIME, REDIS_PORT
from settings import DEFAULT_NAT_AMI_NAME, DEFAULT_NAT_AMI_OWNER, DEFAULT_VPC_CIDR

logger = logging.getLogger(__name__)


class NetworkStack(Stack):
    """VPC, NAT instance and every security group the other stacks attach to."""

    def __init__(self, scope: Construct, construct_id: str, key_pair_name: str,
                 vpc_cidr: str = DEFAULT_VPC_CIDR,
                 nat_ami_name: str = DEFAULT_NAT_AMI_NAME,
                 nat_ami_owner: str = DEFAULT_NAT_AMI_OWNER,
                 nat_ami_id: Optional[str] = None,
                 admin_cidr: Optional[str] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.key_pair = ec2.KeyPair.from_key_pair_name(self, "KeyPair", key_pair_name)

        # VPC with 2 AZs, egress through a NAT instance instead of a NAT gateway
        nat_provider = ec2.NatProvider.instance_v2(
            instance_type=ec2.InstanceType.of(ec2.InstanceClass.T4G, ec2.InstanceSize.NANO),
            machine_image=self._nat_machine_image(nat_ami_name, nat_ami_owner, nat_ami_id),
            key_pair=self.key_pair,
            default_allowed_traffic=ec2.NatTrafficDirection.OUTBOUND_ONLY,
        )
        self.vpc = ec2.Vpc(
            self, "MainVpc",
            max_azs=2,
            ip_addresses=ec2.IpAddresses.cidr(vpc_cidr),
            nat_gateway_provider=nat_provider,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Frontend",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24
                ),
                ec2.SubnetConfiguration(
                    name="Backend",
                    subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                    cidr_mask=20
                ),
                ec2.SubnetConfiguration(
                    name="Other",
                    subnet_type=ec2.SubnetType.PRIVATE_ISOLATED,
                    cidr_mask=20
                )
            ]
        )

        self.nat_security_group = self._create_nat_security_group(admin_cidr)
        for instance in nat_provider.gateway_instances:
            instance.add_security_group(self.nat_security_group)

        # Groups first, rules second: rules reference groups declared later
        self._create_security_groups()
        self._configure_security_group_rules()

        CfnOutput(self, "VpcId", value=self.vpc.vpc_id)

    def _nat_machine_image(self, name: str, owner: str, ami_id: Optional[str]) -> ec2.IMachineImage:
        if ami_id:
            return ec2.MachineImage.generic_linux({self.region: ami_id})
        if "*" in name:
            # The lookup takes the newest of several matches; pin nat_ami_id to make it exact
            logger.warning("NAT image pattern %r may match several images; set nat_ami_id to pin one", name)
        return ec2.LookupMachineImage(name=name, owners=[owner])

    def _create_nat_security_group(self, admin_cidr: Optional[str]) -> ec2.SecurityGroup:
        sg = ec2.SecurityGroup(
            self, "NatSecurityGroup",
            vpc=self.vpc,
            description="Security group for NAT instance"
        )
        sg.add_egress_rule(ec2.Peer.any_ipv4(), ec2.Port.all_traffic())
        sg.add_ingress_rule(ec2.Peer.ipv4(self.vpc.vpc_cidr_block), ec2.Port.all_traffic())
        if admin_cidr:
            sg.add_ingress_rule(ec2.Peer.ipv4(admin_cidr), ec2.Port.tcp(22), "Allow SSH from admin network")
        return sg

    def _security_group(self, construct_id: str, description: str,
                        allow_all_outbound: bool = True) -> ec2.SecurityGroup:
        return ec2.SecurityGroup(
            self, construct_id,
            vpc=self.vpc,
            description=description,
            security_group_name=construct_id,
            allow_all_outbound=allow_all_outbound
        )

    def _create_security_groups(self) -> None:
        self.public_load_balancer_security_group = self._security_group(
            "PublicLoadBalancerSecurityGroup", "Allow http and https IPv4/IPv6 from anywhere")
        self.backend_load_balancer_security_group = self._security_group(
            "BackendLoadBalancerSecurityGroup", "Allow http 8000 from Frontend")

        self.frontend_service_security_group = self._security_group(
            "FrontendServiceSecurityGroup", "Backend ALB (8000 TCP) to Frontend (8080 TCP) to Public ALB")
        self.socketio_service_security_group = self._security_group(
            "SocketIoServiceSecurityGroup", "Allow 9000 TCP from Public ALB")
        self.backend_service_security_group = self._security_group(
            "BackendServiceSecurityGroup", "Backend to Internal ALB")
        self.common_service_security_group = self._security_group(
            "CommonServiceSecurityGroup", "Common service security group to access Redis, EFS, DB")

        self.database_security_group = self._security_group(
            "DatabaseSecurityGroup", "Allow MySQL from Common Service")
        self.redis_security_group = self._security_group(
            "RedisSecurityGroup", "Allow Redis from Common Service")
        self.efs_security_group = self._security_group(
            "EFSSecurityGroup", "Allow EFS from Common Service")

    def _configure_security_group_rules(self) -> None:
        public = self.public_load_balancer_security_group
        for peer in (ec2.Peer.any_ipv4(), ec2.Peer.any_ipv6()):
            public.add_ingress_rule(peer, ec2.Port.tcp(80))
            public.add_ingress_rule(peer, ec2.Port.tcp(443))
        public.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.icmp_ping())
        public.add_ingress_rule(ec2.Peer.any_ipv6(), ec2.Port.icmp_ping())

        self.backend_load_balancer_security_group.add_ingress_rule(
            self.frontend_service_security_group,
            ec2.Port.tcp(BACKEND.port),
            "Allow http 8000 from Frontend"
        )
        self.frontend_service_security_group.add_ingress_rule(
            public,
            ec2.Port.tcp(FRONTEND.port),
            "Allow http 8080 from Public ALB"
        )
        self.socketio_service_security_group.add_ingress_rule(
            public,
            ec2.Port.tcp(REALTIME.port),
            "Allow http 9000 from Public ALB"
        )
        self.backend_service_security_group.add_ingress_rule(
            self.backend_load_balancer_security_group,
            ec2.Port.tcp(BACKEND.port),
            "Allow http 8000 from Backend ALB"
        )
        self.redis_security_group.add_ingress_rule(
            self.common_service_security_group,
            ec2.Port.tcp(REDIS_PORT),
            "Allow Redis from Common Service"
        )
        self.redis_security_group.add_ingress_rule(
            self.nat_security_group,
            ec2.Port.tcp(22),
            "Allow SSH from NAT Security Group"
        )
        self.database_security_group.add_ingress_rule(
            self.common_service_security_group,
            ec2.Port.tcp(MYSQL_PORT),
            "Allow MySQL from Common Service"
        )
        self.efs_security_group.add_ingress_rule(
            self.common_service_security_group,
            ec2.Port.tcp(NFS_PORT),
            "Allow EFS from Common Service"
        )
