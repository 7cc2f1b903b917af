from typing import Optional

from aws_cdk import (
    Stack, CfnOutput, RemovalPolicy, Token,
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_efs as efs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_logs as logs,
    aws_iam as iam,
    aws_rds as rds,
    aws_ecr_assets as ecr_assets
)
from constructs import Construct

from service_config import (
    BACKEND, FRONTEND, REALTIME,
    LOGS_VOLUME, MOUNT_PATHS, SITES_VOLUME, REDIS_PORT,
    TASK_CPU, TASK_MEMORY_MIB, DESIRED_COUNT,
    HEALTH_CHECK_INTERVAL, HEALTH_CHECK_RETRIES, HEALTH_CHECK_START_PERIOD, HEALTH_CHECK_TIMEOUT,
    MIN_CAPACITY, MAX_CAPACITY, CPU_TARGET_PERCENT, MEMORY_TARGET_PERCENT,
    SCALE_IN_COOLDOWN, SCALE_OUT_COOLDOWN,
    ContainerEnvironment, FrontendEnvironment, ServiceDefinition
)


class ServiceStack(Stack):
    """Backend, frontend and socket.io services of the bench, all from one image."""

    def __init__(self, scope: Construct, construct_id: str, cluster: ecs.Cluster,
                 database: rds.DatabaseCluster, redis: ec2.Instance,
                 sites_access_point: efs.AccessPoint, logs_access_point: efs.AccessPoint,
                 backend_alb: elbv2.ApplicationLoadBalancer,
                 frontend_target_group: elbv2.ApplicationTargetGroup,
                 socketio_target_group: elbv2.ApplicationTargetGroup,
                 backend_target_group: elbv2.ApplicationTargetGroup,
                 frontend_service_security_group: ec2.SecurityGroup,
                 socketio_service_security_group: ec2.SecurityGroup,
                 backend_service_security_group: ec2.SecurityGroup,
                 common_service_security_group: ec2.SecurityGroup,
                 container_image: str, image_path: Optional[str] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.cluster = cluster
        self.sites_access_point = sites_access_point
        self.logs_access_point = logs_access_point
        self.image = self._container_image(container_image, image_path)

        self.execution_role = self._create_execution_role()
        self.task_role = self._create_task_role(database)

        environment = self._common_environment(database, redis)
        namespace = cluster.default_cloud_map_namespace
        socketio_address = f"{REALTIME.discovery_name}.{namespace.namespace_name}:{REALTIME.port}"
        frontend_environment = FrontendEnvironment.extend(
            environment,
            backend=f"{backend_alb.load_balancer_dns_name}:{BACKEND.port}",
            socketio=socketio_address
        )

        self.backend_service = self._create_service(
            BACKEND, environment, backend_target_group,
            [backend_service_security_group, common_service_security_group]
        )
        self.frontend_service = self._create_service(
            FRONTEND, frontend_environment, frontend_target_group,
            [frontend_service_security_group, common_service_security_group]
        )
        self.socketio_service = self._create_service(
            REALTIME, environment, socketio_target_group,
            [socketio_service_security_group, common_service_security_group]
        )

        for service in (self.backend_service, self.frontend_service, self.socketio_service):
            CfnOutput(self, f"{service.node.id}Name", value=service.service_name)

    def _container_image(self, container_image: str, image_path: Optional[str]) -> ecs.ContainerImage:
        if image_path:
            asset = ecr_assets.DockerImageAsset(
                self, "BenchImage",
                directory=image_path,
                platform=ecr_assets.Platform.LINUX_AMD64
            )
            return ecs.ContainerImage.from_docker_image_asset(asset)
        return ecs.ContainerImage.from_registry(container_image)

    def _create_execution_role(self) -> iam.Role:
        # Used by ECS itself to pull the image and ship logs
        return iam.Role(
            self, "TaskExecutionRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEC2ContainerRegistryReadOnly"),
            ]
        )

    def _create_task_role(self, database: rds.DatabaseCluster) -> iam.Role:
        # Shared by all three services, they need the same capabilities
        task_role = iam.Role(
            self, "TaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonEC2ContainerRegistryReadOnly"),
                iam.ManagedPolicy.from_aws_managed_policy_name("AmazonElasticFileSystemClientReadWriteAccess"),
            ]
        )
        task_role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "elasticfilesystem:ClientRootAccess",
                    "elasticfilesystem:ClientWrite",
                    "elasticfilesystem:ClientMount"
                ],
                resources=[
                    self.sites_access_point.file_system.file_system_arn,
                    self.logs_access_point.file_system.file_system_arn,
                ]
            )
        )
        task_role.add_to_policy(
            iam.PolicyStatement(
                actions=["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"],
                resources=[database.secret.secret_arn]
            )
        )
        task_role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "ecr:GetAuthorizationToken",
                    "ecr:BatchCheckLayerAvailability",
                    "ecr:GetDownloadUrlForLayer",
                    "ecr:BatchGetImage"
                ],
                resources=["*"]
            )
        )
        return task_role

    def _common_environment(self, database: rds.DatabaseCluster, redis: ec2.Instance) -> ContainerEnvironment:
        # TODO: inject the secret through ecs.Secret instead of resolving it into plain environment values
        secret = database.secret
        redis_address = f"{redis.instance_private_ip}:{REDIS_PORT}"
        return ContainerEnvironment(
            db_host=database.cluster_endpoint.hostname,
            db_port=Token.as_string(database.cluster_endpoint.port),
            redis_cache=redis_address,
            redis_queue=redis_address,
            socketio_port=str(REALTIME.port),
            mysql_root_password=secret.secret_value_from_json("password").unsafe_unwrap(),
            mysql_root_username=secret.secret_value_from_json("username").unsafe_unwrap(),
            maria_db_root_password=secret.secret_value_from_json("password").unsafe_unwrap()
        )

    def _create_task_definition(self, construct_id: str) -> ecs.FargateTaskDefinition:
        task_def = ecs.FargateTaskDefinition(
            self, construct_id,
            memory_limit_mib=TASK_MEMORY_MIB,
            cpu=TASK_CPU,
            execution_role=self.execution_role,
            task_role=self.task_role,
            runtime_platform=ecs.RuntimePlatform(
                cpu_architecture=ecs.CpuArchitecture.X86_64,
                operating_system_family=ecs.OperatingSystemFamily.LINUX
            )
        )
        for volume_name, access_point in ((SITES_VOLUME, self.sites_access_point),
                                          (LOGS_VOLUME, self.logs_access_point)):
            task_def.add_volume(
                name=volume_name,
                efs_volume_configuration=ecs.EfsVolumeConfiguration(
                    file_system_id=access_point.file_system.file_system_id,
                    authorization_config=ecs.AuthorizationConfig(
                        access_point_id=access_point.access_point_id,
                        iam="ENABLED"
                    ),
                    transit_encryption="ENABLED"
                )
            )
        return task_def

    def _create_service(self, definition: ServiceDefinition, environment: ContainerEnvironment,
                        target_group: elbv2.ApplicationTargetGroup,
                        security_groups) -> ecs.FargateService:
        task_def = self._create_task_definition(f"{definition.container_name}TaskDef")

        container = task_def.add_container(
            definition.container_name,
            image=self.image,
            entry_point=list(definition.entry_point) if definition.entry_point else None,
            command=list(definition.command) if definition.command else None,
            environment=environment.as_dict(),
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=definition.log_prefix,
                log_group=logs.LogGroup(
                    self, f"{definition.container_name}LogGroup",
                    log_group_name=f"/aws/ecs/frappe-{definition.name}",
                    retention=logs.RetentionDays.ONE_WEEK,
                    removal_policy=RemovalPolicy.DESTROY
                )
            ),
            health_check=ecs.HealthCheck(
                command=list(definition.health_check_command()),
                interval=HEALTH_CHECK_INTERVAL,
                timeout=HEALTH_CHECK_TIMEOUT,
                retries=HEALTH_CHECK_RETRIES,
                start_period=HEALTH_CHECK_START_PERIOD
            ),
            port_mappings=[
                ecs.PortMapping(
                    container_port=definition.port,
                    host_port=definition.port,
                    protocol=ecs.Protocol.TCP
                )
            ]
        )
        container.add_mount_points(*[
            ecs.MountPoint(source_volume=volume, container_path=path, read_only=False)
            for volume, path in MOUNT_PATHS.items()
        ])

        service = ecs.FargateService(
            self, f"{definition.container_name}Service",
            cluster=self.cluster,
            task_definition=task_def,
            desired_count=DESIRED_COUNT,
            security_groups=security_groups,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            cloud_map_options=ecs.CloudMapOptions(name=definition.discovery_name)
            if definition.discovery_name else None
        )

        target_group.add_target(
            service.load_balancer_target(
                container_name=definition.container_name,
                container_port=definition.port,
                protocol=ecs.Protocol.TCP
            )
        )
        self._set_service_scaling(service)
        return service

    def _set_service_scaling(self, service: ecs.FargateService) -> ecs.ScalableTaskCount:
        # Scale out faster than in to absorb bursts without flapping
        scaling = service.auto_scale_task_count(
            min_capacity=MIN_CAPACITY,
            max_capacity=MAX_CAPACITY
        )
        scaling.scale_on_cpu_utilization(
            "CpuScaling",
            target_utilization_percent=CPU_TARGET_PERCENT,
            scale_in_cooldown=SCALE_IN_COOLDOWN,
            scale_out_cooldown=SCALE_OUT_COOLDOWN
        )
        scaling.scale_on_memory_utilization(
            "MemoryScaling",
            target_utilization_percent=MEMORY_TARGET_PERCENT,
            scale_in_cooldown=SCALE_IN_COOLDOWN,
            scale_out_cooldown=SCALE_OUT_COOLDOWN
        )
        return scaling
