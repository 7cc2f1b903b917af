"""Composition of the stacks and the dependency edges between them."""
import logging
from typing import Dict

import aws_cdk as cdk

from compute_stack import ComputeStack
from database_stack import DatabaseStack
from loadbalancer_stack import LoadBalancerStack
from network_stack import NetworkStack
from service_stack import ServiceStack
from settings import DeploymentSettings
from stack_selection import select_stacks, with_upstream
from storage_stack import StorageStack

logger = logging.getLogger(__name__)

NETWORK = "NetworkStack"
DATABASE = "DatabaseStack"
STORAGE = "StorageStack"
LOAD_BALANCER = "LoadBalancerStack"
COMPUTE = "ComputeStack"
SERVICE = "ServiceStack"

# Stack name -> stacks that must exist before it
STACK_DEPENDENCIES = {
    NETWORK: (),
    DATABASE: (NETWORK,),
    STORAGE: (NETWORK,),
    LOAD_BALANCER: (NETWORK,),
    COMPUTE: (NETWORK,),
    SERVICE: (NETWORK, DATABASE, STORAGE, LOAD_BALANCER, COMPUTE),
}

STACK_ORDER = (NETWORK, DATABASE, STORAGE, LOAD_BALANCER, COMPUTE, SERVICE)


def build_stacks(app: cdk.App, settings: DeploymentSettings) -> Dict[str, cdk.Stack]:
    """Build the stacks selected by ``settings.stack_filter`` plus everything they need."""
    selected = select_stacks(STACK_ORDER, settings.stack_filter)
    required = with_upstream(selected, STACK_DEPENDENCIES)
    for name in sorted(required - selected):
        logger.info("Building %s as a dependency of the selected stacks", name)
    for name in STACK_ORDER:
        if name not in required:
            logger.info("Skipping %s (not selected)", name)

    env = settings.environment
    stacks: Dict[str, cdk.Stack] = {}

    network = NetworkStack(
        app, NETWORK,
        key_pair_name=settings.key_pair_name,
        vpc_cidr=settings.vpc_cidr,
        nat_ami_name=settings.nat_ami_name,
        nat_ami_owner=settings.nat_ami_owner,
        nat_ami_id=settings.nat_ami_id,
        admin_cidr=settings.admin_cidr,
        env=env
    )
    stacks[NETWORK] = network

    if DATABASE in required:
        stacks[DATABASE] = DatabaseStack(
            app, DATABASE,
            vpc=network.vpc,
            database_security_group=network.database_security_group,
            redis_security_group=network.redis_security_group,
            key_pair_name=settings.key_pair_name,
            env=env
        )

    if STORAGE in required:
        stacks[STORAGE] = StorageStack(
            app, STORAGE,
            vpc=network.vpc,
            efs_security_group=network.efs_security_group,
            env=env
        )

    if LOAD_BALANCER in required:
        stacks[LOAD_BALANCER] = LoadBalancerStack(
            app, LOAD_BALANCER,
            vpc=network.vpc,
            public_load_balancer_security_group=network.public_load_balancer_security_group,
            backend_load_balancer_security_group=network.backend_load_balancer_security_group,
            certificate_arn=settings.certificate_arn,
            env=env
        )

    if COMPUTE in required:
        stacks[COMPUTE] = ComputeStack(
            app, COMPUTE,
            vpc=network.vpc,
            cluster_name=settings.cluster_name,
            env=env
        )

    if SERVICE in required:
        database = stacks[DATABASE]
        storage = stacks[STORAGE]
        load_balancer = stacks[LOAD_BALANCER]
        stacks[SERVICE] = ServiceStack(
            app, SERVICE,
            cluster=stacks[COMPUTE].cluster,
            database=database.database,
            redis=database.redis,
            sites_access_point=storage.sites_access_point,
            logs_access_point=storage.logs_access_point,
            backend_alb=load_balancer.backend_alb,
            frontend_target_group=load_balancer.frontend_target_group,
            socketio_target_group=load_balancer.socketio_target_group,
            backend_target_group=load_balancer.backend_target_group,
            frontend_service_security_group=network.frontend_service_security_group,
            socketio_service_security_group=network.socketio_service_security_group,
            backend_service_security_group=network.backend_service_security_group,
            common_service_security_group=network.common_service_security_group,
            container_image=settings.container_image,
            image_path=settings.image_path,
            env=env
        )

    # Stack dependencies
    for name, stack in stacks.items():
        for upstream in STACK_DEPENDENCIES[name]:
            stack.add_dependency(stacks[upstream])

    return stacks
