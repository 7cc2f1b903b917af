from aws_cdk import (
    Stack, CfnOutput,
    aws_ec2 as ec2,
    aws_ecs as ecs
)
from constructs import Construct

from settings import DEFAULT_CLUSTER_NAME

SERVICE_DISCOVERY_NAMESPACE = "local"


class ComputeStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, vpc: ec2.Vpc,
                 cluster_name: str = DEFAULT_CLUSTER_NAME, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Fargate only; scaling is configured per service
        self.cluster = ecs.Cluster(
            self, "MainCluster",
            vpc=vpc,
            cluster_name=cluster_name,
            container_insights_v2=ecs.ContainerInsights.ENABLED,
            enable_fargate_capacity_providers=True,
            default_cloud_map_namespace=ecs.CloudMapNamespaceOptions(
                name=SERVICE_DISCOVERY_NAMESPACE
            )
        )

        CfnOutput(self, "ClusterName", value=self.cluster.cluster_name)
