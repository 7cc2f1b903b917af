from typing import Optional

from aws_cdk import (
    Stack, CfnOutput, Duration,
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2
)
from constructs import Construct

from service_config import BACKEND, FRONTEND, REALTIME, ServiceDefinition

REALTIME_PATH_PATTERN = "/socket.io/*"
FRONTEND_PATH_PATTERN = "/*"
REALTIME_RULE_PRIORITY = 10
FRONTEND_RULE_PRIORITY = 20


class LoadBalancerStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, vpc: ec2.Vpc,
                 public_load_balancer_security_group: ec2.SecurityGroup,
                 backend_load_balancer_security_group: ec2.SecurityGroup,
                 certificate_arn: Optional[str] = None, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Public Application Load Balancer
        self.public_alb = elbv2.ApplicationLoadBalancer(
            self, "PublicALB",
            vpc=vpc,
            internet_facing=True,
            http2_enabled=True,
            security_group=public_load_balancer_security_group
        )
        self.public_alb.add_redirect(source_port=80, target_port=443, open=True)

        # HTTPS listener; without a certificate it must get one via add_certificates before synth
        self.public_alb_listener = self.public_alb.add_listener(
            "HttpsListener",
            port=443,
            certificates=[elbv2.ListenerCertificate.from_arn(certificate_arn)] if certificate_arn else None,
            ssl_policy=elbv2.SslPolicy.RECOMMENDED_TLS
        )
        # Answers when no path rule matches, so a reachable ALB is distinguishable from a dead backend
        self.public_alb_listener.add_action(
            "DefaultAction",
            action=elbv2.ListenerAction.fixed_response(
                200,
                content_type="text/plain",
                message_body="ALB is ready"
            )
        )

        # Internal ALB, reached only from the frontend service
        self.backend_alb = elbv2.ApplicationLoadBalancer(
            self, "BackendALB",
            vpc=vpc,
            internet_facing=False,
            security_group=backend_load_balancer_security_group
        )

        self.frontend_target_group = self._create_target_group("FrontendTG", vpc, FRONTEND)
        self.socketio_target_group = self._create_target_group("SocketIoTG", vpc, REALTIME)
        self.backend_target_group = self._create_target_group("BackendTG", vpc, BACKEND)

        self.backend_alb_listener = self.backend_alb.add_listener(
            "BackendListener",
            port=BACKEND.port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            open=False,
            default_action=elbv2.ListenerAction.forward([self.backend_target_group])
        )

        # Lower priority is evaluated first; the catch-all must not shadow socket.io
        self.public_alb_listener.add_action(
            "SocketIoAction",
            priority=REALTIME_RULE_PRIORITY,
            conditions=[elbv2.ListenerCondition.path_patterns([REALTIME_PATH_PATTERN])],
            action=elbv2.ListenerAction.forward([self.socketio_target_group])
        )
        self.public_alb_listener.add_action(
            "FrontendAction",
            priority=FRONTEND_RULE_PRIORITY,
            conditions=[elbv2.ListenerCondition.path_patterns([FRONTEND_PATH_PATTERN])],
            action=elbv2.ListenerAction.forward([self.frontend_target_group])
        )

        CfnOutput(self, "PublicAlbDnsName", value=self.public_alb.load_balancer_dns_name)
        CfnOutput(self, "BackendAlbDnsName", value=self.backend_alb.load_balancer_dns_name)

    def _create_target_group(self, construct_id: str, vpc: ec2.Vpc,
                             service: ServiceDefinition) -> elbv2.ApplicationTargetGroup:
        return elbv2.ApplicationTargetGroup(
            self, construct_id,
            vpc=vpc,
            port=service.port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(
                path=service.health_check_path,
                interval=Duration.seconds(30)
            )
        )
