import json

from aws_cdk.assertions import Match

BASE_KEYS = {
    "DB_HOST", "DB_PORT", "REDIS_CACHE", "REDIS_QUEUE", "SOCKETIO_PORT",
    "MYSQL_ROOT_PASSWORD", "MYSQL_ROOT_USERNAME", "MARIA_DB_ROOT_PASSWORD",
}


def _containers(template):
    containers = {}
    for task_def in template.find_resources("AWS::ECS::TaskDefinition").values():
        for container in task_def["Properties"]["ContainerDefinitions"]:
            containers[container["Name"]] = (task_def["Properties"], container)
    return containers


def test_three_services(template):
    services = template("ServiceStack")
    services.resource_count_is("AWS::ECS::Service", 3)
    services.resource_count_is("AWS::ECS::TaskDefinition", 3)
    assert set(_containers(services)) == {"Backend", "Frontend", "SocketIo"}


def test_each_service_owns_a_distinct_port_and_probe(template):
    expected = {
        "Backend": (8000, "curl -f http://localhost:8000/api/method/ping || exit 1"),
        "Frontend": (8080, "curl -f http://localhost:8080/ || exit 1"),
        "SocketIo": (9000, "curl -f http://localhost:9000/socket.io/health || exit 1"),
    }
    for name, (_, container) in _containers(template("ServiceStack")).items():
        port, probe = expected[name]
        assert [mapping["ContainerPort"] for mapping in container["PortMappings"]] == [port]
        assert container["HealthCheck"] == {
            "Command": ["CMD-SHELL", probe],
            "Interval": 30,
            "Timeout": 5,
            "Retries": 3,
            "StartPeriod": 60,
        }


def test_each_service_registers_with_one_target_group(template):
    ports = []
    for service in template("ServiceStack").find_resources("AWS::ECS::Service").values():
        load_balancers = service["Properties"]["LoadBalancers"]
        assert len(load_balancers) == 1
        ports.append(load_balancers[0]["ContainerPort"])
    assert sorted(ports) == [8000, 8080, 9000]


def test_entry_point_overrides(template):
    containers = _containers(template("ServiceStack"))
    assert "EntryPoint" not in containers["Backend"][1]
    assert "Command" not in containers["Backend"][1]
    assert containers["Frontend"][1]["EntryPoint"] == ["bash", "-c", "nginx-entrypoint.sh"]
    assert containers["SocketIo"][1]["Command"] == [
        "node", "/home/frappe/frappe-bench/apps/frappe/socketio.js"
    ]


def test_environment_contract(template):
    containers = _containers(template("ServiceStack"))
    for name, (_, container) in containers.items():
        keys = {variable["Name"] for variable in container["Environment"]}
        if name == "Frontend":
            assert keys == BASE_KEYS | {"BACKEND", "SOCKETIO"}
        else:
            assert keys == BASE_KEYS

    frontend = {v["Name"]: v["Value"] for v in containers["Frontend"][1]["Environment"]}
    assert frontend["SOCKETIO"] == "websocket.local:9000"
    assert frontend["SOCKETIO_PORT"] == "9000"

    # Internal ALB DNS name imported from the load balancer stack, then the backend port
    backend_parts = frontend["BACKEND"]["Fn::Join"][1]
    assert backend_parts[-1] == ":8000"
    backend_host = json.dumps(backend_parts[0])
    assert "Fn::ImportValue" in backend_host
    assert "LoadBalancerStack" in backend_host
    assert "BackendALB" in backend_host
    assert "DNSName" in backend_host


def test_both_file_systems_mounted_read_write(template):
    for task_def, container in _containers(template("ServiceStack")).values():
        assert sorted(container["MountPoints"], key=lambda m: m["SourceVolume"]) == [
            {"ContainerPath": "/home/frappe/frappe-bench/logs", "ReadOnly": False, "SourceVolume": "logs"},
            {"ContainerPath": "/home/frappe/frappe-bench/sites", "ReadOnly": False, "SourceVolume": "sites"},
        ]
        for volume in task_def["Volumes"]:
            config = volume["EFSVolumeConfiguration"]
            assert config["TransitEncryption"] == "ENABLED"
            assert config["AuthorizationConfig"]["IAM"] == "ENABLED"


def test_roles_are_shared_across_services(template):
    task_defs = [task_def for task_def, _ in _containers(template("ServiceStack")).values()]
    assert len({str(task_def["TaskRoleArn"]) for task_def in task_defs}) == 1
    assert len({str(task_def["ExecutionRoleArn"]) for task_def in task_defs}) == 1
    assert {task_def["Cpu"] for task_def in task_defs} == {"1024"}
    assert {task_def["Memory"] for task_def in task_defs} == {"2048"}


def test_task_role_can_read_database_secret(template):
    template("ServiceStack").has_resource_properties("AWS::IAM::Policy", {
        "PolicyDocument": {
            "Statement": Match.array_with([
                Match.object_like({
                    "Action": ["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"],
                    "Effect": "Allow",
                }),
            ]),
        },
    })


def test_autoscaling(template):
    services = template("ServiceStack")
    services.resource_count_is("AWS::ApplicationAutoScaling::ScalableTarget", 3)
    services.all_resources_properties("AWS::ApplicationAutoScaling::ScalableTarget", {
        "MinCapacity": 1,
        "MaxCapacity": 2,
    })
    services.resource_count_is("AWS::ApplicationAutoScaling::ScalingPolicy", 6)
    for metric, target in (("ECSServiceAverageCPUUtilization", 60),
                           ("ECSServiceAverageMemoryUtilization", 80)):
        services.has_resource_properties("AWS::ApplicationAutoScaling::ScalingPolicy", {
            "TargetTrackingScalingPolicyConfiguration": Match.object_like({
                "PredefinedMetricSpecification": {"PredefinedMetricType": metric},
                "TargetValue": target,
                "ScaleInCooldown": 300,
                "ScaleOutCooldown": 120,
            }),
        })


def test_realtime_service_is_discoverable(template):
    template("ServiceStack").has_resource_properties("AWS::ServiceDiscovery::Service", {
        "Name": "websocket",
    })
