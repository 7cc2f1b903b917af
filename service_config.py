from dataclasses import asdict, dataclass
from typing import Dict, Optional, Tuple

from aws_cdk import Duration

BENCH_PATH = "/home/frappe/frappe-bench"

# Shared volumes, mounted read-write in every container
SITES_VOLUME = "sites"
LOGS_VOLUME = "logs"
MOUNT_PATHS = {
    SITES_VOLUME: f"{BENCH_PATH}/sites",
    LOGS_VOLUME: f"{BENCH_PATH}/logs",
}

POSIX_UID = "1000"
POSIX_GID = "1000"

REDIS_PORT = 6379
MYSQL_PORT = 3306
NFS_PORT = 2049

TASK_CPU = 1024
TASK_MEMORY_MIB = 2048
DESIRED_COUNT = 1

HEALTH_CHECK_INTERVAL = Duration.seconds(30)
HEALTH_CHECK_TIMEOUT = Duration.seconds(5)
HEALTH_CHECK_RETRIES = 3
HEALTH_CHECK_START_PERIOD = Duration.seconds(60)

MIN_CAPACITY = 1
MAX_CAPACITY = 2
CPU_TARGET_PERCENT = 60
MEMORY_TARGET_PERCENT = 80
SCALE_IN_COOLDOWN = Duration.minutes(5)
SCALE_OUT_COOLDOWN = Duration.minutes(2)


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    container_name: str
    port: int
    health_check_path: str
    log_prefix: str
    entry_point: Optional[Tuple[str, ...]] = None
    command: Optional[Tuple[str, ...]] = None
    discovery_name: Optional[str] = None

    def health_check_command(self) -> Tuple[str, str]:
        return (
            "CMD-SHELL",
            f"curl -f http://localhost:{self.port}{self.health_check_path} || exit 1",
        )


BACKEND = ServiceDefinition(
    name="backend",
    container_name="Backend",
    port=8000,
    health_check_path="/api/method/ping",
    log_prefix="backend",
)

FRONTEND = ServiceDefinition(
    name="frontend",
    container_name="Frontend",
    port=8080,
    health_check_path="/",
    log_prefix="frontend",
    entry_point=("bash", "-c", "nginx-entrypoint.sh"),
)

REALTIME = ServiceDefinition(
    name="realtime",
    container_name="SocketIo",
    port=9000,
    health_check_path="/socket.io/health",
    log_prefix="socketio",
    command=("node", f"{BENCH_PATH}/apps/frappe/socketio.js"),
    discovery_name="websocket",
)

SERVICES = (BACKEND, FRONTEND, REALTIME)


@dataclass(frozen=True)
class ContainerEnvironment:
    """Environment every bench container starts with."""

    db_host: str
    db_port: str
    redis_cache: str
    redis_queue: str
    socketio_port: str
    mysql_root_password: str
    mysql_root_username: str
    maria_db_root_password: str

    def as_dict(self) -> Dict[str, str]:
        return {key.upper(): value for key, value in asdict(self).items()}


@dataclass(frozen=True)
class FrontendEnvironment(ContainerEnvironment):
    backend: str = ""
    socketio: str = ""

    @classmethod
    def extend(cls, base: ContainerEnvironment, backend: str, socketio: str) -> "FrontendEnvironment":
        return cls(**asdict(base), backend=backend, socketio=socketio)
