"""
Compose topology for the MS Games deployment.

Loads a docker-compose file into a typed topology, checks it against the
expected service layout (Caddy in front of the beergame and survey
backend/frontend pairs, the docs site, MongoDB with mongo-express, all on the
`web` bridge network) and derives the order services start in.
"""
import heapq
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel

logger = logging.getLogger(__name__)

NETWORK_NAME = "web"
NETWORK_DRIVER = "bridge"


class ComposeError(ValueError):
    pass


class ServiceSpec(BaseModel):
    name: str
    image: Optional[str] = None
    build_context: Optional[str] = None
    ports: List[str] = []
    expose: List[str] = []
    environment: Dict[str, str] = {}
    depends_on: List[str] = []
    networks: List[str] = []
    volumes: List[str] = []
    command: Optional[str] = None

    @property
    def named_volumes(self) -> Set[str]:
        names = set()
        for volume in self.volumes:
            source, sep, _ = volume.partition(":")
            if sep and source and source[0] not in "./~$":
                names.add(source)
        return names


class NetworkSpec(BaseModel):
    name: str
    driver: Optional[str] = None
    external: bool = False


class VolumeSpec(BaseModel):
    key: str
    name: Optional[str] = None
    external: bool = False


class ComposeTopology(BaseModel):
    services: Dict[str, ServiceSpec]
    networks: Dict[str, NetworkSpec] = {}
    volumes: Dict[str, VolumeSpec] = {}


class Violation(BaseModel):
    service: Optional[str] = None
    message: str

    def __str__(self):
        if self.service:
            return f"{self.service}: {self.message}"
        return self.message


class ExpectedService(BaseModel):
    image: Optional[str] = None
    # True when the service is built from a local context instead of pulled
    build: bool = False
    published: List[str] = []
    exposed: List[str] = []
    env_keys: List[str] = []
    env_values: Dict[str, str] = {}
    depends_on: List[str] = []
    named_volumes: List[str] = []


BACKEND_ENV = ["PORT", "MONGODB_URL", "MONGODB_DB"]

EXPECTED_SERVICES: Dict[str, ExpectedService] = {
    "mongodb": ExpectedService(
        image="mongo:latest",
        exposed=["27017"],
        env_keys=["MONGO_INITDB_ROOT_USERNAME", "MONGO_INITDB_ROOT_PASSWORD"],
        named_volumes=["mongodb_data", "mongodb_config"],
    ),
    "mongo_express": ExpectedService(
        image="mongo-express:latest",
        exposed=["8081"],
        env_keys=[
            "ME_CONFIG_MONGODB_ADMINUSERNAME",
            "ME_CONFIG_MONGODB_ADMINPASSWORD",
            "ME_CONFIG_MONGODB_SERVER",
        ],
        depends_on=["mongodb"],
    ),
    "caddy": ExpectedService(
        image="caddy:2-alpine",
        published=["80:80", "443:443"],
        named_volumes=["caddy_data", "caddy_config"],
    ),
    "beergame_backend": ExpectedService(
        build=True,
        exposed=["8000"],
        env_keys=BACKEND_ENV,
        env_values={"PORT": "8000"},
        depends_on=["mongodb"],
    ),
    "beergame_frontend": ExpectedService(
        build=True,
        published=["3000:3000"],
        env_keys=["VITE_API_URL"],
        env_values={"VITE_API_URL": "/api"},
        depends_on=["beergame_backend"],
    ),
    "msgames_docs": ExpectedService(
        build=True,
        published=["3002:80"],
    ),
    "survey_backend": ExpectedService(
        build=True,
        exposed=["8001"],
        env_keys=BACKEND_ENV,
        env_values={"PORT": "8001"},
        depends_on=["mongodb"],
    ),
    "survey_frontend": ExpectedService(
        build=True,
        exposed=["80"],
        depends_on=["survey_backend"],
    ),
}

EXTERNAL_VOLUMES = {
    "mongodb_data": "msgames_mongodb_data",
    "mongodb_config": "msgames_mongodb_config",
}
LOCAL_VOLUMES = ["caddy_data", "caddy_config"]


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, dict):
        return [str(key) for key in value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def _normalise_port(port: Any) -> str:
    port = str(port).split("/")[0]
    parts = port.split(":")
    return ":".join(parts[-2:])


def _parse_environment(value: Union[None, list, dict]) -> Dict[str, str]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(key): "" if val is None else str(val) for key, val in value.items()}
    environment = {}
    for item in value:
        key, _, val = str(item).partition("=")
        environment[key] = val
    return environment


def _parse_service(name: str, raw: Optional[Dict[str, Any]]) -> ServiceSpec:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ComposeError(f"Service '{name}' must be a mapping")
    build = raw.get("build")
    if isinstance(build, dict):
        build_context = build.get("context", ".")
    else:
        build_context = build
    volumes = []
    for volume in raw.get("volumes") or []:
        if isinstance(volume, dict):
            source = volume.get("source")
            target = volume.get("target", "")
            volumes.append(f"{source}:{target}" if source else str(target))
        else:
            volumes.append(str(volume))
    command = raw.get("command")
    if isinstance(command, list):
        command = " ".join(str(part) for part in command)
    return ServiceSpec(
        name=name,
        image=raw.get("image"),
        build_context=build_context,
        ports=[_normalise_port(port) for port in raw.get("ports") or []],
        expose=[str(port) for port in raw.get("expose") or []],
        environment=_parse_environment(raw.get("environment")),
        depends_on=_as_list(raw.get("depends_on")),
        networks=_as_list(raw.get("networks")),
        volumes=volumes,
        command=command,
    )


def parse_compose(document: Any) -> ComposeTopology:
    if not isinstance(document, dict):
        raise ComposeError("Compose document must be a mapping")
    services = document.get("services")
    if not isinstance(services, dict) or not services:
        raise ComposeError("Compose document defines no services")

    networks = {}
    for name, raw in (document.get("networks") or {}).items():
        raw = raw or {}
        networks[name] = NetworkSpec(name=name, driver=raw.get("driver"), external=bool(raw.get("external", False)))

    volumes = {}
    for key, raw in (document.get("volumes") or {}).items():
        raw = raw or {}
        volumes[key] = VolumeSpec(key=key, name=raw.get("name"), external=bool(raw.get("external", False)))

    return ComposeTopology(
        services={name: _parse_service(name, raw) for name, raw in services.items()},
        networks=networks,
        volumes=volumes,
    )


def load_compose(path: Union[str, Path]) -> ComposeTopology:
    """
    Load a compose file into a topology.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ComposeError: If the file is not valid YAML or has no services
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Compose file not found: {path}")
    with open(path, "r") as f:
        try:
            document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ComposeError(f"Invalid YAML in {path}: {e}")
    topology = parse_compose(document)
    logger.debug(f"Loaded {len(topology.services)} services from {path}")
    return topology


def _check_service(service: ServiceSpec, expected: ExpectedService) -> List[Violation]:
    violations = []

    def fail(message):
        violations.append(Violation(service=service.name, message=message))

    if expected.build:
        if not service.build_context:
            fail("must be built from a local context")
    elif service.image != expected.image:
        fail(f"image is {service.image!r}, expected {expected.image!r}")

    if sorted(service.ports) != sorted(expected.published):
        fail(f"published ports are {service.ports}, expected {expected.published}")
    if sorted(service.expose) != sorted(expected.exposed):
        fail(f"exposed ports are {service.expose}, expected {expected.exposed}")

    for key in expected.env_keys:
        if key not in service.environment:
            fail(f"missing environment variable {key}")
    for key, value in expected.env_values.items():
        if key in service.environment and service.environment[key] != value:
            fail(f"{key} is {service.environment[key]!r}, expected {value!r}")

    if sorted(service.depends_on) != sorted(expected.depends_on):
        fail(f"depends on {service.depends_on}, expected {expected.depends_on}")

    for volume in expected.named_volumes:
        if volume not in service.named_volumes:
            fail(f"does not mount volume {volume}")
    return violations


def check_topology(topology: ComposeTopology) -> List[Violation]:
    """Check a topology against the expected MS Games deployment layout."""
    violations = []
    declared = set(topology.services)

    for name in sorted(set(EXPECTED_SERVICES) - declared):
        violations.append(Violation(service=name, message="service is missing"))
    for name in sorted(declared - set(EXPECTED_SERVICES)):
        violations.append(Violation(service=name, message="unexpected service"))

    network = topology.networks.get(NETWORK_NAME)
    if network is None:
        violations.append(Violation(message=f"network '{NETWORK_NAME}' is not declared"))
    elif network.driver != NETWORK_DRIVER:
        violations.append(Violation(message=f"network '{NETWORK_NAME}' must use the {NETWORK_DRIVER} driver"))

    for key, name in EXTERNAL_VOLUMES.items():
        volume = topology.volumes.get(key)
        if volume is None:
            violations.append(Violation(message=f"volume '{key}' is not declared"))
        elif not volume.external or volume.name != name:
            violations.append(Violation(message=f"volume '{key}' must be the external volume '{name}'"))
    for key in LOCAL_VOLUMES:
        volume = topology.volumes.get(key)
        if volume is None:
            violations.append(Violation(message=f"volume '{key}' is not declared"))
        elif volume.external:
            violations.append(Violation(message=f"volume '{key}' must be managed by compose"))

    for name in sorted(declared):
        service = topology.services[name]
        if NETWORK_NAME not in service.networks:
            violations.append(Violation(service=name, message=f"not attached to network '{NETWORK_NAME}'"))
        for dependency in service.depends_on:
            if dependency not in declared:
                violations.append(Violation(service=name, message=f"depends on undeclared service '{dependency}'"))
        for volume in sorted(service.named_volumes):
            if volume not in topology.volumes:
                violations.append(Violation(service=name, message=f"mounts undeclared volume '{volume}'"))
        mongodb_url = service.environment.get("MONGODB_URL")
        if mongodb_url:
            host = urlparse(mongodb_url).hostname
            if host not in declared:
                violations.append(Violation(service=name, message=f"MONGODB_URL host '{host}' is not a service"))
        if name in EXPECTED_SERVICES:
            violations.extend(_check_service(service, EXPECTED_SERVICES[name]))

    return violations


def start_order(topology: ComposeTopology) -> List[str]:
    """
    Order services so every service starts after the services it depends on.

    Services that are ready at the same time come out alphabetically.

    Raises:
        ComposeError: On an unknown dependency or a dependency cycle
    """
    pending = {}
    dependents: Dict[str, List[str]] = {name: [] for name in topology.services}
    for name, service in topology.services.items():
        for dependency in service.depends_on:
            if dependency not in topology.services:
                raise ComposeError(f"Service '{name}' depends on undeclared service '{dependency}'")
            dependents[dependency].append(name)
        pending[name] = len(set(service.depends_on))

    ready = [name for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    order = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for dependent in set(dependents[name]):
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(order) != len(topology.services):
        stuck = sorted(name for name in topology.services if name not in order)
        raise ComposeError(f"Dependency cycle between services: {', '.join(stuck)}")
    return order
