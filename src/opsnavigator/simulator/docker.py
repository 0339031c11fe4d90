"""Docker engine and docker-compose terminal."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Any

from loguru import logger

from ..models import ServiceStatus, SimulatedService, TerminalLine
from ..scheduler import TimerHandle
from .base import Rule, TerminalSimulator, err, ok, out

COMPOSE_STARTING_MS = 200
COMPOSE_RUNNING_MS = 1500
COMPOSE_STOPPED_MS = 300

_COMPOSE_FILE = [
    "services:",
    "  web:",
    "    image: nginx:alpine",
    "    ports:",
    '      - "8080:80"',
    "    depends_on:",
    "      - db",
    "  db:",
    "    image: postgres:15",
    "    environment:",
    "      POSTGRES_PASSWORD: example",
    "    volumes:",
    "      - db-data:/var/lib/postgresql/data",
    "volumes:",
    "  db-data:",
]

_IMAGE_IDS = {
    "nginx": "a2abf6c4d29d",
    "hello-world": "9c7a54a9a43c",
    "myapp": "5d7e6f4a3b2c",
}


def default_services() -> list[SimulatedService]:
    return [
        SimulatedService(name="web", image="nginx:alpine", ports=["8080:80"], depends_on=["db"]),
        SimulatedService(name="db", image="postgres:15", volumes=["db-data:/var/lib/postgresql/data"]),
    ]


@dataclass
class Container:
    name: str
    image: str
    running: bool = True
    ports: str = ""


class DockerSimulator(TerminalSimulator):
    """Terminal with docker engine commands and compose-managed services."""

    platform = "docker"
    banner = ("Docker Desktop 4.25.0 (126437)", "Docker Engine v24.0.6", "")
    expected_commands = {
        "install-docker": "docker info",
        "verify-install": "docker --version",
        "run-hello": "docker run hello-world",
        "pull-image": "docker pull nginx:latest",
        "list-images": "docker images",
        "run-container": "docker run -d --name web -p 80:80 nginx",
        "list-containers": "docker ps -a",
        "stop-container": "docker stop web",
        "remove-container": "docker rm web",
        "create-compose": "cat docker-compose.yml",
        "define-services": "docker-compose config --services",
        "configure-networks": "docker network ls",
        "define-volumes": "docker volume ls",
        "set-env": "docker-compose config",
        "build-images": "docker-compose build",
        "start-services": "docker-compose up -d",
        "view-logs": "docker-compose logs",
        "stop-services": "docker-compose down",
    }
    default_command = "docker --help"

    def __init__(self, *args: Any, services: list[SimulatedService] | None = None, **kwargs: Any) -> None:
        self.services: dict[str, SimulatedService] = {
            service.name: service for service in (services if services is not None else default_services())
        }
        self.images: dict[str, str] = {}
        self.containers: dict[str, Container] = {}
        self._compose_timers: list[TimerHandle] = []
        super().__init__(*args, **kwargs)

    def build_rules(self) -> list[Rule]:
        return [
            Rule(("compose", "config", "--services"), self._compose_services),
            Rule(("compose", "config"), self._compose_config),
            Rule(("compose", "build"), self._compose_build),
            Rule(("compose", "up"), self._compose_up, self._start_services),
            Rule(("compose", "down"), self._compose_down, self._stop_services),
            Rule(("compose", "ps"), self._compose_ps),
            Rule(("compose", "logs"), self._compose_logs),
            Rule(("cat docker-compose.yml",), lambda _: [out(line, 20) for line in _COMPOSE_FILE]),
            Rule(("docker network ls",), self._networks),
            Rule(("docker volume ls",), self._volumes),
            Rule(("docker pull",), self._pull, self._add_pulled_image),
            Rule(("docker run", "hello-world"), self._hello_world, self._add_hello_world),
            Rule(("docker run",), self._run, self._add_container),
            Rule(("docker build",), self._build, lambda _: self.images.setdefault("myapp", _IMAGE_IDS["myapp"])),
            Rule(("docker ps",), self._ps),
            Rule(("docker images",), self._images),
            Rule(("docker stop",), self._stop, self._stop_container),
            Rule(("docker rm",), self._rm, self._remove_container),
            Rule(("docker --version",), lambda _: [out("Docker version 24.0.6, build ed223bc")]),
            Rule(("docker info",), self._info),
            Rule(("docker --help",), self._help),
        ]

    def status_of(self, name: str) -> ServiceStatus:
        return self.services[name].status

    # compose

    def _compose_services(self, _: str) -> list[TerminalLine]:
        return [out(name) for name in self.services]

    def _compose_config(self, _: str) -> list[TerminalLine]:
        return [out("name: app", 50)] + [out(line, 20) for line in _COMPOSE_FILE]

    def _compose_build(self, _: str) -> list[TerminalLine]:
        return [
            out("[+] Building 2.3s (8/8) FINISHED", 200),
            out(" => [web internal] load build definition from Dockerfile", 300),
            out(" => [web 1/2] FROM docker.io/library/nginx:alpine", 400),
            out(" => [web 2/2] COPY ./site /usr/share/nginx/html", 500),
            ok(" => exporting to image app-web:latest", 800),
        ]

    def _compose_up(self, _: str) -> list[TerminalLine]:
        total = len(self.services)
        lines = [out(f"[+] Running {total}/{total}", 200), out(" ✔ Network app_default Created", 400)]
        for service in sorted(self.services.values(), key=lambda item: len(item.depends_on)):
            lines.append(out(f" ✔ Container app-{service.name}-1 Started", 200))
        return lines[:-1] + [ok(lines[-1].text, lines[-1].delay_ms)]

    def _start_services(self, _: str) -> None:
        self._compose_timers = [
            self.schedule(COMPOSE_STARTING_MS, self._mark_starting),
            self.schedule(COMPOSE_RUNNING_MS, self._mark_running),
        ]

    def _mark_starting(self) -> None:
        for service in self.services.values():
            if service.status is ServiceStatus.STOPPED:
                service.transition(ServiceStatus.STARTING)

    def _mark_running(self) -> None:
        for service in self.services.values():
            if service.status is not ServiceStatus.STARTING:
                continue
            missing = [name for name in service.depends_on if name not in self.services]
            if missing:
                logger.debug("Service {} depends on undeclared {}", service.name, missing)
                service.transition(ServiceStatus.ERROR)
            else:
                service.transition(ServiceStatus.RUNNING)

    def _compose_down(self, _: str) -> list[TerminalLine]:
        lines = [out(f"[+] Running {len(self.services) + 1}/{len(self.services) + 1}", 200)]
        for name in reversed(list(self.services)):
            lines.append(out(f" ✔ Container app-{name}-1 Removed", 300))
        lines.append(ok(" ✔ Network app_default Removed", 200))
        return lines

    def _stop_services(self, _: str) -> None:
        for handle in self._compose_timers:
            handle.cancel()
        self._compose_timers = []
        self.schedule(COMPOSE_STOPPED_MS, self._mark_stopped)

    def _mark_stopped(self) -> None:
        for service in self.services.values():
            service.transition(ServiceStatus.STOPPED)

    def _compose_ps(self, _: str) -> list[TerminalLine]:
        lines = [out("NAME        IMAGE           SERVICE   STATUS      PORTS")]
        for service in self.services.values():
            ports = ", ".join(f"0.0.0.0:{mapping.replace(':', '->')}/tcp" for mapping in service.ports)
            lines.append(
                out(f"app-{service.name}-1".ljust(12) + service.image.ljust(16) + service.name.ljust(10)
                    + service.status.value.ljust(12) + ports)
            )
        return lines

    def _compose_logs(self, _: str) -> list[TerminalLine]:
        running = [service for service in self.services.values() if service.status is ServiceStatus.RUNNING]
        if not running:
            return [out("No running services. Start them with docker-compose up -d")]
        lines: list[TerminalLine] = []
        for service in running:
            if service.name == "db":
                lines.append(out("db-1   | LOG:  database system is ready to accept connections"))
            else:
                lines.append(out(f"{service.name}-1  | /docker-entrypoint.sh: Configuration complete; ready for start up"))
        return lines

    def _networks(self, _: str) -> list[TerminalLine]:
        return [
            out("NETWORK ID     NAME          DRIVER    SCOPE"),
            out("3f1e0c9a7b21   bridge        bridge    local"),
            out("9d4a2b7c8e10   app_default   bridge    local"),
            out("c0b7e5d3a981   host          host      local"),
        ]

    def _volumes(self, _: str) -> list[TerminalLine]:
        names = [volume.split(":", 1)[0] for service in self.services.values() for volume in service.volumes]
        return [out("DRIVER    VOLUME NAME")] + [out(f"local     app_{name}") for name in names]

    # engine

    def _pull(self, command: str) -> list[TerminalLine]:
        name, tag = _image_ref(command, "pull")
        return [
            out(f"{tag}: Pulling from library/{name}", 200),
            out("a2abf6c4d29d: Pull complete", 400),
            out("7f87dd8a1b2c: Pull complete", 600),
            out("Digest: sha256:0d17b565c37bc...", 800),
            ok(f"Status: Downloaded newer image for {name}:{tag}", 1000),
        ]

    def _add_pulled_image(self, command: str) -> None:
        name, _ = _image_ref(command, "pull")
        self.images[name] = _IMAGE_IDS.get(name, "4e1b2c3d4f5a")

    def _hello_world(self, _: str) -> list[TerminalLine]:
        lines = []
        if "hello-world" not in self.images:
            lines += [
                out("Unable to find image 'hello-world:latest' locally", 200),
                out("latest: Pulling from library/hello-world", 300),
            ]
        return lines + [
            ok("Hello from Docker!", 300),
            out("This message shows that your installation appears to be working correctly."),
        ]

    def _add_hello_world(self, _: str) -> None:
        self.images["hello-world"] = _IMAGE_IDS["hello-world"]

    def _run(self, command: str) -> list[TerminalLine]:
        name = _option_value(command, "--name") or "nginx-1"
        if name in self.containers:
            return [err(f'docker: Error response from daemon: Conflict. The container name "/{name}" is already in use.')]
        return [
            ok("8f3c4e2a1b9d7e6f5a4b3c2d1e0f9a8b7c6d5e4f", 300),
            out("✓ Container started successfully", 500),
        ]

    def _add_container(self, command: str) -> None:
        name = _option_value(command, "--name") or "nginx-1"
        if name in self.containers:
            return
        image = _last_positional(command) or "nginx"
        self.images.setdefault(image, _IMAGE_IDS.get(image, "4e1b2c3d4f5a"))
        ports = _option_value(command, "-p") or ""
        self.containers[name] = Container(name=name, image=image, ports=ports)

    def _build(self, command: str) -> list[TerminalLine]:
        tag = _option_value(command, "-t") or "myapp"
        return [
            out("[+] Building 2.3s (8/8) FINISHED", 200),
            out(" => [internal] load build definition from Dockerfile", 300),
            out(" => [1/3] FROM node:18-alpine", 400),
            out(" => [2/3] COPY package*.json ./", 500),
            out(" => [3/3] RUN npm install", 600),
            ok(f" => exporting to image {tag}:latest", 800),
        ]

    def _ps(self, command: str) -> list[TerminalLine]:
        show_all = "-a" in command.split() or "--all" in command
        lines = [out("CONTAINER ID   IMAGE   STATUS          PORTS                NAMES")]
        for container in self.containers.values():
            if not container.running and not show_all:
                continue
            status = "Up 2 minutes" if container.running else "Exited (0) 5 seconds ago"
            ports = f"0.0.0.0:{container.ports.replace(':', '->')}/tcp" if container.ports and container.running else ""
            lines.append(out(f"8f3c4e2a1b9d   {container.image.ljust(8)}{status.ljust(16)}{ports.ljust(21)}{container.name}"))
        return lines

    def _images(self, _: str) -> list[TerminalLine]:
        lines = [out("REPOSITORY    TAG       IMAGE ID       SIZE")]
        for name, image_id in self.images.items():
            lines.append(out(f"{name.ljust(14)}latest    {image_id}   142MB"))
        return lines

    def _stop(self, command: str) -> list[TerminalLine]:
        name = _last_positional(command)
        if name not in self.containers:
            return [err(f"Error response from daemon: No such container: {name}")]
        return [out(name, 400)]

    def _stop_container(self, command: str) -> None:
        container = self.containers.get(_last_positional(command))
        if container is not None:
            container.running = False

    def _rm(self, command: str) -> list[TerminalLine]:
        name = _last_positional(command)
        container = self.containers.get(name)
        if container is None:
            return [err(f"Error response from daemon: No such container: {name}")]
        if container.running:
            return [err(f"Error response from daemon: cannot remove container \"/{name}\": container is running")]
        return [out(name, 200)]

    def _remove_container(self, command: str) -> None:
        container = self.containers.get(_last_positional(command))
        if container is not None and not container.running:
            del self.containers[container.name]

    def _info(self, _: str) -> list[TerminalLine]:
        running = sum(1 for container in self.containers.values() if container.running)
        return [
            out("Client: Docker Engine - Community"),
            out(" Version:    24.0.6"),
            out("Server:"),
            out(f" Containers: {len(self.containers)}"),
            out(f"  Running: {running}"),
            out(f" Images: {len(self.images)}"),
            ok(" Server Version: 24.0.6"),
        ]

    def _help(self, _: str) -> list[TerminalLine]:
        return [
            out("Usage:  docker [OPTIONS] COMMAND"),
            out("Common Commands:"),
            out("  run         Create and run a new container from an image"),
            out("  ps          List containers"),
            out("  build       Build an image from a Dockerfile"),
            out("  pull        Download an image from a registry"),
            out("  images      List images"),
        ]


def _tokens(command: str) -> list[str]:
    try:
        return shlex.split(command)
    except ValueError:
        return command.split()


def _option_value(command: str, option: str) -> str | None:
    tokens = _tokens(command)
    for index, token in enumerate(tokens):
        if token == option and index + 1 < len(tokens):
            return tokens[index + 1]
        if token.startswith(f"{option}="):
            return token.split("=", 1)[1]
    return None


def _last_positional(command: str) -> str:
    tokens = _tokens(command)
    return tokens[-1] if len(tokens) > 2 else ""


def _image_ref(command: str, verb: str) -> tuple[str, str]:
    tokens = _tokens(command)
    ref = tokens[tokens.index(verb) + 1] if verb in tokens and tokens.index(verb) + 1 < len(tokens) else "nginx"
    name, _, tag = ref.partition(":")
    return name, tag or "latest"
