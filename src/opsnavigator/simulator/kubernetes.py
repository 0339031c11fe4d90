"""kubectl, minikube and helm terminal over a simulated cluster."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from typing import Any

from ..models import TerminalLine
from .base import LineBuilder, Rule, TerminalSimulator, err, ok, out

ROLLOUT_MS = 1200

_POD_SUFFIXES = ("7d4b9c8f5-abc12", "7d4b9c8f5-def34", "7d4b9c8f5-ghi56", "7d4b9c8f5-jkl78", "7d4b9c8f5-mno90")


@dataclass
class Deployment:
    name: str
    image: str
    replicas: int = 1
    ready: bool = False


@dataclass
class Release:
    name: str
    chart: str
    revision: int = 1
    values: dict[str, str] = field(default_factory=dict)


@dataclass
class Cluster:
    running: bool = True
    context: str = "minikube"
    deployments: dict[str, Deployment] = field(default_factory=dict)
    services: dict[str, int] = field(default_factory=dict)
    addons: set[str] = field(default_factory=lambda: {"default-storageclass", "storage-provisioner"})
    repos: dict[str, str] = field(default_factory=dict)
    releases: dict[str, Release] = field(default_factory=dict)


class KubernetesSimulator(TerminalSimulator):
    """Terminal for kubectl, minikube and helm."""

    platform = "kubernetes"
    banner = ("Kubernetes v1.28.3 | minikube v1.32.0 | helm v3.13.1", "")
    expected_commands = {
        "install-kubectl": "kubectl version --client",
        "connect-cluster": "kubectl config use-context minikube",
        "view-nodes": "kubectl get nodes",
        "create-deployment": "kubectl create deployment nginx --image=nginx",
        "expose-service": "kubectl expose deployment nginx --port=80",
        "scale-deployment": "kubectl scale deployment nginx --replicas=3",
        "view-pods": "kubectl get pods",
        "check-logs": "kubectl logs deployment/nginx",
        "install-minikube": "minikube version",
        "start-cluster": "minikube start",
        "verify-status": "minikube status",
        "enable-addons": "minikube addons enable dashboard",
        "open-dashboard": "minikube dashboard --url",
        "deploy-app": "kubectl apply -f deployment.yaml",
        "access-service": "minikube service nginx --url",
        "install-helm": "helm version",
        "add-repo": "helm repo add bitnami https://charts.bitnami.com/bitnami",
        "search-charts": "helm search repo nginx",
        "install-chart": "helm install my-nginx bitnami/nginx",
        "customize-values": "helm show values bitnami/nginx",
        "list-releases": "helm list",
        "upgrade-release": "helm upgrade my-nginx bitnami/nginx --set replicaCount=2",
        "rollback": "helm rollback my-nginx 1",
    }
    default_command = "kubectl --help"

    def __init__(self, *args: Any, cluster: Cluster | None = None, **kwargs: Any) -> None:
        self.cluster = cluster if cluster is not None else Cluster()
        super().__init__(*args, **kwargs)

    def build_rules(self) -> list[Rule]:
        return [
            Rule(("minikube start",), self._minikube_start, self._do_minikube_start),
            Rule(("minikube stop",), lambda _: [ok("✋  Stopping node \"minikube\"  ...", 400)], self._do_minikube_stop),
            Rule(("minikube status",), self._minikube_status),
            Rule(("minikube addons enable",), self._addon, self._do_addon),
            Rule(("minikube dashboard",), self._dashboard),
            Rule(("minikube service",), self._minikube_service),
            Rule(("minikube version",), lambda _: [out("minikube version: v1.32.0")]),
            Rule(("helm repo add",), self._repo_add, self._do_repo_add),
            Rule(("helm search",), self._helm_search),
            Rule(("helm install",), self._helm_install, self._do_helm_install),
            Rule(("helm show values",), self._helm_values),
            Rule(("helm list",), self._helm_list),
            Rule(("helm ls",), self._helm_list),
            Rule(("helm upgrade",), self._helm_upgrade, self._do_helm_upgrade),
            Rule(("helm rollback",), self._helm_rollback, self._do_helm_rollback),
            Rule(("helm version",), lambda _: [out('version.BuildInfo{Version:"v3.13.1", GoVersion:"go1.20.8"}')]),
            Rule(("kubectl version",), lambda _: [out("Client Version: v1.28.3"), out("Kustomize Version: v5.0.4")]),
            Rule(("kubectl config use-context",), self._use_context, self._do_use_context),
            Rule(("kubectl get nodes",), self._cluster_guard(self._get_nodes)),
            Rule(("kubectl get pods",), self._cluster_guard(self._get_pods)),
            Rule(("kubectl get deployments",), self._cluster_guard(self._get_deployments)),
            Rule(("kubectl get svc",), self._cluster_guard(self._get_services)),
            Rule(("kubectl get services",), self._cluster_guard(self._get_services)),
            Rule(("kubectl create deployment",), self._cluster_guard(self._create_deployment), self._do_create_deployment),
            Rule(("kubectl apply",), self._cluster_guard(self._apply), self._do_apply),
            Rule(("kubectl expose",), self._cluster_guard(self._expose), self._do_expose),
            Rule(("kubectl scale",), self._cluster_guard(self._scale), self._do_scale),
            Rule(("kubectl logs",), self._cluster_guard(self._logs)),
            Rule(("kubectl describe",), self._cluster_guard(self._describe)),
            Rule(("kubectl --help",), self._help),
        ]

    def not_found(self, command: str) -> list[TerminalLine]:
        return [err(f"Error: {command.split()[0]}: command not found")]

    def _cluster_guard(self, build: LineBuilder) -> LineBuilder:
        def wrapper(command: str) -> list[TerminalLine]:
            if not self.cluster.running:
                return [err("The connection to the server localhost:8443 was refused - did you specify the right host or port?")]
            return build(command)

        return wrapper

    def _rollout(self, name: str) -> None:
        deployment = self.cluster.deployments.get(name)
        if deployment is None:
            return
        deployment.ready = False

        def mark_ready() -> None:
            current = self.cluster.deployments.get(name)
            if current is not None:
                current.ready = True

        self.schedule(ROLLOUT_MS, mark_ready)

    # minikube

    def _minikube_start(self, _: str) -> list[TerminalLine]:
        return [
            out("😄  minikube v1.32.0 on Linux", 200),
            out("✨  Using the docker driver based on user configuration", 300),
            out("🔥  Creating docker container (CPUs=2, Memory=4000MB) ...", 600),
            out("🐳  Preparing Kubernetes v1.28.3 on Docker 24.0.7 ...", 600),
            ok('🏄  Done! kubectl is now configured to use "minikube" cluster', 400),
        ]

    def _do_minikube_start(self, _: str) -> None:
        self.cluster.running = True
        self.cluster.context = "minikube"

    def _do_minikube_stop(self, _: str) -> None:
        self.cluster.running = False

    def _minikube_status(self, _: str) -> list[TerminalLine]:
        state = "Running" if self.cluster.running else "Stopped"
        return [
            out("minikube"),
            out("type: Control Plane"),
            out(f"host: {state}"),
            out(f"kubelet: {state}"),
            out(f"apiserver: {state}"),
            out("kubeconfig: Configured"),
        ]

    def _addon(self, command: str) -> list[TerminalLine]:
        tokens = _args(command)
        if len(tokens) < 4:
            return [err("❌  Exiting due to MK_USAGE: usage: minikube addons enable ADDON_NAME")]
        name = tokens[-1]
        return [out("    ▪ Using image docker.io/kubernetesui/dashboard:v2.7.0", 300), ok(f"🌟  The '{name}' addon is enabled", 300)]

    def _do_addon(self, command: str) -> None:
        tokens = _args(command)
        if len(tokens) > 3:
            self.cluster.addons.add(tokens[-1])

    def _dashboard(self, _: str) -> list[TerminalLine]:
        if "dashboard" not in self.cluster.addons:
            return [out("🔌  Enabling dashboard ...", 300), ok("http://127.0.0.1:38291/api/v1/namespaces/kubernetes-dashboard/services/http:kubernetes-dashboard:/proxy/", 500)]
        return [out("🤔  Verifying dashboard health ...", 300), ok("http://127.0.0.1:38291/api/v1/namespaces/kubernetes-dashboard/services/http:kubernetes-dashboard:/proxy/", 500)]

    def _minikube_service(self, command: str) -> list[TerminalLine]:
        name = next((token for token in _args(command)[2:] if not token.startswith("-")), "")
        if name not in self.cluster.services:
            return [err(f'❌  Exiting due to SVC_NOT_FOUND: Service \'{name}\' was not found in "default" namespace.')]
        return [ok("http://192.168.49.2:30080", 300)]

    # helm

    def _repo_add(self, command: str) -> list[TerminalLine]:
        tokens = _args(command)
        if len(tokens) < 5:
            return [err('Error: "helm repo add" requires 2 arguments')]
        return [ok(f'"{tokens[3]}" has been added to your repositories', 300)]

    def _do_repo_add(self, command: str) -> None:
        tokens = _args(command)
        if len(tokens) > 4:
            self.cluster.repos[tokens[3]] = tokens[4]

    def _helm_search(self, command: str) -> list[TerminalLine]:
        if not self.cluster.repos:
            return [err("Error: no repositories configured")]
        term = _args(command)[-1]
        return [
            out("NAME                    CHART VERSION   APP VERSION   DESCRIPTION"),
            out(f"bitnami/{term}".ljust(24) + "15.4.4          1.25.3        NGINX Open Source is a web server"),
            out(f"bitnami/{term}-ingress-controller".ljust(24) + " 9.9.2           1.9.3         NGINX Ingress Controller"),
        ]

    def _helm_install(self, command: str) -> list[TerminalLine]:
        tokens = [token for token in _args(command) if not token.startswith("-")]
        if len(tokens) < 4:
            return [err("Error: INSTALLATION FAILED: must either provide a name or specify --generate-name")]
        name, chart = tokens[2], tokens[3]
        if chart.split("/", 1)[0] not in self.cluster.repos:
            return [err(f'Error: INSTALLATION FAILED: repo {chart.split("/", 1)[0]} not found')]
        if name in self.cluster.releases:
            return [err("Error: INSTALLATION FAILED: cannot re-use a name that is still in use")]
        return [
            out(f"NAME: {name}", 400),
            out("NAMESPACE: default"),
            out("STATUS: deployed"),
            ok("REVISION: 1"),
        ]

    def _do_helm_install(self, command: str) -> None:
        tokens = [token for token in _args(command) if not token.startswith("-")]
        if len(tokens) < 4:
            return
        name, chart = tokens[2], tokens[3]
        if chart.split("/", 1)[0] in self.cluster.repos and name not in self.cluster.releases:
            self.cluster.releases[name] = Release(name=name, chart=chart)

    def _helm_values(self, command: str) -> list[TerminalLine]:
        return [
            out("## @param replicaCount Number of NGINX replicas to deploy"),
            out("replicaCount: 1"),
            out("service:"),
            out("  type: LoadBalancer"),
            out("  ports:"),
            out("    http: 80"),
        ]

    def _helm_list(self, _: str) -> list[TerminalLine]:
        lines = [out("NAME       NAMESPACE   REVISION   STATUS     CHART")]
        for release in self.cluster.releases.values():
            lines.append(out(f"{release.name.ljust(11)}default     {str(release.revision).ljust(11)}deployed   {release.chart}"))
        return lines

    def _helm_upgrade(self, command: str) -> list[TerminalLine]:
        name = _args(command)[2] if len(_args(command)) > 2 else ""
        release = self.cluster.releases.get(name)
        if release is None:
            return [err(f'Error: UPGRADE FAILED: "{name}" has no deployed releases')]
        return [ok(f'Release "{name}" has been upgraded. Happy Helming!', 400), out(f"REVISION: {release.revision + 1}")]

    def _do_helm_upgrade(self, command: str) -> None:
        tokens = _args(command)
        release = self.cluster.releases.get(tokens[2] if len(tokens) > 2 else "")
        if release is None:
            return
        release.revision += 1
        for index, token in enumerate(tokens):
            if token == "--set" and index + 1 < len(tokens) and "=" in tokens[index + 1]:
                key, value = tokens[index + 1].split("=", 1)
                release.values[key] = value

    def _helm_rollback(self, command: str) -> list[TerminalLine]:
        tokens = _args(command)
        name = tokens[2] if len(tokens) > 2 else ""
        if name not in self.cluster.releases:
            return [err("Error: release: not found")]
        return [ok("Rollback was a success! Happy Helming!", 400)]

    def _do_helm_rollback(self, command: str) -> None:
        tokens = _args(command)
        release = self.cluster.releases.get(tokens[2] if len(tokens) > 2 else "")
        if release is not None:
            release.revision += 1
            release.values.clear()

    # kubectl

    def _use_context(self, command: str) -> list[TerminalLine]:
        tokens = _args(command)
        if len(tokens) < 4:
            return [err("error: Unexpected args: []")]
        return [out(f'Switched to context "{tokens[-1]}".')]

    def _do_use_context(self, command: str) -> None:
        tokens = _args(command)
        if len(tokens) > 3:
            self.cluster.context = tokens[-1]

    def _get_nodes(self, _: str) -> list[TerminalLine]:
        return [
            out("NAME       STATUS   ROLES           AGE   VERSION"),
            out("minikube   Ready    control-plane   5d    v1.28.3"),
        ]

    def _get_pods(self, _: str) -> list[TerminalLine]:
        if not self.cluster.deployments:
            return [out("No resources found in default namespace.")]
        lines = [out("NAME                              READY   STATUS              RESTARTS   AGE")]
        for deployment in self.cluster.deployments.values():
            status, ready = ("Running", "1/1") if deployment.ready else ("ContainerCreating", "0/1")
            for suffix in _POD_SUFFIXES[: deployment.replicas]:
                lines.append(out(f"{deployment.name}-{suffix}".ljust(34) + ready.ljust(8) + status.ljust(20) + "0          2m"))
        return lines

    def _get_deployments(self, _: str) -> list[TerminalLine]:
        lines = [out("NAME    READY   UP-TO-DATE   AVAILABLE   AGE")]
        for deployment in self.cluster.deployments.values():
            ready = deployment.replicas if deployment.ready else 0
            lines.append(out(f"{deployment.name.ljust(8)}{ready}/{deployment.replicas}     {deployment.replicas}            {ready}           2m"))
        return lines

    def _get_services(self, _: str) -> list[TerminalLine]:
        lines = [
            out("NAME         TYPE        CLUSTER-IP      EXTERNAL-IP   PORT(S)   AGE"),
            out("kubernetes   ClusterIP   10.96.0.1       <none>        443/TCP   5d"),
        ]
        for name, port in self.cluster.services.items():
            lines.append(out(f"{name.ljust(13)}ClusterIP   10.96.45.123    <none>        {port}/TCP    1m"))
        return lines

    def _create_deployment(self, command: str) -> list[TerminalLine]:
        name = _args(command)[3] if len(_args(command)) > 3 else ""
        if not _option(command, "--image"):
            return [err("error: required flag(s) \"image\" not set")]
        if name in self.cluster.deployments:
            return [err(f'Error from server (AlreadyExists): deployments.apps "{name}" already exists')]
        return [ok(f"deployment.apps/{name} created", 300)]

    def _do_create_deployment(self, command: str) -> None:
        tokens = _args(command)
        image = _option(command, "--image")
        if not self.cluster.running or len(tokens) < 4 or not image or tokens[3] in self.cluster.deployments:
            return
        self.cluster.deployments[tokens[3]] = Deployment(name=tokens[3], image=image)
        self._rollout(tokens[3])

    def _apply(self, command: str) -> list[TerminalLine]:
        if "nginx" in self.cluster.deployments:
            return [out("deployment.apps/nginx configured", 300)]
        return [ok("deployment.apps/nginx created", 300)]

    def _do_apply(self, _: str) -> None:
        if not self.cluster.running:
            return
        self.cluster.deployments.setdefault("nginx", Deployment(name="nginx", image="nginx:1.25", replicas=2))
        self.cluster.services.setdefault("nginx", 80)
        self._rollout("nginx")

    def _expose(self, command: str) -> list[TerminalLine]:
        name = _target(command)
        if name not in self.cluster.deployments:
            return [err(f'Error from server (NotFound): deployments.apps "{name}" not found')]
        port = _option(command, "--port")
        if port is not None and not port.isdigit():
            return [err(f"error: invalid port '{port}': must be a number between 1 and 65535")]
        return [ok(f"service/{name} exposed", 300)]

    def _do_expose(self, command: str) -> None:
        name = _target(command)
        if self.cluster.running and name in self.cluster.deployments:
            port = _option(command, "--port")
            if port is None:
                port = "80"
            if port.isdigit():
                self.cluster.services[name] = int(port)

    def _scale(self, command: str) -> list[TerminalLine]:
        name = _target(command)
        if name not in self.cluster.deployments:
            return [err(f'Error from server (NotFound): deployments.apps "{name}" not found')]
        if not (_option(command, "--replicas") or "").isdigit():
            return [err("error: --replicas=COUNT is required")]
        return [ok(f"deployment.apps/{name} scaled", 300)]

    def _do_scale(self, command: str) -> None:
        name = _target(command)
        replicas = _option(command, "--replicas") or ""
        deployment = self.cluster.deployments.get(name)
        if self.cluster.running and deployment is not None and replicas.isdigit():
            deployment.replicas = min(int(replicas), len(_POD_SUFFIXES))
            self._rollout(name)

    def _logs(self, command: str) -> list[TerminalLine]:
        name = _target(command)
        deployment = self.cluster.deployments.get(name)
        if deployment is None:
            return [err(f'error: deployments.apps "{name}" not found')]
        if not deployment.ready:
            return [err(f'Error from server (BadRequest): container "{name}" in pod is waiting to start: ContainerCreating')]
        return [
            out("/docker-entrypoint.sh: Configuration complete; ready for start up"),
            out('10.244.0.1 - - [19/Oct/2026:10:00:00 +0000] "GET / HTTP/1.1" 200 615'),
        ]

    def _describe(self, command: str) -> list[TerminalLine]:
        name = _target(command)
        deployment = self.cluster.deployments.get(name)
        if deployment is None:
            return [err(f'Error from server (NotFound): deployments.apps "{name}" not found')]
        available = deployment.replicas if deployment.ready else 0
        return [
            out(f"Name:                   {deployment.name}"),
            out("Namespace:              default"),
            out(f"Replicas:               {deployment.replicas} desired | {available} available"),
            out(f"Image:                  {deployment.image}"),
        ]

    def _help(self, _: str) -> list[TerminalLine]:
        return [
            out("kubectl controls the Kubernetes cluster manager."),
            out("Basic Commands:"),
            out("  create        Create a resource from a file or from stdin"),
            out("  expose        Take a replication controller, service, deployment or pod and expose it"),
            out("  get           Display one or many resources"),
            out("  scale         Set a new size for a deployment"),
        ]


def _args(command: str) -> list[str]:
    try:
        return shlex.split(command)
    except ValueError:
        return command.split()


def _option(command: str, name: str) -> str | None:
    tokens = _args(command)
    for index, token in enumerate(tokens):
        if token.startswith(f"{name}="):
            return token.split("=", 1)[1]
        if token == name and index + 1 < len(tokens):
            return tokens[index + 1]
    return None


def _target(command: str) -> str:
    """Return the resource name from `deployment nginx` or `deployment/nginx` forms."""
    match = re.search(r"deployment(?:s|\.apps)?[/ ]([\w.-]+)", command)
    if match:
        return match.group(1)
    positionals = [token for token in _args(command)[2:] if not token.startswith("-")]
    return positionals[-1] if positionals else ""
