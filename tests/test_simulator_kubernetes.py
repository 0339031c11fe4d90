from opsnavigator.catalog import WorkflowCatalog
from opsnavigator.models import LineKind
from opsnavigator.scheduler import TickScheduler
from opsnavigator.simulator import KubernetesSimulator
from opsnavigator.simulator.kubernetes import ROLLOUT_MS


def _run(simulator: KubernetesSimulator, scheduler: TickScheduler, *commands: str) -> None:
    for command in commands:
        simulator.execute(command)
        scheduler.run_until_idle()


def test_deployment_rolls_out_after_delay(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    simulator.execute("kubectl create deployment nginx --image=nginx")
    deployment = simulator.cluster.deployments["nginx"]
    assert deployment.ready is False

    scheduler.advance(ROLLOUT_MS)
    assert deployment.ready is True


def test_scale_expose_and_pods(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    _run(
        simulator,
        scheduler,
        "kubectl create deployment nginx --image=nginx",
        "kubectl expose deployment nginx --port=80",
        "kubectl scale deployment nginx --replicas=3",
        "kubectl get pods",
    )
    assert simulator.cluster.services == {"nginx": 80}
    assert simulator.cluster.deployments["nginx"].replicas == 3
    pod_lines = [text for text in simulator.transcript if text.startswith("nginx-")]
    assert len(pod_lines) == 3
    assert all("Running" in text for text in pod_lines)


def test_logs_wait_for_rollout(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    simulator.execute("kubectl create deployment nginx --image=nginx")
    while simulator.running:
        scheduler.advance(10)
    simulator.execute("kubectl logs deployment/nginx")
    while simulator.running:
        scheduler.advance(10)
    assert simulator.lines[-1].kind is LineKind.ERROR

    scheduler.run_until_idle()
    _run(simulator, scheduler, "kubectl logs deployment/nginx")
    assert simulator.lines[-1].kind is LineKind.OUTPUT


def test_missing_image_flag(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    _run(simulator, scheduler, "kubectl create deployment nginx")
    assert simulator.lines[-1].text == 'error: required flag(s) "image" not set'
    assert simulator.cluster.deployments == {}


def test_stopped_cluster_refuses_kubectl(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    _run(simulator, scheduler, "minikube stop", "kubectl get nodes")
    assert simulator.lines[-1].kind is LineKind.ERROR
    assert "connection to the server" in simulator.lines[-1].text

    _run(simulator, scheduler, "minikube start", "kubectl get nodes")
    assert simulator.transcript[-1].startswith("minikube   Ready")


def test_helm_release_lifecycle(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    _run(simulator, scheduler, "helm install my-nginx bitnami/nginx")
    assert simulator.lines[-1].kind is LineKind.ERROR

    _run(
        simulator,
        scheduler,
        "helm repo add bitnami https://charts.bitnami.com/bitnami",
        "helm install my-nginx bitnami/nginx",
        "helm upgrade my-nginx bitnami/nginx --set replicaCount=2",
    )
    release = simulator.cluster.releases["my-nginx"]
    assert release.revision == 2
    assert release.values == {"replicaCount": "2"}

    _run(simulator, scheduler, "helm rollback my-nginx 1")
    assert release.revision == 3
    assert release.values == {}


def test_helm_module_expected_commands(scheduler: TickScheduler, catalog: WorkflowCatalog) -> None:
    module = catalog.modules["helm"]
    simulator = KubernetesSimulator(scheduler, module=module)
    for step in module.steps:
        assert simulator.expected_command(step) != simulator.default_command


def test_unknown_tool_reports_command_not_found(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    before = len(simulator.lines)
    _run(simulator, scheduler, "kubeadm init")
    new_lines = simulator.lines[before:]
    assert [line.kind for line in new_lines] == [LineKind.INPUT, LineKind.ERROR]
    assert new_lines[1].text == "Error: kubeadm: command not found"


def test_expose_rejects_named_port(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    _run(
        simulator,
        scheduler,
        "kubectl create deployment nginx --image=nginx",
        "kubectl expose deployment nginx --port=http",
    )
    assert simulator.lines[-1].kind is LineKind.ERROR
    assert simulator.lines[-1].text == "error: invalid port 'http': must be a number between 1 and 65535"
    assert simulator.cluster.services == {}

    _run(simulator, scheduler, "kubectl expose deployment nginx --port 8080")
    assert simulator.cluster.services == {"nginx": 8080}


def test_malformed_and_edge_commands_always_answer(scheduler: TickScheduler) -> None:
    simulator = KubernetesSimulator(scheduler)
    _run(simulator, scheduler, "kubectl create deployment nginx --image=nginx")
    commands = [
        "kubectl scale deployment nginx --replicas=many",
        "kubectl scale deployment nginx",
        "kubectl scale deployment ghost --replicas=2",
        "kubectl expose deployment nginx --port=http",
        "kubectl expose deployment nginx --port=",
        "kubectl expose",
        "kubectl logs",
        "kubectl describe",
        "kubectl create deployment",
        'kubectl create deployment "web --image=nginx',
        "kubectl config use-context",
        "minikube addons enable",
        "minikube service",
        "helm repo add",
        "helm search repo nginx",
        "helm install",
        "helm install --generate-name",
        "helm upgrade",
        "helm rollback",
    ]
    for command in commands:
        before = len(simulator.lines)
        _run(simulator, scheduler, command)
        new_lines = simulator.lines[before:]
        assert new_lines[0].kind is LineKind.INPUT, command
        assert len(new_lines) >= 2, command

    assert simulator.cluster.services == {}
    assert simulator.cluster.context == "minikube"
    assert simulator.cluster.repos == {}
