"""Cluster tools offered to the model."""

from __future__ import annotations

from dataclasses import dataclass

from kubeassist.tools.base import CONFIRMED_FIELD, Tool, ToolRisk, ToolScope
from kubeassist.tools.registry import ToolRegistry

LOG_TAIL_LINES = 100
LOG_LIMIT_BYTES = 64 * 1024
MAX_EVENTS = 50

_NAMESPACE_FILTER = {
    "type": "string",
    "description": "Namespace name; empty lists all namespaces",
}


def _namespaced_object(kind: str) -> dict:
    return {
        "namespace": {"type": "string", "description": f"Namespace of the {kind}"},
        "name": {"type": "string", "description": f"{kind} name"},
    }


@dataclass
class NamespaceArgs:
    namespace: str = ""


@dataclass
class ObjectArgs:
    namespace: str = ""
    name: str = ""


@dataclass
class NodeArgs:
    name: str = ""


@dataclass
class PodLogArgs:
    namespace: str = ""
    name: str = ""
    container: str = ""


@dataclass
class EventArgs:
    namespace: str = ""
    resource_name: str = ""


@dataclass
class ScaleArgs:
    namespace: str = ""
    name: str = ""
    replicas: int = 0
    confirmed: bool = False


@dataclass
class RestartArgs:
    namespace: str = ""
    name: str = ""
    confirmed: bool = False


# --- Read-only tools ---

class ListPodsTool(Tool):
    args_type = NamespaceArgs

    @property
    def name(self) -> str:
        return "list_pods"

    @property
    def description(self) -> str:
        return "List pods in a namespace (or all namespaces) with status, readiness and restart counts."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {"namespace": _NAMESPACE_FILTER}}

    async def execute(self, args: NamespaceArgs, scope: ToolScope) -> dict:
        pods = await scope.backend.list_pods(args.namespace, timeout=scope.request_timeout())
        return {"total": len(pods), "pods": pods}


class GetPodDetailTool(Tool):
    args_type = ObjectArgs

    @property
    def name(self) -> str:
        return "get_pod_detail"

    @property
    def description(self) -> str:
        return "Get details of one pod: container states, conditions, node and IPs."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": _namespaced_object("Pod"),
            "required": ["namespace", "name"],
        }

    async def execute(self, args: ObjectArgs, scope: ToolScope) -> dict:
        return await scope.backend.get_pod(args.namespace, args.name, timeout=scope.request_timeout())


class GetPodLogsTool(Tool):
    args_type = PodLogArgs

    @property
    def name(self) -> str:
        return "get_pod_logs"

    @property
    def description(self) -> str:
        return f"Get the most recent log lines of a pod (at most {LOG_TAIL_LINES} lines)."

    @property
    def parameters(self) -> dict:
        props = _namespaced_object("Pod")
        props["container"] = {
            "type": "string",
            "description": "Container name (optional, for multi-container pods)",
        }
        return {"type": "object", "properties": props, "required": ["namespace", "name"]}

    async def execute(self, args: PodLogArgs, scope: ToolScope) -> str:
        return await scope.backend.read_pod_logs(
            args.namespace,
            args.name,
            args.container,
            tail_lines=LOG_TAIL_LINES,
            limit_bytes=LOG_LIMIT_BYTES,
            timeout=scope.request_timeout(),
        )


class ListDeploymentsTool(Tool):
    args_type = NamespaceArgs

    @property
    def name(self) -> str:
        return "list_deployments"

    @property
    def description(self) -> str:
        return "List deployments in a namespace (or all namespaces) with replica counts and images."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {"namespace": _NAMESPACE_FILTER}}

    async def execute(self, args: NamespaceArgs, scope: ToolScope) -> dict:
        deployments = await scope.backend.list_deployments(
            args.namespace, timeout=scope.request_timeout()
        )
        return {"total": len(deployments), "deployments": deployments}


class GetDeploymentDetailTool(Tool):
    args_type = ObjectArgs

    @property
    def name(self) -> str:
        return "get_deployment_detail"

    @property
    def description(self) -> str:
        return "Get details of one deployment: replicas, strategy, images and conditions."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": _namespaced_object("Deployment"),
            "required": ["namespace", "name"],
        }

    async def execute(self, args: ObjectArgs, scope: ToolScope) -> dict:
        return await scope.backend.get_deployment(
            args.namespace, args.name, timeout=scope.request_timeout()
        )


class ListNodesTool(Tool):
    @property
    def name(self) -> str:
        return "list_nodes"

    @property
    def description(self) -> str:
        return "List all cluster nodes with status, roles, kubelet version and capacity."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, args, scope: ToolScope) -> dict:
        nodes = await scope.backend.list_nodes(timeout=scope.request_timeout())
        return {"total": len(nodes), "nodes": nodes}


class GetNodeDetailTool(Tool):
    args_type = NodeArgs

    @property
    def name(self) -> str:
        return "get_node_detail"

    @property
    def description(self) -> str:
        return "Get details of one node: conditions, taints, capacity and allocatable resources."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"name": {"type": "string", "description": "Node name"}},
            "required": ["name"],
        }

    async def execute(self, args: NodeArgs, scope: ToolScope) -> dict:
        return await scope.backend.get_node(args.name, timeout=scope.request_timeout())


class ListEventsTool(Tool):
    args_type = EventArgs

    @property
    def name(self) -> str:
        return "list_events"

    @property
    def description(self) -> str:
        return (
            f"List the latest {MAX_EVENTS} Kubernetes events of a namespace "
            "(or all namespaces), optionally only those about one resource."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "namespace": _NAMESPACE_FILTER,
                "resource_name": {
                    "type": "string",
                    "description": "Only events about the resource with this name (optional)",
                },
            },
        }

    async def execute(self, args: EventArgs, scope: ToolScope) -> dict:
        events = await scope.backend.list_events(args.namespace, timeout=scope.request_timeout())
        if args.resource_name:
            events = [
                e for e in events
                if e["object"].split("/", 1)[-1] == args.resource_name
            ]
        events = events[-MAX_EVENTS:]
        return {"total": len(events), "events": events}


class ListServicesTool(Tool):
    args_type = NamespaceArgs

    @property
    def name(self) -> str:
        return "list_services"

    @property
    def description(self) -> str:
        return "List services in a namespace (or all namespaces) with type, cluster IP and ports."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {"namespace": _NAMESPACE_FILTER}}

    async def execute(self, args: NamespaceArgs, scope: ToolScope) -> dict:
        services = await scope.backend.list_services(args.namespace, timeout=scope.request_timeout())
        return {"total": len(services), "services": services}


class ListIngressesTool(Tool):
    args_type = NamespaceArgs

    @property
    def name(self) -> str:
        return "list_ingresses"

    @property
    def description(self) -> str:
        return "List ingresses in a namespace (or all namespaces) with hosts and ingress class."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {"namespace": _NAMESPACE_FILTER}}

    async def execute(self, args: NamespaceArgs, scope: ToolScope) -> dict:
        ingresses = await scope.backend.list_ingresses(args.namespace, timeout=scope.request_timeout())
        return {"total": len(ingresses), "ingresses": ingresses}


# --- Mutating tools ---

class ScaleDeploymentTool(Tool):
    args_type = ScaleArgs

    @property
    def name(self) -> str:
        return "scale_deployment"

    @property
    def description(self) -> str:
        return (
            "Scale a deployment to a replica count. Write operation: call it first "
            "with confirmed=false, ask the user, and only repeat with confirmed=true "
            "after they agree."
        )

    @property
    def parameters(self) -> dict:
        props = _namespaced_object("Deployment")
        props["replicas"] = {"type": "integer", "description": "Target replica count"}
        props[CONFIRMED_FIELD] = {
            "type": "boolean",
            "description": "Whether the user confirmed this change (false on the first call)",
        }
        return {"type": "object", "properties": props, "required": ["namespace", "name", "replicas"]}

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.WRITE

    def describe_action(self, args: ScaleArgs) -> dict:
        return {
            "namespace": args.namespace,
            "name": args.name,
            "target_replicas": args.replicas,
        }

    def confirmation_message(self, args: ScaleArgs) -> str:
        return (
            f"Please confirm scaling {args.namespace}/{args.name} "
            f"to {args.replicas} replicas."
        )

    async def execute(self, args: ScaleArgs, scope: ToolScope) -> dict:
        return await scope.backend.scale_deployment(
            args.namespace, args.name, args.replicas, timeout=scope.request_timeout()
        )


class RestartDeploymentTool(Tool):
    args_type = RestartArgs

    @property
    def name(self) -> str:
        return "restart_deployment"

    @property
    def description(self) -> str:
        return (
            "Restart a deployment with a rolling restart. Write operation: call it "
            "first with confirmed=false, ask the user, and only repeat with "
            "confirmed=true after they agree."
        )

    @property
    def parameters(self) -> dict:
        props = _namespaced_object("Deployment")
        props[CONFIRMED_FIELD] = {
            "type": "boolean",
            "description": "Whether the user confirmed this restart",
        }
        return {"type": "object", "properties": props, "required": ["namespace", "name"]}

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.DESTRUCTIVE

    def describe_action(self, args: RestartArgs) -> dict:
        return {"namespace": args.namespace, "name": args.name}

    def confirmation_message(self, args: RestartArgs) -> str:
        return f"Please confirm restarting {args.namespace}/{args.name}."

    async def execute(self, args: RestartArgs, scope: ToolScope) -> dict:
        return await scope.backend.restart_deployment(
            args.namespace, args.name, timeout=scope.request_timeout()
        )


ALL_TOOLS: tuple[type[Tool], ...] = (
    ListPodsTool,
    GetPodDetailTool,
    GetPodLogsTool,
    ListDeploymentsTool,
    GetDeploymentDetailTool,
    ListNodesTool,
    GetNodeDetailTool,
    ListEventsTool,
    ListServicesTool,
    ListIngressesTool,
    ScaleDeploymentTool,
    RestartDeploymentTool,
)


def default_registry() -> ToolRegistry:
    """Registry with every cluster tool, frozen."""
    registry = ToolRegistry()
    for tool_cls in ALL_TOOLS:
        registry.register(tool_cls())
    return registry.freeze()
