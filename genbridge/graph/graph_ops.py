"""
Structural operations on workflow graphs.

A workflow graph maps node ids to {"class_type", "inputs"}; an input value of
the form [node_id, output_slot] references another node. These helpers find
nodes by role, remove nodes without leaving dangling references, and check
that a graph is a valid DAG.
"""

from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from genbridge.core.types import WorkflowGraph
from genbridge.schemas import validate_instance


# Input fields that hold the prompt text, in lookup order
PROMPT_FIELDS = ("text", "prompt")
SEED_FIELDS = ("seed", "noise_seed")


def is_node_ref(value: Any) -> bool:
    """True if an input value is a [node_id, slot] reference."""
    return (
        isinstance(value, (list, tuple))
        and len(value) == 2
        and isinstance(value[0], str)
        and isinstance(value[1], int)
        and not isinstance(value[1], bool)
    )


def iter_references(graph: WorkflowGraph) -> Iterator[Tuple[str, str, str]]:
    """
    Yield every reference in the graph.

    Yields:
        Tuple[str, str, str]: (node_id, input_name, referenced_node_id)
    """
    for node_id, node in graph.items():
        for input_name, value in node.get("inputs", {}).items():
            if is_node_ref(value):
                yield node_id, input_name, value[0]


def find_dangling_references(graph: WorkflowGraph) -> List[Tuple[str, str, str]]:
    """
    References whose target node does not exist.

    Returns:
        List[Tuple[str, str, str]]: (node_id, input_name, missing_node_id)
    """
    return [ref for ref in iter_references(graph) if ref[2] not in graph]


def find_cycle(graph: WorkflowGraph) -> Optional[List[str]]:
    """
    Find a reference cycle, if any.

    Returns:
        Optional[List[str]]: Node ids forming a cycle, or None for a DAG
    """
    edges: Dict[str, List[str]] = {node_id: [] for node_id in graph}
    for node_id, _, target in iter_references(graph):
        if target in graph:
            edges[node_id].append(target)

    visiting: Set[str] = set()
    done: Set[str] = set()

    def visit(node_id: str, path: List[str]) -> Optional[List[str]]:
        visiting.add(node_id)
        path.append(node_id)
        for target in edges[node_id]:
            if target in visiting:
                return path[path.index(target):] + [target]
            if target not in done:
                cycle = visit(target, path)
                if cycle:
                    return cycle
        visiting.discard(node_id)
        done.add(node_id)
        path.pop()
        return None

    for node_id in graph:
        if node_id not in done:
            cycle = visit(node_id, [])
            if cycle:
                return cycle
    return None


def validate_graph(graph: WorkflowGraph) -> None:
    """
    Check that a graph matches the workflow schema, has no dangling
    references and is acyclic.

    Raises:
        jsonschema.exceptions.ValidationError: If the graph does not match the schema
        ValueError: If a reference is dangling or the graph has a cycle
    """
    validate_instance(graph, "workflow_graph")

    dangling = find_dangling_references(graph)
    if dangling:
        details = ", ".join(f"{node}.{name} -> {target}" for node, name, target in dangling)
        raise ValueError(f"Workflow graph has dangling references: {details}")

    cycle = find_cycle(graph)
    if cycle:
        raise ValueError(f"Workflow graph has a cycle: {' -> '.join(cycle)}")


def remove_node(graph: WorkflowGraph, node_id: str) -> List[Tuple[str, str]]:
    """
    Remove a node and clear every input that referenced it.

    A consumer left with no node references at all only processed the
    removed node's output, so it is removed as well, recursively.

    Args:
        graph (WorkflowGraph): Graph to modify in place
        node_id (str): Node to remove

    Returns:
        List[Tuple[str, str]]: (node_id, input_name) pairs cleared on the nodes that remain
    """
    pending = [node_id]
    cleared = []
    while pending:
        removing = pending.pop()
        if graph.pop(removing, None) is None:
            continue
        for source_id, input_name, target in list(iter_references(graph)):
            if target != removing:
                continue
            inputs = graph[source_id]["inputs"]
            inputs[input_name] = None
            cleared.append((source_id, input_name))
            if not any(is_node_ref(value) for value in inputs.values()):
                pending.append(source_id)
    return [(source_id, input_name) for source_id, input_name in cleared if source_id in graph]


def _numeric_key(node_id: str) -> Tuple[int, Any]:
    return (0, int(node_id)) if node_id.isdigit() else (1, node_id)


def find_nodes(graph: WorkflowGraph, predicate) -> List[str]:
    """Node ids whose class_type satisfies ``predicate``, in numeric id order."""
    return sorted(
        (node_id for node_id, node in graph.items() if predicate(node.get("class_type", ""))),
        key=_numeric_key,
    )


def is_sampler(class_type: str) -> bool:
    return class_type.startswith("KSampler") or class_type.endswith("Sampler") \
        or class_type == "SamplerCustomAdvanced"


def is_latent_size(class_type: str) -> bool:
    return "LatentImage" in class_type and class_type.startswith("Empty")


def is_image_input(class_type: str) -> bool:
    return class_type == "LoadImage"


def is_model_loader(class_type: str) -> bool:
    return class_type in ("UNETLoader", "CheckpointLoaderSimple", "CheckpointLoader")


def find_sampler(graph: WorkflowGraph) -> Optional[str]:
    nodes = find_nodes(graph, is_sampler)
    return nodes[0] if nodes else None


def find_latent_size(graph: WorkflowGraph) -> Optional[str]:
    nodes = find_nodes(graph, is_latent_size)
    return nodes[0] if nodes else None


def prompt_field(node: Dict[str, Any]) -> Optional[str]:
    """Name of the node's prompt text input, if it has one."""
    inputs = node.get("inputs", {})
    for name in PROMPT_FIELDS:
        if isinstance(inputs.get(name), str):
            return name
    return None


def trace_prompt_node(graph: WorkflowGraph, sampler_id: str, input_name: str) -> Optional[str]:
    """
    Follow a sampler's conditioning input back to the node holding prompt text.

    Intermediate conditioning nodes (for example ConditioningZeroOut) are
    passed through by following their first reference input.

    Args:
        graph (WorkflowGraph): The graph
        sampler_id (str): Sampler node id
        input_name (str): "positive" or "negative"

    Returns:
        Optional[str]: Id of the prompt node, or None if none is reachable
    """
    value = graph.get(sampler_id, {}).get("inputs", {}).get(input_name)
    seen: Set[str] = set()
    while is_node_ref(value) and value[0] in graph and value[0] not in seen:
        node_id = value[0]
        seen.add(node_id)
        node = graph[node_id]
        if prompt_field(node):
            return node_id
        value = next((v for v in node.get("inputs", {}).values() if is_node_ref(v)), None)
    return None


def set_seed(graph: WorkflowGraph, sampler_id: str, seed: int) -> None:
    inputs = graph[sampler_id]["inputs"]
    for name in SEED_FIELDS:
        if name in inputs:
            inputs[name] = seed
            return
    inputs["seed"] = seed
