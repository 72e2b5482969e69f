from __future__ import annotations

from flask import Blueprint, jsonify, request

from recollect.utils.exceptions import MemoryNotFoundError

from .request_parsers import current_owner, json_body, services

memory_bp = Blueprint("memories", __name__)


@memory_bp.route("/memories", methods=["GET"])
def list_memories():
    scope = request.args.get("scope") or None
    thread_id = request.args.get("thread_id") or None
    memories = services().memory_store.list(
        current_owner(), scope=scope, thread_id=thread_id
    )
    return jsonify(
        {"status": "success", "memories": [memory.to_dict() for memory in memories]}
    )


@memory_bp.route("/memories/<memory_id>", methods=["GET"])
def get_memory(memory_id: str):
    memory = services().memory_store.get(current_owner(), memory_id)
    if memory is None:
        raise MemoryNotFoundError(f"Memory {memory_id} not found")
    return jsonify({"status": "success", "memory": memory.to_dict()})


@memory_bp.route("/memories/<memory_id>", methods=["PATCH"])
def update_memory(memory_id: str):
    """Edit the summary text or link the memory to its successor."""

    memory = services().memory_store.update(current_owner(), memory_id, json_body())
    return jsonify({"status": "success", "memory": memory.to_dict()})


@memory_bp.route("/memories/<memory_id>", methods=["DELETE"])
def delete_memory(memory_id: str):
    services().memory_store.delete(current_owner(), memory_id)
    return jsonify({"status": "success", "deleted": memory_id})


@memory_bp.route("/memories/<memory_id>/conflicts", methods=["GET"])
def memory_conflicts(memory_id: str):
    owner = current_owner()
    if services().memory_store.get(owner, memory_id) is None:
        raise MemoryNotFoundError(f"Memory {memory_id} not found")
    conflicts = services().conflict_ledger.list_for_memory(owner, memory_id)
    return jsonify(
        {"status": "success", "conflicts": [c.to_dict() for c in conflicts]}
    )
