from __future__ import annotations

from concurrent.futures import TimeoutError as FutureTimeoutError

from flask import Blueprint, current_app, jsonify
from loguru import logger

from recollect.utils.exceptions import ValidationError

from .request_parsers import (
    background_loop,
    coerce_bool,
    current_owner,
    error_response,
    json_body,
    services,
)

thread_bp = Blueprint("threads", __name__)


@thread_bp.route("/threads", methods=["POST"])
def create_thread():
    if "title" in json_body():
        raise ValidationError(
            "Thread titles come from the first message and cannot be set directly"
        )
    thread = services().thread_registry.create_thread(current_owner())
    return jsonify({"status": "success", "thread": thread.to_dict()}), 201


@thread_bp.route("/threads", methods=["GET"])
def list_threads():
    threads = services().thread_registry.list_threads(current_owner())
    return jsonify(
        {"status": "success", "threads": [thread.to_dict() for thread in threads]}
    )


@thread_bp.route("/threads/latest", methods=["GET"])
def latest_thread():
    thread = services().thread_registry.get_latest(current_owner())
    if thread is None:
        return error_response("No threads yet", 404)
    return jsonify({"status": "success", "thread": thread.to_dict()})


@thread_bp.route("/threads/<thread_id>", methods=["GET"])
def get_thread(thread_id: str):
    thread = services().thread_registry.get_thread(current_owner(), thread_id)
    return jsonify({"status": "success", "thread": thread.to_dict()})


@thread_bp.route("/threads/<thread_id>", methods=["DELETE"])
def delete_thread(thread_id: str):
    removed = services().thread_registry.delete_thread(current_owner(), thread_id)
    return jsonify({"status": "success", "deleted_memories": removed})


@thread_bp.route("/threads/<thread_id>/messages", methods=["GET"])
def list_messages(thread_id: str):
    messages = services().thread_registry.list_messages(current_owner(), thread_id)
    return jsonify(
        {"status": "success", "messages": [message.to_dict() for message in messages]}
    )


@thread_bp.route("/threads/<thread_id>/messages", methods=["POST"])
def send_message(thread_id: str):
    """Append a user message, reply to it, and optionally wait for the memory outcome."""

    data = json_body()
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required")
    wait_for_memory = coerce_bool(data.get("wait_for_memory"), "wait_for_memory")

    loop = background_loop()
    timeout = current_app.config.get("REPLY_WAIT_SECONDS")
    conversation = services().conversation
    try:
        result = loop.run(
            conversation.send_message(current_owner(), thread_id, content),
            timeout=timeout,
        )
        outcome = (
            loop.run(result.memory_outcome(), timeout=timeout)
            if wait_for_memory
            else None
        )
    except FutureTimeoutError:
        logger.warning(f"Timed out waiting for thread {thread_id} after {timeout}s")
        return error_response("Timed out waiting for the assistant", 504)

    return jsonify({"status": "success", **result.to_dict(outcome)}), 201
