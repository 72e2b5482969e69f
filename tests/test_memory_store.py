import pytest
from sqlalchemy.exc import IntegrityError

from conftest import OWNER
from recollect.database.models import Memory
from recollect.utils.exceptions import (
    MemoryNotFoundError,
    ThreadNotFoundError,
    ValidationError,
)


def _create(store, thread_id, **overrides):
    fields = {
        "memory_type": "preference",
        "scope": "global",
        "content": "I love dark mode",
        "short_summary": "User prefers dark mode",
        "thread_id": thread_id,
        "confidence": 0.9,
    }
    fields.update(overrides)
    return store.create(OWNER, **fields)


def test_create_then_list_returns_identical_fields(store, thread):
    created = _create(store, thread.id)

    listed = store.list(OWNER, scope="global")

    assert len(listed) == 1
    assert listed[0].id == created.id
    assert listed[0].memory_type == "preference"
    assert listed[0].short_summary == "User prefers dark mode"
    assert listed[0].verified is False


def test_create_can_require_a_live_thread(store, registry, thread):
    kept = _create(store, thread.id, require_thread=True)

    with pytest.raises(ThreadNotFoundError):
        store.create(
            "mallory",
            memory_type="goal",
            scope="global",
            content="Run a marathon",
            short_summary="Marathon goal",
            thread_id=thread.id,
            require_thread=True,
        )
    registry.delete_thread(OWNER, thread.id)
    with pytest.raises(ThreadNotFoundError):
        _create(store, thread.id, scope="thread", require_thread=True)

    assert [m.id for m in store.list(OWNER)] == [kept.id]
    assert store.list("mallory") == []


def test_list_filters_by_scope_and_thread(store, registry, thread):
    other = registry.create_thread(OWNER)
    _create(store, thread.id)
    local = _create(store, thread.id, scope="thread", short_summary="Local note")
    _create(store, other.id, scope="thread", short_summary="Elsewhere")

    in_thread = store.list(OWNER, scope="thread", thread_id=thread.id)

    assert [m.id for m in in_thread] == [local.id]
    assert len(store.list(OWNER)) == 3


def test_list_is_ordered_by_creation(store, thread):
    first = _create(store, thread.id, short_summary="first")
    second = _create(store, thread.id, short_summary="second")
    third = _create(store, thread.id, short_summary="third")

    assert [m.id for m in store.list(OWNER)] == [first.id, second.id, third.id]


@pytest.mark.parametrize("label", ["ephemeral", "irrelevant", "hobby"])
def test_create_rejects_non_persistent_types(store, thread, label):
    with pytest.raises(ValidationError):
        _create(store, thread.id, memory_type=label)


def test_thread_scope_requires_thread_id(store):
    with pytest.raises(ValidationError):
        store.create(
            OWNER,
            memory_type="routine",
            scope="thread",
            content="I run daily",
            short_summary="User runs daily",
        )


@pytest.mark.parametrize("confidence", [-0.1, 1.5])
def test_confidence_must_be_in_unit_interval(store, thread, confidence):
    with pytest.raises(ValidationError):
        _create(store, thread.id, confidence=confidence)


def test_confidence_may_be_absent(store, thread):
    memory = _create(store, thread.id, confidence=None)
    assert memory.confidence is None


def test_database_rejects_thread_scope_without_thread(services):
    row = Memory(
        id="raw",
        owner=OWNER,
        memory_type="goal",
        scope="thread",
        content="x",
        short_summary="x",
    )
    with services.db_manager.SessionLocal() as session:
        session.add(row)
        with pytest.raises(IntegrityError):
            session.commit()


def test_update_summary_keeps_identity(store, thread):
    memory = _create(store, thread.id)

    updated = store.update(OWNER, memory.id, {"short_summary": "  User likes dark UI  "})

    assert updated.id == memory.id
    assert updated.scope == memory.scope
    assert updated.memory_type == memory.memory_type
    assert updated.short_summary == "User likes dark UI"
    assert updated.updated_at >= memory.updated_at


@pytest.mark.parametrize("field", ["scope", "memory_type", "id", "verified"])
def test_update_rejects_other_fields(store, thread, field):
    memory = _create(store, thread.id)
    with pytest.raises(ValidationError):
        store.update(OWNER, memory.id, {field: "thread"})


def test_update_rejects_empty_summary(store, thread):
    memory = _create(store, thread.id)
    with pytest.raises(ValidationError):
        store.update(OWNER, memory.id, {"short_summary": "   "})


def test_supersede_links_memories(store, thread):
    old = _create(store, thread.id, short_summary="User prefers dark mode")
    new = _create(store, thread.id, short_summary="User prefers bright themes")

    linked = store.supersede(OWNER, old.id, new.id)

    assert linked.superseded_by == new.id
    assert store.get(OWNER, old.id).superseded_by == new.id


def test_supersede_requires_existing_successor(store, thread):
    old = _create(store, thread.id)
    with pytest.raises(ValidationError):
        store.supersede(OWNER, old.id, "missing")
    with pytest.raises(ValidationError):
        store.supersede(OWNER, old.id, old.id)


def test_other_owner_cannot_see_or_touch_memory(store, thread):
    memory = _create(store, thread.id)

    assert store.get("mallory", memory.id) is None
    assert store.list("mallory") == []
    with pytest.raises(MemoryNotFoundError):
        store.update("mallory", memory.id, {"short_summary": "hijacked"})
    with pytest.raises(MemoryNotFoundError):
        store.delete("mallory", memory.id)
    assert store.get(OWNER, memory.id).short_summary == "User prefers dark mode"


def test_delete_is_hard_and_unlinks_references(store, ledger, thread):
    old = _create(store, thread.id, short_summary="old")
    new = _create(store, thread.id, short_summary="new")
    store.supersede(OWNER, old.id, new.id)
    ledger.record(OWNER, new.id, old.id, "Contradicts old preference")

    store.delete(OWNER, new.id)

    assert store.get(OWNER, new.id) is None
    assert store.get(OWNER, old.id).superseded_by is None
    assert ledger.list_unresolved(OWNER) == []
    with pytest.raises(MemoryNotFoundError):
        store.delete(OWNER, new.id)
