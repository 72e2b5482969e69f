import json
import sys

import pytest
from loguru import logger

from recollect import cli
from recollect.config.settings import RecollectSettings
from recollect.core.services import build_services


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "recollect.json"
    path.write_text(
        json.dumps(
            {
                "database": {"connection_string": f"sqlite:///{tmp_path / 'cli.db'}"},
                "logging": {"level": "WARNING"},
            }
        )
    )
    yield path
    logger.remove()
    logger.add(sys.__stderr__)


@pytest.fixture
def seeded(config_path, classifier, verifier, reply_generator):
    services = build_services(
        RecollectSettings.from_file(config_path),
        classifier=classifier,
        verifier=verifier,
        reply_generator=reply_generator,
    )
    thread = services.thread_registry.create_thread("alice")
    services.thread_registry.set_title("alice", thread.id, "Planning")
    memory = services.memory_store.create(
        "alice",
        memory_type="goal",
        scope="global",
        content="Remind me about my dentist appointment next week",
        short_summary="Dentist appointment next week",
        thread_id=thread.id,
    )
    services.close()
    return thread, memory


def test_init_db_creates_database(config_path, capsys):
    exit_code = cli.main(["--config", str(config_path), "init-db"])

    assert exit_code == 0
    assert "Database initialised successfully" in capsys.readouterr().out
    assert (config_path.parent / "cli.db").exists()


def test_threads_listing_as_json(config_path, seeded, capsys):
    thread, _ = seeded

    exit_code = cli.main(["--config", str(config_path), "threads", "--user", "alice", "--format", "json"])

    rows = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert [row["id"] for row in rows] == [thread.id]
    assert rows[0]["title"] == "Planning"


def test_memories_listing_as_table(config_path, seeded, capsys):
    _, memory = seeded

    exit_code = cli.main(
        ["--config", str(config_path), "memories", "--user", "alice", "--scope", "global"]
    )

    out = capsys.readouterr().out
    assert exit_code == 0
    assert out.splitlines()[0].split() == ["id", "scope", "memory_type", "verified", "short_summary"]
    assert memory.id in out
    assert "Dentist appointment next week" in out


def test_conflicts_listing_empty(config_path, seeded, capsys):
    exit_code = cli.main(["--config", str(config_path), "conflicts", "--user", "alice"])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "(none)"


def test_config_command_masks_key_and_writes_yaml(tmp_path, capsys):
    path = tmp_path / "recollect.json"
    path.write_text(
        json.dumps(
            {
                "agents": {"openai_api_key": "sk-test-0123456789abcdef"},
                "pipeline": {"overlap_policy": "drop"},
                "logging": {"level": "WARNING"},
            }
        )
    )
    target = tmp_path / "out" / "saved.yaml"

    try:
        shown = cli.main(["--config", str(path), "config"])
        printed = json.loads(capsys.readouterr().out)
        written = cli.main(["--config", str(path), "config", "--write", str(target)])
    finally:
        logger.remove()
        logger.add(sys.__stderr__)

    assert shown == 0 and written == 0
    assert printed["agents"]["openai_api_key"] == "***"
    assert printed["pipeline"]["overlap_policy"] == "drop"
    saved = RecollectSettings.from_file(target)
    assert saved.agents.openai_api_key == "sk-test-0123456789abcdef"
    assert saved.pipeline.overlap_policy.value == "drop"


def test_missing_config_file_is_a_configuration_error(tmp_path, capsys):
    exit_code = cli.main(["--config", str(tmp_path / "absent.json"), "init-db"])

    assert exit_code == 2
    assert "Configuration error" in capsys.readouterr().err


def test_listing_requires_user():
    with pytest.raises(SystemExit):
        cli.main(["threads"])
