"""Shared fixtures: sample export records and ZIP archives built on the fly."""

import json
import zipfile
from pathlib import Path

import pytest

from chat_vault.config import load_settings
from chat_vault.service import ImportService


def chatgpt_record(conv_id, title, create_time, update_time, turns, with_id=True):
    """Build a ChatGPT-style record with a linear mapping.

    Args:
        turns: List of (role, text) tuples.
    """
    mapping = {"root": {"id": "root", "message": None, "parent": None, "children": []}}
    parent = "root"
    for i, (role, text) in enumerate(turns, start=1):
        node_id = f"{conv_id or 'anon'}-n{i}"
        mapping[node_id] = {
            "id": node_id,
            "message": {
                "id": f"m{i}",
                "author": {"role": role},
                "content": {"content_type": "text", "parts": [text]},
                "create_time": create_time + i,
                "metadata": {},
            },
            "parent": parent,
            "children": [],
        }
        mapping[parent]["children"].append(node_id)
        parent = node_id

    record = {
        "title": title,
        "create_time": create_time,
        "update_time": update_time,
        "mapping": mapping,
        "current_node": parent,
    }
    if with_id:
        record["id"] = conv_id
        record["conversation_id"] = conv_id
    return record


def claude_record(uuid, name, created, updated, turns):
    return {
        "uuid": uuid,
        "name": name,
        "created_at": created,
        "updated_at": updated,
        "chat_messages": [
            {
                "uuid": f"{uuid}-m{i}",
                "sender": sender,
                "text": text,
                "created_at": created,
            }
            for i, (sender, text) in enumerate(turns, start=1)
        ],
    }


SCENARIO_RECORDS = [
    chatgpt_record(
        "x1",
        "Recipe A",
        1700000000.0,
        100.0,
        [("user", "How do I bake bread?"), ("assistant", "Mix flour, water and yeast.")],
    ),
    chatgpt_record(
        "x2",
        "Quantum",
        1700000500.0,
        200.0,
        [("user", "Explain superposition"), ("assistant", "A state can be a sum of states.")],
    ),
]

CLAUDE_RECORDS = [
    claude_record(
        "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
        "Python Data Processing Help",
        "2024-01-15T10:30:00Z",
        "2024-01-15T11:00:00Z",
        [
            ("human", "I have a CSV file and need to filter rows."),
            ("assistant", "Use pandas: import pandas as pd"),
            ("human", "Thanks!"),
        ],
    ),
    claude_record(
        "b2c3d4e5-f6a7-8901-bcde-f12345678901",
        "Unicode Test こんにちは",
        "2024-02-01T09:00:00.000000+00:00",
        "2024-02-01T09:30:00.000000+00:00",
        [("human", "日本語 and العربية with emoji 🎉"), ("assistant", "All preserved.")],
    ),
]


def write_zip(path: Path, entries: dict) -> Path:
    """Write a ZIP with the given entry name -> content (str or JSON-able)."""
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in entries.items():
            if not isinstance(content, (str, bytes)):
                content = json.dumps(content, ensure_ascii=False)
            zf.writestr(name, content)
    return path


@pytest.fixture
def chatgpt_zip(tmp_path):
    return write_zip(
        tmp_path / "abc123-2024-03-01-10-00-00-def456.zip",
        {"conversations.json": SCENARIO_RECORDS},
    )


@pytest.fixture
def claude_zip(tmp_path):
    return write_zip(
        tmp_path / "data-2024-02-02.zip",
        {"conversations.json": CLAUDE_RECORDS, "users.json": [{"uuid": "u1"}]},
    )


@pytest.fixture
def vault_dir(tmp_path):
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def service(vault_dir):
    return ImportService(load_settings(vault_dir))
