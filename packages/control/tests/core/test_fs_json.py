from __future__ import annotations

from pathlib import Path

import pytest
from site_delivery.core import (
    MalformedEventError,
    atomic_write_bytes,
    atomic_write_json,
    parse_json_object,
    read_json,
    stable_json_dumps,
)


def test_atomic_write_replaces_whole_file(tmp_path: Path) -> None:
    p = tmp_path / "runs" / "r1" / "run.json"
    atomic_write_bytes(p, b"first")
    atomic_write_bytes(p, b"second")
    assert p.read_bytes() == b"second"
    # No temp files left beside the target.
    assert [x.name for x in p.parent.iterdir()] == ["run.json"]


def test_json_roundtrip_through_disk(tmp_path: Path) -> None:
    p = tmp_path / "doc.json"
    atomic_write_json(p, {"b": 1, "a": [1, 2]})
    assert read_json(p) == {"a": [1, 2], "b": 1}
    assert p.read_text().index('"a"') < p.read_text().index('"b"')


def test_stable_json_dumps_compact_is_deterministic() -> None:
    assert stable_json_dumps({"b": 1, "a": "x"}, indent=None) == '{"a":"x","b":1}'


def test_parse_json_object_rejects_non_objects() -> None:
    assert parse_json_object('{"a": 1}') == {"a": 1}
    with pytest.raises(MalformedEventError):
        parse_json_object("[1, 2]")
    with pytest.raises(MalformedEventError):
        parse_json_object("{not json")
