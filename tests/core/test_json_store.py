from __future__ import annotations

import json

import pytest

from edgenode_core.errors import StoreError
from edgenode_core.stores.json_store import JsonDeviceStore


def _payload(local_uuid: str, application: str = "sensors") -> bytes:
    return json.dumps({"localUUID": local_uuid, "applicationUUID": application}).encode(
        "utf-8"
    )


@pytest.mark.core
def test_json_store_insert_query_update(tmp_path):
    uri = (tmp_path / "db" / "my.db").as_posix()
    store = JsonDeviceStore(uri)

    key = store.insert(_payload("aa")).decode("utf-8")
    store.insert(_payload("bb", application="other"))

    matches = json.loads(store.query("applicationUUID", "sensors"))
    assert list(matches) == [key]
    assert matches[key]["localUUID"] == "aa"

    store.update(key, _payload("aa-renamed"))
    matches = json.loads(store.query("applicationUUID", "sensors"))
    assert matches[key]["localUUID"] == "aa-renamed"

    document = json.loads((tmp_path / "db" / "my.db").read_text(encoding="utf-8"))
    assert set(document) == {"updated_at", "records"}
    assert len(document["records"]) == 2


@pytest.mark.core
def test_json_store_missing_file_queries_empty(tmp_path):
    store = JsonDeviceStore((tmp_path / "absent.db").as_posix())
    assert json.loads(store.query("applicationUUID", "sensors")) == {}


@pytest.mark.core
def test_json_store_rejects_unknown_key_and_bad_payload(tmp_path):
    store = JsonDeviceStore((tmp_path / "my.db").as_posix())
    with pytest.raises(StoreError):
        store.update("missing", _payload("aa"))
    with pytest.raises(StoreError):
        store.insert(b"{oops")


@pytest.mark.core
def test_json_store_unreadable_document(tmp_path):
    path = tmp_path / "my.db"
    path.write_text("{broken", encoding="utf-8")
    store = JsonDeviceStore(path.as_posix())
    with pytest.raises(StoreError):
        store.query("applicationUUID", "sensors")


@pytest.mark.core
def test_json_store_on_memory_filesystem():
    store = JsonDeviceStore("memory://edgenode-tests/devices.json")
    key = store.insert(_payload("aa")).decode("utf-8")
    assert key in json.loads(store.query("applicationUUID", "sensors"))


@pytest.mark.core
@pytest.mark.parametrize(
    "document",
    ['{"records": [{"localUUID": "AA:BB"}]}', '[{"localUUID": "AA:BB"}]'],
)
def test_json_store_malformed_document_is_not_overwritten(tmp_path, document):
    path = tmp_path / "my.db"
    path.write_text(document, encoding="utf-8")
    store = JsonDeviceStore(path.as_posix())

    with pytest.raises(StoreError):
        store.query("applicationUUID", "sensors")
    with pytest.raises(StoreError):
        store.insert(_payload("CC:DD"))
    assert path.read_text(encoding="utf-8") == document
