import json

import pytest

from backtester.errors import CustomStrategyNotFoundError, InvalidParameterError
from backtester.storage import CustomStrategyStore

DRAFT = {
    "name": "RSI dip",
    "description": "Buy when RSI < 30",
    "buyRules": [{
        "type": "buy",
        "logic": "and",
        "conditions": [{
            "id": "c1",
            "indicator1": {"type": "RSI", "period": 14},
            "operator": "<",
            "indicator2": {"type": "value", "params": {"value": 30}},
        }],
    }],
    "sellRules": [],
    "parameters": [],
}


def test_save_assigns_id_and_timestamps():
    store = CustomStrategyStore()
    saved = store.save(DRAFT)
    assert saved.id.startswith("custom_")
    assert saved.createdAt and saved.updatedAt
    assert saved.buyRules[0].conditions[0].indicator1.type == "rsi"
    assert store.get(saved.id) == saved
    assert store.get("missing") is None


def test_update_keeps_id(tmp_path):
    store = CustomStrategyStore(str(tmp_path / "s.json"))
    saved = store.save(DRAFT)
    updated = store.update(saved.id, {"name": "Renamed", "id": "hijack"})
    assert updated.id == saved.id
    assert updated.name == "Renamed"
    assert updated.createdAt == saved.createdAt
    with pytest.raises(CustomStrategyNotFoundError):
        store.update("missing", {"name": "x"})


def test_delete_and_clear():
    store = CustomStrategyStore()
    first = store.save(DRAFT)
    store.save(DRAFT)
    store.delete(first.id)
    assert len(store.list()) == 1
    with pytest.raises(CustomStrategyNotFoundError):
        store.delete(first.id)
    store.clear()
    assert store.list() == []


def test_persists_to_disk(tmp_path):
    path = str(tmp_path / "nested" / "strategies.json")
    saved = CustomStrategyStore(path).save(DRAFT)
    reloaded = CustomStrategyStore(path)
    assert [s.id for s in reloaded.list()] == [saved.id]


def test_corrupt_file_treated_as_empty(tmp_path):
    path = tmp_path / "strategies.json"
    path.write_text("{not json")
    assert CustomStrategyStore(str(path)).list() == []


def test_export_import_round_trip():
    source = CustomStrategyStore()
    source.save(DRAFT)
    exported = source.export_json()
    assert isinstance(json.loads(exported), list)

    target = CustomStrategyStore()
    assert target.import_json(exported) == 1
    assert target.list()[0].name == "RSI dip"


@pytest.mark.parametrize("payload", ["{}", "not json", '[{"description": "no name"}]'])
def test_import_rejects_bad_payload(payload):
    with pytest.raises(InvalidParameterError):
        CustomStrategyStore().import_json(payload)
