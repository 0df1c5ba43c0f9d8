import json

from shared.storage import keys
from shared.storage.state_publisher import DurableStatePublisher
from shared.storage.state_store import BOTH_TIERS, PersistentStore, Tier


def test_reads_prefer_session_then_durable(store):
    store.set("k", "durable", tiers=(Tier.DURABLE,))
    assert store.get("k") == "durable"

    store.set("k", "session", tiers=(Tier.SESSION,))
    assert store.get("k") == "session"
    assert store.get("k", tier=Tier.DURABLE) == "durable"


def test_durable_tier_survives_reload(tmp_path):
    path = tmp_path / "durable.json"
    first = PersistentStore(path)
    first.set(keys.ACTIVE_PACKAGE_IDS, ["7", "9"], tiers=BOTH_TIERS)
    first.set("session-only", 1, tiers=(Tier.SESSION,))

    second = PersistentStore(path)
    assert second.get_list(keys.ACTIVE_PACKAGE_IDS) == ["7", "9"]
    assert second.get("session-only") is None
    assert json.loads(path.read_text(encoding="utf-8"))[keys.ACTIVE_PACKAGE_IDS] == ["7", "9"]


def test_values_are_copied_on_read_and_write(store):
    value = {"a": [1]}
    store.set("obj", value)
    value["a"].append(2)

    read = store.get("obj")
    read["a"].append(3)
    assert store.get("obj") == {"a": [1]}


def test_typed_accessors_decode_json_strings_and_default(store):
    store.set("as_text", '{"results": []}')
    store.set("list_text", "[1, 2]")
    store.set("broken", "{not json")
    store.set("number", 42)

    assert store.get_dict("as_text") == {"results": []}
    assert store.get_list("list_text") == [1, 2]
    assert store.get_dict("broken") == {}
    assert store.get_list("number") == []
    assert store.get_str("number") == "42"
    assert store.get_str("missing", "fallback") == "fallback"


def test_remove_and_contains(store):
    store.set("k", 1)
    assert store.contains("k")
    store.remove("k", tiers=(Tier.SESSION,))
    assert store.contains("k", tier=Tier.DURABLE)
    store.remove("k")
    assert not store.contains("k")


def test_unreadable_durable_document_starts_empty(tmp_path):
    path = tmp_path / "durable.json"
    path.write_text("[1, 2", encoding="utf-8")
    assert DurableStatePublisher(path).load() == {}

    path.write_text("[]", encoding="utf-8")
    assert PersistentStore(path).snapshot(Tier.DURABLE) == {}
