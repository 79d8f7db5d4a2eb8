import pytest

from likeus_store.events import EVENT_NAMES, ChangeEvent, EventBus, event_name


class TestEventBus:
    def test_handlers_run_in_registration_order(self, bus):
        calls = []
        bus.on("productCreated", lambda record: calls.append(("first", record["_id"])))
        bus.on("productCreated", lambda record: calls.append(("second", record["_id"])))

        bus.emit("productCreated", {"_id": "p1"})

        assert calls == [("first", "p1"), ("second", "p1")]

    def test_emit_only_reaches_matching_name(self, bus):
        calls = []
        bus.on("orderCreated", calls.append)

        bus.emit("orderUpdated", {"_id": "o1"})

        assert calls == []

    def test_off_removes_by_reference(self, bus):
        calls = []

        def handler(record):
            calls.append(record)

        bus.on("userUpdated", handler)
        bus.on("userUpdated", lambda record: calls.append("other"))
        bus.off("userUpdated", handler)
        bus.emit("userUpdated", {"_id": "u1"})

        assert calls == ["other"]

    def test_off_with_bound_method(self, bus):
        class Listener:
            def __init__(self):
                self.seen = []

            def handle(self, record):
                self.seen.append(record)

        listener = Listener()
        bus.on("orderCreated", listener.handle)
        bus.off("orderCreated", listener.handle)
        bus.emit("orderCreated", {"_id": "o1"})

        assert listener.seen == []
        assert bus.listener_count("orderCreated") == 0

    def test_failing_handler_does_not_block_siblings(self, bus, caplog):
        calls = []

        def broken(record):
            raise RuntimeError("boom")

        bus.on("productUpdated", broken)
        bus.on("productUpdated", calls.append)

        bus.emit("productUpdated", {"_id": "p1"})

        assert calls == [{"_id": "p1"}]
        assert "failed while handling productUpdated" in caplog.text

    def test_handler_unsubscribing_during_emit(self, bus):
        calls = []

        def once(record):
            calls.append("once")
            bus.off("productDeleted", once)

        bus.on("productDeleted", once)
        bus.on("productDeleted", lambda record: calls.append("always"))

        bus.emit("productDeleted", {})
        bus.emit("productDeleted", {})

        assert calls == ["once", "always", "always"]

    def test_unknown_event_names_are_rejected(self, bus):
        with pytest.raises(ValueError):
            bus.on("productExploded", lambda record: None)
        with pytest.raises(ValueError):
            bus.emit("cartUpdated")

    def test_publish_dispatches_change_event_payload(self, bus):
        calls = []
        bus.on("orderDeleted", calls.append)

        bus.publish(ChangeEvent("deleted", "order", {"_id": "o1"}))

        assert calls == [{"_id": "o1"}]


def test_event_names_cover_every_kind_and_entity():
    assert event_name("created", "user") == "userCreated"
    assert ChangeEvent("updated", "product", {}).name == "productUpdated"
    assert {
        "userCreated",
        "userUpdated",
        "productCreated",
        "productUpdated",
        "productDeleted",
        "orderCreated",
        "orderUpdated",
    } <= EVENT_NAMES
    with pytest.raises(ValueError):
        event_name("archived", "user")
