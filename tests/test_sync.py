"""Unit tests for the sync coordinator."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from helper import FakeBybit, raw_order
from p2p_recon.core.errors import RemoteError, TransportError
from p2p_recon.core.models.enums import OrderSource, Side, SyncState
from p2p_recon.core.models.order import FilterCriteria
from p2p_recon.core.recon.fixtures import demo_orders
from p2p_recon.core.recon.sync import SyncCoordinator


class TestDemoMode:
    def test_no_client_loads_demo_and_succeeds(self, engine) -> None:
        coord = SyncCoordinator(engine=engine, client=None)

        res = coord.run(tolerant=False)

        assert res.ok
        assert res.state is SyncState.SUCCEEDED
        assert res.source == "demo"
        assert res.new_orders > 0
        assert res.fallback_used is False
        assert all(o.source is OrderSource.DEMO for o in engine.merged_orders())

    def test_repeated_demo_passes_do_not_accumulate(self, engine) -> None:
        coord = SyncCoordinator(engine=engine, client=None)
        coord.run()
        coord.run()

        assert len(engine.merged_orders()) == len(demo_orders())

    def test_demo_dataset_is_deterministic(self) -> None:
        now = datetime(2024, 1, 5, 12, tzinfo=timezone.utc)
        a = [o.to_dict() for o in demo_orders(now=now)]
        b = [o.to_dict() for o in demo_orders(now=now)]

        assert a == b
        assert len({o["id"] for o in a}) == len(a)
        assert all(not o["reconciled"] and o["reconciled_by"] is None for o in a)


class TestLiveSync:
    def test_fetch_normalize_merge(self, engine) -> None:
        client = FakeBybit([raw_order("1"), raw_order("2", side=1)])
        coord = SyncCoordinator(engine=engine, client=client)

        res = coord.run(tolerant=False)

        assert res.source == "api"
        assert res.new_orders == 2
        assert sorted(client.detail_calls) == ["1", "2"]
        assert engine.get("2").side is Side.SELL

    def test_detail_failure_falls_back_to_list_item(self, engine) -> None:
        client = FakeBybit(
            [raw_order("1"), raw_order("2"), raw_order("3")],
            details={"1": raw_order("1", status=10)},
            failing_details={"2"},
        )
        coord = SyncCoordinator(engine=engine, client=client)

        res = coord.run(tolerant=False)

        assert res.new_orders == 3
        assert engine.get("1").status == "Waiting for buyer to pay"
        assert engine.get("2").status == "Order finished"

    def test_walks_pages_until_total(self, engine) -> None:
        client = FakeBybit([raw_order(str(i)) for i in range(5)])
        coord = SyncCoordinator(engine=engine, client=client, pages=10, page_size=2)

        res = coord.run()

        assert res.new_orders == 5
        assert client.list_calls == [(1, 2), (2, 2), (3, 2)]

    def test_success_discards_demo_records(self, engine) -> None:
        SyncCoordinator(engine=engine, client=None).run()
        coord = SyncCoordinator(engine=engine, client=FakeBybit([raw_order("1")]))

        coord.run()

        assert [o.id for o in engine.merged_orders()] == ["1"]

    def test_resync_preserves_reconciliation(self, engine) -> None:
        client = FakeBybit([raw_order("1", status=10)])
        coord = SyncCoordinator(engine=engine, client=client)
        coord.run()
        engine.update_reconciliation("1", reconciled=True, notes="ok", actor="alice")

        client.items = [raw_order("1", status=50)]
        coord.run()
        got = engine.query(FilterCriteria(reconciled=True)).orders

        assert [o.id for o in got] == ["1"]
        assert got[0].status == "Order finished"
        assert got[0].reconciled_by == "alice"


class TestFailures:
    @pytest.mark.parametrize("err", [TransportError("down"), RemoteError(10002, "timestamp expired")])
    def test_strict_pass_surfaces_error(self, engine, err) -> None:
        coord = SyncCoordinator(engine=engine, client=FakeBybit(list_error=err))

        with pytest.raises(TransportError):
            coord.run(tolerant=False)

        assert engine.merged_orders() == []

    def test_tolerant_pass_falls_back(self, engine) -> None:
        coord = SyncCoordinator(engine=engine, client=FakeBybit(list_error=TransportError("down")))

        res = coord.run(tolerant=True)

        assert res.ok
        assert res.fallback_used is True
        assert res.source == "fallback"
        assert "down" in res.error
        assert res.new_orders == len(demo_orders())

    def test_fallback_branch_is_observable(self, engine) -> None:
        coord = SyncCoordinator(engine=engine, client=FakeBybit([raw_order("1")]))
        coord._fallback = Mock(wraps=coord._fallback)

        coord.run(tolerant=True)
        coord._fallback.assert_not_called()

        coord.client.list_error = TransportError("down")
        coord.run(tolerant=True)
        coord._fallback.assert_called_once()

    def test_failed_pass_does_not_poison_next(self, engine) -> None:
        client = FakeBybit([raw_order("1")], list_error=TransportError("down"))
        coord = SyncCoordinator(engine=engine, client=client)
        with pytest.raises(TransportError):
            coord.run(tolerant=False)

        client.list_error = None
        res = coord.run(tolerant=False)

        assert res.ok
        assert res.source == "api"

    def test_unexpected_errors_are_not_swallowed(self, engine) -> None:
        client = FakeBybit([raw_order("1")])
        client.orders = Mock(side_effect=KeyError("bug"))
        coord = SyncCoordinator(engine=engine, client=client)

        with pytest.raises(KeyError):
            coord.run(tolerant=True)


    @pytest.mark.parametrize("count", ["n/a", None, {"x": 1}, -3])
    def test_unusable_count_pages_until_empty(self, engine, count) -> None:
        client = FakeBybit([raw_order("1"), raw_order("2")])
        client.orders = Mock(side_effect=[
            {"items": [raw_order("1"), raw_order("2")], "count": count},
            {"items": [], "count": count},
        ])
        coord = SyncCoordinator(engine=engine, client=client, pages=5)

        res = coord.run(tolerant=True)

        assert res.source == "api"
        assert res.new_orders == 2
        assert client.orders.call_count == 2

    @pytest.mark.parametrize("result", [[], "oops", {"items": "oops"}, {"items": ["x", raw_order("1")]}])
    def test_malformed_list_payload_does_not_crash(self, engine, result) -> None:
        client = FakeBybit([raw_order("1")])
        client.orders = Mock(return_value=result)
        coord = SyncCoordinator(engine=engine, client=client)

        res = coord.run(tolerant=True)

        assert res.ok
        assert res.source == "api"
        assert all(o.id == "1" for o in res.orders)

    def test_fallback_after_live_sync_keeps_demo_out(self, engine) -> None:
        client = FakeBybit([raw_order("1")])
        coord = SyncCoordinator(engine=engine, client=client)
        coord.run()

        client.list_error = TransportError("down")
        res = coord.run(tolerant=True)

        assert res.fallback_used is True
        assert res.new_orders == 0
        assert [o.id for o in res.orders] == ["1"]
        assert [o.id for o in engine.merged_orders()] == ["1"]


class TestFetchDetail:
    def test_fetch_detail_merges(self, engine) -> None:
        coord = SyncCoordinator(engine=engine, client=FakeBybit([raw_order("7")]))

        got = coord.fetch_detail("7")

        assert got.id == "7"
        assert engine.get("7").id == "7"

    def test_fetch_detail_without_client(self, engine) -> None:
        with pytest.raises(TransportError):
            SyncCoordinator(engine=engine).fetch_detail("7")
