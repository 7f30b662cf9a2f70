"""Unit tests for the CSV import adapter."""

import pytest

from p2p_recon.core.errors import OrderImportError
from p2p_recon.core.models.enums import OrderSource, Side
from p2p_recon.ingest.csv_import import CsvImportAdapter

HEADER = (
    "Order ID,Side,Status,Token ID,Price,Notify Token Quantity,"
    "Target Nickname,Create Date,Seller Real Name,Buyer Real Name,Amount"
)


@pytest.fixture
def adapter(engine) -> CsvImportAdapter:
    return CsvImportAdapter(engine)


class TestParse:
    def test_three_rows(self) -> None:
        text = "\n".join([
            HEADER,
            "A1,BUY,Order finished,USDT,7.21,100,nick1,2024-01-05T10:00:00Z,Seller A,Buyer A,721.00",
            "A2,sell,Appealing,USDT,7.30,50,nick2,2024-01-06T10:00:00Z,Seller B,Buyer B,365.00",
            "A3,0,Order finished,USDT,7.25,10,nick3,2024-01-07T10:00:00Z,Seller C,Buyer C,72.50",
        ])

        orders = CsvImportAdapter().parse(text)

        assert [o.id for o in orders] == ["A1", "A2", "A3"]
        assert [o.side for o in orders] == [Side.BUY, Side.SELL, Side.BUY]
        assert orders[0].create_date == "2024-01-05T10:00:00.000Z"
        assert orders[1].amount == "365.00"
        assert all(o.source is OrderSource.CSV for o in orders)
        assert all(o.reconciled is False for o in orders)

    def test_header_only_is_rejected(self) -> None:
        with pytest.raises(OrderImportError, match="No valid orders found in CSV"):
            CsvImportAdapter().parse(HEADER + "\n")

    @pytest.mark.parametrize("text", ["", "   \n\n"])
    def test_empty_file_is_rejected(self, text) -> None:
        with pytest.raises(OrderImportError):
            CsvImportAdapter().parse(text)

    def test_quoted_fields_keep_commas(self) -> None:
        text = HEADER + '\nQ1,BUY,Order finished,USDT,7.21,100,nick,2024-01-05,"Doe, John","Roe, Jane","1,000.00"\n'

        (o,) = CsvImportAdapter().parse(text)

        assert o.seller_real_name == "Doe, John"
        assert o.buyer_real_name == "Roe, Jane"
        assert o.amount == "1,000.00"

    def test_unknown_columns_ignored_and_missing_columns_empty(self) -> None:
        text = "Order ID,Side,Remark,Price\nX1,SELL,ignore me,7.00\n"

        (o,) = CsvImportAdapter().parse(text)

        assert o.id == "X1"
        assert o.price == "7.00"
        assert o.status == ""
        assert o.buyer_real_name == ""

    def test_bad_rows_are_skipped(self) -> None:
        text = "\n".join([
            "Order ID,Side",
            ",BUY",
            "B2,HOLD",
            "",
            "B3,SELL",
        ])

        orders = CsvImportAdapter().parse(text)

        assert [o.id for o in orders] == ["B3"]

    def test_unparsable_date_is_kept_verbatim(self) -> None:
        text = "Order ID,Side,Create Date\nD1,BUY,05/01/2024 noon\n"

        (o,) = CsvImportAdapter().parse(text)

        assert o.create_date == "05/01/2024 noon"
        assert o.created_at is None

    def test_byte_order_mark_is_stripped(self) -> None:
        (o,) = CsvImportAdapter().parse("\ufeffOrder ID,Side\nM1,BUY\n")
        assert o.id == "M1"


class TestImportText:
    def test_returns_count_and_merges(self, adapter, engine) -> None:
        res = adapter.import_text("Order ID,Side\nI1,BUY\nI2,SELL\n")

        assert res.message == "Successfully imported orders"
        assert res.imported_count == 2
        assert sorted(o.id for o in engine.merged_orders()) == ["I1", "I2"]

    def test_import_preserves_existing_reconciliation(self, adapter, engine, make_order) -> None:
        engine.ingest([make_order("R1", status="Waiting for buyer to pay")])
        engine.update_reconciliation("R1", reconciled=True, notes="bank ok", actor="alice")

        adapter.import_text("Order ID,Side,Status\nR1,BUY,Order finished\n")
        got = engine.get("R1")

        assert got.status == "Order finished"
        assert got.reconciled is True
        assert got.reconciled_by == "alice"
        assert got.notes == "bank ok"

    def test_failed_import_changes_nothing(self, adapter, engine) -> None:
        with pytest.raises(OrderImportError):
            adapter.import_text(HEADER)

        assert engine.merged_orders() == []

    def test_requires_engine(self) -> None:
        with pytest.raises(RuntimeError):
            CsvImportAdapter().import_text("Order ID,Side\nI1,BUY\n")
