"""
Tests for AHS warranty settings and invoice creation
"""
from datetime import datetime, timezone

import pytest

from fakes import FakeAPIError, FakeSupabase, unique_violation
from intelliservice.services.ahs_invoices import (
    MAX_INVOICE_NUMBER_ATTEMPTS,
    AHSInvoiceService,
    build_ahs_line_items,
    build_customer_line_items,
    next_invoice_number,
    parse_billing_breakdown,
    split_line_items_by_payer,
)
from intelliservice.services.ahs_settings import (
    AHSSettingsService,
    parse_ahs_defaults,
    setting_display_name,
    validate_settings,
)

JUNE_15 = datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def ahs_db(ahs_settings_rows):
    db = FakeSupabase({
        "accounting_settings": ahs_settings_rows + [
            {"setting_key": "ahs_bill_to_customer_id", "setting_value": "ahs-customer"},
        ],
        "tickets": [
            {"id": "t1", "ticket_number": "TKT-100", "customer_id": "cust-9", "ahs_dispatch_number": "D-555"},
            {"id": "t2", "ticket_number": "TKT-101", "customer_id": "cust-9", "ahs_dispatch_number": None},
        ],
        "estimate_line_items": [
            {"description": "Compressor", "item_type": "part", "quantity": 1, "unit_price": 200,
             "line_total": 200, "part_id": "p1", "payer_type": "AHS", "estimate": {"ticket_id": "t1"}},
            {"description": "Labor", "item_type": "labor", "quantity": 2, "unit_price": 25,
             "line_total": 50, "part_id": None, "payer_type": "AHS", "estimate": {"ticket_id": "t1"}},
            {"description": "Surge protector", "item_type": "part", "quantity": None, "unit_price": "80",
             "line_total": "80", "part_id": "p2", "payer_type": "CUSTOMER", "estimate": {"ticket_id": "t1"}},
            {"description": "Other ticket", "item_type": "part", "quantity": 1, "unit_price": 10,
             "line_total": 10, "part_id": None, "payer_type": "AHS", "estimate": {"ticket_id": "t2"}},
        ],
        "invoices": [
            {"id": "old-1", "invoice_number": "INV-2406-0007", "customer_id": "x"},
            {"id": "old-2", "invoice_number": "INV-2405-0099", "customer_id": "x"},
        ],
    })
    db.unique_columns["invoices"] = "invoice_number"
    db.rpc_handlers["fn_get_ahs_billing_breakdown"] = lambda params: [{
        "ahs_total": 344, "customer_total": 80, "diagnosis_fee": 94,
        "ahs_labor": 50, "ahs_parts": 200, "customer_labor": 0, "customer_parts": 80,
    }]
    return db


class TestAHSSettings:
    """Test AHS default parsing and validation"""

    def test_parse_defaults_falls_back(self):
        defaults = parse_ahs_defaults([
            {"setting_key": "ahs_default_diagnosis_fee", "setting_value": "0"},
            {"setting_key": "ahs_default_labor_rate", "setting_value": "abc"},
            {"setting_key": "ahs_bill_to_customer_id", "setting_value": "  "},
        ])
        assert defaults.diagnosis_fee == 94.0
        assert defaults.labor_rate == 94.0
        assert defaults.bill_to_customer_id is None

    def test_parse_defaults_reads_values(self):
        defaults = parse_ahs_defaults([
            {"setting_key": "ahs_default_diagnosis_fee", "setting_value": "125.50"},
            {"setting_key": "ahs_bill_to_customer_id", "setting_value": "ahs-1"},
        ])
        assert defaults.diagnosis_fee == 125.5
        assert defaults.bill_to_customer_id == "ahs-1"

    def test_validate_settings(self):
        assert validate_settings(94, 94) == []
        errors = validate_settings(diagnosis_fee=-1, labor_rate=2000)
        assert len(errors) == 2

    def test_display_names(self):
        assert setting_display_name("ahs_default_labor_rate") == "Default Labor Rate/Hour"
        assert setting_display_name("something_else") == "something_else"

    @pytest.mark.asyncio
    async def test_get_defaults(self, ahs_db):
        defaults = await AHSSettingsService(ahs_db).get_defaults()
        assert defaults.diagnosis_fee == 94.0
        assert defaults.bill_to_customer_id == "ahs-customer"

    @pytest.mark.asyncio
    async def test_get_defaults_propagates_errors(self, ahs_db):
        ahs_db.fail("accounting_settings", "select")
        with pytest.raises(FakeAPIError):
            await AHSSettingsService(ahs_db).get_defaults()

    @pytest.mark.asyncio
    async def test_update_setting_writes_audit_log(self, ahs_db):
        service = AHSSettingsService(ahs_db)

        await service.update_setting("ahs_default_diagnosis_fee", "110", "user-1")

        row = next(r for r in ahs_db.rows("accounting_settings")
                   if r["setting_key"] == "ahs_default_diagnosis_fee")
        assert row["setting_value"] == "110"
        assert row["updated_by"] == "user-1"

        audit = ahs_db.rows("ahs_audit_log")[0]
        assert audit["action"] == "setting_updated"
        assert audit["old_value"] == {"key": "ahs_default_diagnosis_fee", "value": "94.00"}
        assert audit["new_value"] == {"key": "ahs_default_diagnosis_fee", "value": "110"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key,value", [
        ("ahs_unknown", "1"),
        ("ahs_default_labor_rate", "fast"),
        ("ahs_default_diagnosis_fee", "-5"),
    ])
    async def test_update_setting_rejects_bad_input(self, ahs_db, key, value):
        with pytest.raises(ValueError):
            await AHSSettingsService(ahs_db).update_setting(key, value, "user-1")
        assert ahs_db.rows("ahs_audit_log") == []

    @pytest.mark.asyncio
    async def test_settings_history(self):
        db = FakeSupabase({"ahs_audit_log": [
            {"id": "a1", "entity_type": "settings", "action": "setting_updated",
             "old_value": {"key": "ahs_default_labor_rate", "value": "94"},
             "new_value": {"key": "ahs_default_labor_rate", "value": "99"},
             "performer": {"full_name": "Pat Office"}, "performed_at": "2024-06-01T10:00:00Z"},
            {"id": "a2", "entity_type": "settings", "action": "setting_updated",
             "old_value": None, "new_value": {"key": "ahs_bill_to_customer_id", "value": "c1"},
             "performer": None, "performed_at": "2024-06-02T10:00:00Z"},
            {"id": "a3", "entity_type": "ticket", "action": "ahs_invoice_created",
             "performed_at": "2024-06-03T10:00:00Z"},
        ]})

        history = await AHSSettingsService(db).get_settings_history()

        assert [h.id for h in history] == ["a2", "a1"]
        assert history[0].old_value is None
        assert history[0].changed_by == "Unknown"
        assert history[1].changed_by == "Pat Office"
        assert history[1].new_value == "99"

    @pytest.mark.asyncio
    async def test_settings_history_error_is_empty(self):
        db = FakeSupabase()
        db.fail("ahs_audit_log", "select")
        assert await AHSSettingsService(db).get_settings_history() == []


class TestInvoiceHelpers:
    """Test invoice numbering and line building"""

    def test_next_invoice_number(self):
        assert next_invoice_number(None, datetime(2024, 1, 15)) == "INV-2401-0001"
        assert next_invoice_number("INV-2401-0042", datetime(2024, 1, 15)) == "INV-2401-0043"
        assert next_invoice_number("INV-2401-abc", datetime(2024, 1, 15)) == "INV-2401-0001"

    def test_ahs_lines_start_with_diagnosis_fee(self):
        items = [{"description": "Part", "line_total": 20}, {"description": "Labor", "line_total": 30}]

        lines = build_ahs_line_items("t1", 94, items)

        assert [line["description"] for line in lines] == ["AHS Diagnosis Fee", "Part", "Labor"]
        assert [line["sort_order"] for line in lines] == [0, 1, 2]
        assert all(line["payer_type"] == "AHS" for line in lines)

    def test_no_diagnosis_fee_line_when_zero(self):
        lines = build_ahs_line_items("t1", 0, [{"description": "Part", "line_total": 20}])
        assert len(lines) == 1
        assert lines[0]["sort_order"] == 0

    def test_customer_lines_default_quantity(self):
        lines = build_customer_line_items("t1", [{"description": "Part", "quantity": None, "unit_price": "5"}])
        assert lines[0]["quantity"] == 1
        assert lines[0]["unit_price"] == 5
        assert lines[0]["payer_type"] == "CUSTOMER"

    def test_split_by_payer(self):
        split = split_line_items_by_payer([
            {"payer_type": "AHS"}, {"payer_type": "CUSTOMER"}, {"payer_type": "AHS"}, {"payer_type": None},
        ])
        assert len(split["AHS"]) == 2
        assert len(split["CUSTOMER"]) == 1

    def test_parse_billing_breakdown(self):
        assert parse_billing_breakdown([{"ahs_total": "10.5"}]).ahs_total == 10.5
        assert parse_billing_breakdown(None).ahs_total == 0
        assert parse_billing_breakdown([]).diagnosis_fee == 0


class TestAHSInvoiceService:
    """Test invoice creation against the in-memory database"""

    @pytest.mark.asyncio
    async def test_create_ahs_invoice(self, ahs_db):
        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert result.success
        assert result.invoice_number == "INV-2406-0008"

        invoice = next(i for i in ahs_db.rows("invoices") if i["id"] == result.invoice_id)
        assert invoice["customer_id"] == "ahs-customer"
        assert invoice["total"] == 344
        assert invoice["status"] == "draft"
        assert invoice["notes"] == "AHS Warranty - Dispatch #D-555 - Ticket TKT-100"

        lines = ahs_db.rows("invoice_line_items")
        assert [line["description"] for line in lines] == ["AHS Diagnosis Fee", "Compressor", "Labor"]
        assert all(line["invoice_id"] == result.invoice_id for line in lines)

        audit = ahs_db.rows("ahs_audit_log")[0]
        assert audit["action"] == "ahs_invoice_created"
        assert audit["new_value"]["invoice_number"] == "INV-2406-0008"

    @pytest.mark.asyncio
    async def test_bill_to_customer_required(self, ahs_db):
        ahs_db.tables["accounting_settings"] = [
            r for r in ahs_db.rows("accounting_settings") if r["setting_key"] != "ahs_bill_to_customer_id"
        ]

        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert not result.success
        assert "Bill-To" in result.error
        assert len(ahs_db.rows("invoices")) == 2

    @pytest.mark.asyncio
    async def test_missing_ticket(self, ahs_db):
        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("nope", "user-1", now=JUNE_15)
        assert result.error == "Ticket not found"

    @pytest.mark.asyncio
    async def test_invoice_number_collision_is_retried(self, ahs_db):
        ahs_db.fail("invoices", "insert", unique_violation())

        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert result.success
        assert result.invoice_number == "INV-2406-0008"
        assert [call for call in ahs_db.calls if call == ("invoices", "insert")] == [("invoices", "insert")] * 2

    @pytest.mark.asyncio
    async def test_invoice_number_attempts_exhausted(self, ahs_db):
        ahs_db.fail("invoices", "insert", unique_violation(), times=MAX_INVOICE_NUMBER_ATTEMPTS)

        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert not result.success
        assert "Could not allocate" in result.error
        assert ahs_db.rows("invoice_line_items") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("existing,expected", [
        (["INV-2406-9998", "INV-2406-9999"], "INV-2406-10000"),
        (["INV-2406-9999", "INV-2406-10000"], "INV-2406-10001"),
        (["INV-2406-9999", "INV-2406-10000", "INV-2406-10012"], "INV-2406-10013"),
    ])
    async def test_sequence_past_four_digits(self, ahs_db, existing, expected):
        ahs_db.tables["invoices"] = [
            {"id": f"old-{n}", "invoice_number": number, "customer_id": "x"}
            for n, number in enumerate(existing)
        ]

        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert result.success
        assert result.invoice_number == expected
        assert ahs_db.calls.count(("invoices", "insert")) == 1

    @pytest.mark.asyncio
    async def test_other_insert_errors_are_not_retried(self, ahs_db):
        ahs_db.fail("invoices", "insert")

        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert not result.success
        assert ahs_db.calls.count(("invoices", "insert")) == 1

    @pytest.mark.asyncio
    async def test_line_item_failure_removes_invoice(self, ahs_db):
        ahs_db.fail("invoice_line_items", "insert")

        result = await AHSInvoiceService(ahs_db).create_ahs_invoice("t1", "user-1", now=JUNE_15)

        assert not result.success
        assert "line items" in result.error
        assert [i["id"] for i in ahs_db.rows("invoices")] == ["old-1", "old-2"]
        assert ahs_db.rows("ahs_audit_log") == []

    @pytest.mark.asyncio
    async def test_create_customer_invoice(self, ahs_db):
        result = await AHSInvoiceService(ahs_db).create_customer_invoice("t1", "user-1", now=JUNE_15)

        assert result.success
        invoice = next(i for i in ahs_db.rows("invoices") if i["id"] == result.invoice_id)
        assert invoice["customer_id"] == "cust-9"
        assert invoice["total"] == 80
        assert invoice["notes"] == "Customer responsibility - AHS Warranty Ticket TKT-100"
        assert ahs_db.rows("ahs_audit_log")[0]["action"] == "customer_invoice_created"

    @pytest.mark.asyncio
    async def test_customer_invoice_needs_items(self, ahs_db):
        result = await AHSInvoiceService(ahs_db).create_customer_invoice("t2", "user-1", now=JUNE_15)
        assert result.error == "No customer-billable items found"

    @pytest.mark.asyncio
    async def test_billing_breakdown_error_is_zeroed(self):
        breakdown = await AHSInvoiceService(FakeSupabase()).get_billing_breakdown("t1")
        assert breakdown.ahs_total == 0
        assert breakdown.diagnosis_fee == 0

    @pytest.mark.asyncio
    async def test_ticket_invoices_split_by_bill_to(self, ahs_db):
        ahs_db.tables["invoices"] = [
            {"id": "i1", "customer_id": "ahs-customer", "source_ticket_id": "t1", "created_at": "2024-06-01"},
            {"id": "i2", "customer_id": "cust-9", "ticket_id": "t1", "created_at": "2024-06-02"},
            {"id": "i3", "customer_id": "cust-9", "ticket_id": "t2", "created_at": "2024-06-03"},
        ]

        invoices = await AHSInvoiceService(ahs_db).get_ticket_invoices("t1")

        assert [i["id"] for i in invoices["ahs_invoices"]] == ["i1"]
        assert [i["id"] for i in invoices["customer_invoices"]] == ["i2"]
