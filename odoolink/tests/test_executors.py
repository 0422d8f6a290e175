"""Tests for the operation executors against the in-memory Odoo."""
import pytest

from odoolink.executors.operations import (
    CALL_SHAPES,
    Operation,
    OperationExecutor,
    OperationRequest,
)
from odoolink.mapping.fields import FieldEntry, FieldMapper, LookupRef
from odoolink.mapping.filters import FilterCondition, FilterExpression
from odoolink.rpc.errors import NotFoundError
from odoolink.tests.fakes import DB, PASSWORD, UID, FakeOdoo


def _partners(odoo: FakeOdoo, n: int = 25):
    return odoo.seed("res.partner", [{"name": f"Partner {i:02d}", "city": "Lyon"} for i in range(n)])


# ---------------------------------------------------------------------------
# Call shapes
# ---------------------------------------------------------------------------

class TestCallShapes:
    def test_every_shape_present(self):
        assert set(CALL_SHAPES) == {
            "create", "read", "search_read", "search_count", "write", "unlink", "workflow",
        }

    def test_read_shape(self):
        assert CALL_SHAPES["read"].build(5, ["name"]) == ([[5]], {"fields": ["name"]})
        assert CALL_SHAPES["read"].build(5, []) == ([[5]], {})

    def test_search_read_shape(self):
        args, kwargs = CALL_SHAPES["search_read"].build([["a", "=", 1]], [], 10, 5)
        assert args == [[["a", "=", 1]]]
        assert kwargs == {"offset": 10, "limit": 5}

    def test_workflow_shape_uses_caller_method(self):
        assert CALL_SHAPES["workflow"].method is None
        assert CALL_SHAPES["workflow"].build(7) == ([7], {})


# ---------------------------------------------------------------------------
# Create / Get
# ---------------------------------------------------------------------------

class TestCreateGet:
    @pytest.mark.asyncio
    async def test_create_then_get_scenario(self, session):
        odoo = FakeOdoo(next_id=42)
        executor = OperationExecutor(odoo, session)

        created = await executor.create("res.partner", [FieldEntry(name="name", value="Acme")])
        assert created == [{"id": 42}]
        assert odoo.calls("create")[0] == [DB, UID, PASSWORD, "res.partner", "create", [{"name": "Acme"}]]

        records = await executor.get("res.partner", 42)
        assert records[0]["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_round_trip_requested_fields(self, executor):
        supplied = {"name": "Globex", "city": "Springfield", "is_company": True}
        created = await executor.create(
            "res.partner", [FieldEntry(name=k, value=v) for k, v in supplied.items()],
        )
        record = (await executor.get("res.partner", created[0]["id"], list(supplied)))[0]
        assert {k: record[k] for k in supplied} == supplied

    @pytest.mark.asyncio
    async def test_get_passes_field_allowlist(self, executor, odoo):
        ids = _partners(odoo, 1)
        await executor.get("res.partner", ids[0], ["name"])
        assert odoo.calls("read")[0][5:] == [[[ids[0]]], {"fields": ["name"]}]

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, executor):
        with pytest.raises(NotFoundError):
            await executor.get("res.partner", 999)

    @pytest.mark.asyncio
    async def test_create_resolves_lookup_before_create(self, session):
        odoo = FakeOdoo(next_id=100)
        odoo.seed("res.country", [{"id": 75, "name": "France"}])
        executor = OperationExecutor(odoo, session)
        await executor.create("res.partner", [
            FieldEntry(name="name", value="Acme"),
            FieldEntry(name="country_id", lookup=LookupRef(resource="res.country", display_value="France")),
        ])
        methods = [args[4] for args in odoo.calls()]
        assert methods == ["name_search", "create"]
        assert odoo.calls("create")[0][5] == [{"name": "Acme", "country_id": 75}]


# ---------------------------------------------------------------------------
# GetAll
# ---------------------------------------------------------------------------

class TestGetAll:
    @pytest.mark.asyncio
    async def test_limit_respected(self, executor, odoo):
        _partners(odoo, 25)
        records = await executor.get_all("res.partner", limit=10)
        assert len(records) == 10

    @pytest.mark.asyncio
    async def test_pages_do_not_overlap(self, executor, odoo):
        _partners(odoo, 25)
        first = await executor.get_all("res.partner", offset=0, limit=10)
        second = await executor.get_all("res.partner", offset=10, limit=10)
        assert not {r["id"] for r in first} & {r["id"] for r in second}

    @pytest.mark.asyncio
    async def test_return_all_matches_filter_exactly(self, executor, odoo):
        _partners(odoo, 30)
        odoo.seed("res.partner", [{"name": "Acme"}, {"name": "Acme"}])
        expr = FilterExpression(conditions=[FilterCondition(field="name", operator="=", value="Acme")])
        records = await executor.get_all("res.partner", expr, return_all=True)
        assert len(records) == 2
        assert all(r["name"] == "Acme" for r in records)

    @pytest.mark.asyncio
    async def test_return_all_single_unbounded_call(self, executor, odoo):
        _partners(odoo, 5)
        await executor.get_all("res.partner", return_all=True)
        calls = odoo.calls()
        assert [c[4] for c in calls] == ["search_read"]
        assert len(calls[0]) == 6  # no kwargs → no limit

    @pytest.mark.asyncio
    async def test_return_all_paged_counts_first(self, odoo, session):
        _partners(odoo, 25)
        executor = OperationExecutor(odoo, session, page_size=10)
        records = await executor.get_all("res.partner", return_all=True)
        assert len(records) == 25
        assert len({r["id"] for r in records}) == 25
        assert [c[4] for c in odoo.calls()] == ["search_count", "search_read", "search_read", "search_read"]

    @pytest.mark.asyncio
    async def test_or_filter(self, executor, odoo):
        odoo.seed("res.partner", [{"name": "A"}, {"name": "B"}, {"name": "C"}])
        expr = FilterExpression(combinator="or", conditions=[
            FilterCondition(field="name", value="A"),
            FilterCondition(field="name", value="C"),
        ])
        records = await executor.get_all("res.partner", expr, return_all=True)
        assert sorted(r["name"] for r in records) == ["A", "C"]


# ---------------------------------------------------------------------------
# Update / Delete
# ---------------------------------------------------------------------------

class TestUpdateDelete:
    @pytest.mark.asyncio
    async def test_update_returns_id_merged_with_fields(self, executor, odoo):
        ids = _partners(odoo, 1)
        result = await executor.update("res.partner", ids[0], [FieldEntry(name="city", value="Paris")])
        assert result == [{"id": ids[0], "city": "Paris"}]
        assert odoo.tables["res.partner"][ids[0]]["city"] == "Paris"
        assert odoo.calls("write")[0][5] == [[ids[0]], {"city": "Paris"}]

    @pytest.mark.asyncio
    async def test_update_result_keeps_real_id(self, executor, odoo):
        ids = _partners(odoo, 1)
        result = await executor.update(
            "res.partner", ids[0], [FieldEntry(name="id", value=999), FieldEntry(name="city", value="Paris")],
        )
        assert result[0]["id"] == ids[0]
        assert result[0]["city"] == "Paris"

    @pytest.mark.asyncio
    async def test_update_requires_fields(self, executor):
        with pytest.raises(ValueError):
            await executor.update("res.partner", 1, [])

    @pytest.mark.asyncio
    async def test_update_missing_record(self, executor):
        with pytest.raises(NotFoundError):
            await executor.update("res.partner", 404, [FieldEntry(name="city", value="Paris")])

    @pytest.mark.asyncio
    async def test_delete_then_get_not_found(self, executor, odoo):
        ids = _partners(odoo, 1)
        assert await executor.delete("res.partner", ids[0]) == [{"id": ids[0], "success": True}]
        with pytest.raises(NotFoundError):
            await executor.get("res.partner", ids[0])

    @pytest.mark.asyncio
    async def test_delete_missing_record(self, executor):
        with pytest.raises(NotFoundError):
            await executor.delete("res.partner", 404)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

class TestWorkflow:
    @pytest.mark.asyncio
    async def test_action_confirm_scenario(self, executor, odoo):
        result = await executor.workflow("sale.order", 7, "action_confirm")
        assert odoo.calls("action_confirm")[0] == [DB, UID, PASSWORD, "sale.order", "action_confirm", [7]]
        assert result == [{"id": 7}]

    @pytest.mark.asyncio
    async def test_true_result_is_no_payload(self, executor, odoo):
        odoo.methods[("sale.order", "action_cancel")] = lambda ids: True
        assert await executor.workflow("sale.order", 7, "action_cancel") == [{"id": 7}]

    @pytest.mark.asyncio
    async def test_dict_result_passed_through(self, executor, odoo):
        action = {"type": "ir.actions.act_window", "res_model": "account.move", "res_id": 12}
        odoo.methods[("sale.order", "action_view_invoice")] = lambda ids: action
        assert await executor.workflow("sale.order", 7, "action_view_invoice") == [action]

    @pytest.mark.asyncio
    async def test_scalar_result_wrapped(self, executor, odoo):
        odoo.methods[("sale.order", "amount_due")] = lambda ids: 99.5
        assert await executor.workflow("sale.order", 7, "amount_due") == [{"id": 7, "result": 99.5}]


# ---------------------------------------------------------------------------
# execute() dispatch
# ---------------------------------------------------------------------------

class TestExecuteDispatch:
    @pytest.mark.asyncio
    async def test_request_from_host_shapes(self, executor, odoo):
        req = OperationRequest.model_validate({
            "resource": "res.partner",
            "operation": "create",
            "fields": {"fields": [{"fieldName": "name", "fieldValue": "Acme"}]},
        })
        created = await executor.execute(req)
        req = OperationRequest.model_validate({
            "resource": "res.partner",
            "operation": "getAll",
            "filter": [["name", "=", "Acme"]],
            "return_all": True,
        })
        records = await executor.execute(req)
        assert [r["id"] for r in records] == [created[0]["id"]]

    @pytest.mark.asyncio
    async def test_string_id_coerced(self, executor, odoo):
        ids = _partners(odoo, 1)
        req = OperationRequest(resource="res.partner", operation=Operation.GET, record_id=str(ids[0]))
        records = await executor.execute(req)
        assert records[0]["id"] == ids[0]

    @pytest.mark.asyncio
    async def test_missing_id_rejected(self, executor):
        with pytest.raises(ValueError, match="record id"):
            await executor.execute(OperationRequest(resource="res.partner", operation="delete"))

    @pytest.mark.asyncio
    async def test_workflow_requires_method(self, executor):
        with pytest.raises(ValueError, match="method"):
            await executor.execute(OperationRequest(resource="sale.order", operation="workflow", record_id=7))

    @pytest.mark.asyncio
    async def test_injected_mapper_used(self, odoo, session):
        class Resolver:
            async def resolve(self, resource, display_value):
                return 501

        executor = OperationExecutor(odoo, session, field_mapper=FieldMapper(Resolver()))
        await executor.create("res.partner", [
            FieldEntry(name="parent_id", lookup=LookupRef(resource="res.partner", display_value="HQ")),
        ])
        assert odoo.calls("create")[0][5] == [{"parent_id": 501}]
        assert odoo.calls("name_search") == []
