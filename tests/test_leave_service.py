"""Tests for the leave workflow."""

from datetime import date

import pytest
from sqlalchemy import func, select

from hr_workflows.actors import ManagerActor
from hr_workflows.errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from hr_workflows.models import LeaveRequest
from hr_workflows.services.leave_service import LeaveService

from .conftest import EMPLOYEE_ID, MANAGER_ID, OTHER_EMPLOYEE_ID, OTHER_MANAGER_ID

pytestmark = pytest.mark.asyncio


def leave_payload(leave_type, start, end, reason=None):
    return {
        "leave_type_id": leave_type.id,
        "start_date": start,
        "end_date": end,
        "reason": reason,
    }


async def request_count(runner) -> int:
    return await runner.read(
        lambda wf: _scalar(wf.session, select(func.count()).select_from(LeaveRequest))
    )


async def _scalar(session, stmt):
    return (await session.execute(stmt)).scalar_one()


class TestLeaveCatalog:
    """Leave types and manager mappings are HR admin operations."""

    @pytest.mark.parametrize("actor_name", ["manager", "employee"])
    async def test_create_leave_type_is_hr_admin_only(self, runner, request, actor_name):
        """Managers and employees cannot create leave types."""
        actor = request.getfixturevalue(actor_name)

        with pytest.raises(ForbiddenError):
            await runner.run(
                lambda wf: wf.leave.create_leave_type(actor, {"name": "Annual", "paid": True})
            )

        assert await runner.read(lambda wf: wf.leave.list_leave_types()) == []

    async def test_create_leave_type_trims_name(self, runner, admin):
        result = await runner.run(
            lambda wf: wf.leave.create_leave_type(
                admin, {"name": "  Sick  ", "paid": True, "annualLimit": 8}
            )
        )

        assert result.value.name == "Sick"
        assert result.value.annual_limit == 8
        assert result.value.id == "lt_1"

    async def test_blank_leave_type_name_is_invalid(self, runner, admin):
        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.create_leave_type(admin, {"name": "   ", "paid": False})
            )

    async def test_list_leave_types_ordered_by_name(self, runner, admin):
        for name in ("Sick", "Annual", "Unpaid"):
            await runner.run(
                lambda wf, name=name: wf.leave.create_leave_type(
                    admin, {"name": name, "paid": name != "Unpaid"}
                )
            )

        types = await runner.read(lambda wf: wf.leave.list_leave_types())

        assert [t.name for t in types] == ["Annual", "Sick", "Unpaid"]

    async def test_set_manager_map_replaces_previous(self, runner, admin):
        await runner.run(
            lambda wf: wf.leave.set_manager_map(
                admin, {"employeeId": EMPLOYEE_ID, "managerId": MANAGER_ID}
            )
        )
        result = await runner.run(
            lambda wf: wf.leave.set_manager_map(
                admin, {"employeeId": EMPLOYEE_ID, "managerId": OTHER_MANAGER_ID}
            )
        )

        assert result.value.manager_id == OTHER_MANAGER_ID

    async def test_set_manager_map_is_hr_admin_only(self, runner, manager):
        with pytest.raises(ForbiddenError):
            await runner.run(
                lambda wf: wf.leave.set_manager_map(
                    manager, {"employee_id": EMPLOYEE_ID, "manager_id": MANAGER_ID}
                )
            )


class TestAllocations:
    async def test_unknown_leave_type_is_invalid(self, runner, admin):
        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.allocate_leave(
                    admin,
                    {"employee_id": EMPLOYEE_ID, "leave_type_id": "lt_missing", "allocated": 5},
                )
            )

    async def test_negative_allocation_is_invalid(self, runner, admin, annual_leave):
        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.allocate_leave(
                    admin,
                    {"employee_id": EMPLOYEE_ID, "leave_type_id": annual_leave.id, "allocated": -1},
                )
            )

    async def test_reallocation_keeps_used_days(self, runner, admin, employee, manager, annual_leave):
        """Re-allocating replaces allocated and keeps used."""
        submitted = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(annual_leave, date(2026, 3, 2), date(2026, 3, 3))
            )
        )
        await runner.run(
            lambda wf: wf.leave.decide_request(
                manager, {"request_id": submitted.value.id, "decision": "Approved"}
            )
        )

        result = await runner.run(
            lambda wf: wf.leave.allocate_leave(
                admin,
                {"employee_id": EMPLOYEE_ID, "leave_type_id": annual_leave.id, "allocated": 20},
            )
        )

        assert result.value.allocated == 20
        assert result.value.used == 2
        assert result.value.remaining == 18


class TestRequestLeave:
    async def test_request_creates_pending_request(
        self, runner, employee, annual_leave, notifications, audit
    ):
        result = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee,
                leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 17), "Family trip"),
            )
        )

        request = result.value
        assert request.status == "Pending"
        assert request.days == 3
        assert request.manager_id == MANAGER_ID
        assert request.employee_id == EMPLOYEE_ID
        assert request.reason == "Family trip"

        [notification] = notifications.list_notifications(MANAGER_ID)
        assert notification.title == "New leave request"
        assert notification.type == "leave"

        [record] = audit.list_audits("leave_request")
        assert record.action == "leave.request.submitted"
        assert record.actor_id == EMPLOYEE_ID
        assert record.entity_id == request.id
        assert record.metadata == {"leaveTypeId": annual_leave.id, "days": 3}

    async def test_single_day_request(self, runner, employee, annual_leave):
        result = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 15))
            )
        )

        assert result.value.days == 1

    async def test_end_before_start_persists_nothing(
        self, runner, employee, annual_leave, notifications, audit
    ):
        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.request_leave(
                    employee, leave_payload(annual_leave, date(2026, 2, 17), date(2026, 2, 15))
                )
            )

        assert await request_count(runner) == 0
        assert notifications.notifications == []
        assert audit.audits == []

    @pytest.mark.parametrize("actor_name", ["manager", "admin"])
    async def test_only_employees_request_leave(self, runner, request, annual_leave, actor_name):
        actor = request.getfixturevalue(actor_name)

        with pytest.raises(ForbiddenError):
            await runner.run(
                lambda wf: wf.leave.request_leave(
                    actor, leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 15))
                )
            )

    async def test_unknown_leave_type_is_invalid(self, runner, employee, annual_leave):
        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.request_leave(
                    employee,
                    {"leaveTypeId": "lt_missing", "startDate": "2026-02-15", "endDate": "2026-02-15"},
                )
            )

    async def test_missing_manager_mapping_is_invalid(self, runner, other_employee, annual_leave):
        with pytest.raises(InvalidInputError, match="Manager mapping"):
            await runner.run(
                lambda wf: wf.leave.request_leave(
                    other_employee, leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 15))
                )
            )

    async def test_paid_leave_without_allocation_is_invalid(self, runner, admin, employee):
        sick = await runner.run(
            lambda wf: wf.leave.create_leave_type(admin, {"name": "Sick", "paid": True})
        )
        await runner.run(
            lambda wf: wf.leave.set_manager_map(
                admin, {"employee_id": EMPLOYEE_ID, "manager_id": MANAGER_ID}
            )
        )

        with pytest.raises(InvalidInputError, match="No allocation"):
            await runner.run(
                lambda wf: wf.leave.request_leave(
                    employee, leave_payload(sick.value, date(2026, 2, 15), date(2026, 2, 15))
                )
            )

    async def test_unpaid_leave_needs_no_allocation(self, runner, admin, employee, annual_leave):
        unpaid = await runner.run(
            lambda wf: wf.leave.create_leave_type(admin, {"name": "Unpaid", "paid": False})
        )

        result = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(unpaid.value, date(2026, 4, 1), date(2026, 4, 30))
            )
        )

        assert result.value.days == 30

    async def test_malformed_date_is_invalid_input(self, runner, employee, annual_leave):
        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.request_leave(
                    employee,
                    {"leave_type_id": annual_leave.id, "start_date": "soon", "end_date": "later"},
                )
            )


class TestDecideRequest:
    async def _submit(self, runner, employee, annual_leave, start, end):
        result = await runner.run(
            lambda wf: wf.leave.request_leave(employee, leave_payload(annual_leave, start, end))
        )
        return result.value

    async def test_approval_deducts_balance(self, runner, employee, manager, annual_leave):
        """Allocated 10, approve 3 days: used 3, remaining 7; then 8 days fails."""
        leave = await self._submit(runner, employee, annual_leave, date(2026, 2, 15), date(2026, 2, 17))

        result = await runner.run(
            lambda wf: wf.leave.decide_request(
                manager,
                {"requestId": leave.id, "decision": "Approved", "managerComment": "Enjoy"},
            )
        )

        assert result.value.status == "Approved"
        assert result.value.manager_comment == "Enjoy"

        [balance] = await runner.read(lambda wf: wf.leave.get_balances(employee))
        assert balance.allocated == 10
        assert balance.used == 3
        assert balance.remaining == 7
        assert balance.leave_type == "Annual"

        with pytest.raises(InvalidInputError, match="Insufficient leave balance"):
            await self._submit(runner, employee, annual_leave, date(2026, 3, 1), date(2026, 3, 8))
        assert await request_count(runner) == 1

    async def test_rejection_leaves_balance_untouched(
        self, runner, employee, manager, annual_leave, notifications, audit
    ):
        leave = await self._submit(runner, employee, annual_leave, date(2026, 2, 15), date(2026, 2, 17))

        result = await runner.run(
            lambda wf: wf.leave.decide_request(
                manager, {"request_id": leave.id, "decision": "rejected"}
            )
        )

        assert result.value.status == "Rejected"
        [balance] = await runner.read(lambda wf: wf.leave.get_balances(employee))
        assert balance.used == 0

        [notification] = notifications.list_notifications(EMPLOYEE_ID)
        assert notification.title == "Leave rejected"
        assert audit.audits[0].action == "leave.request.rejected"
        assert audit.audits[0].metadata == {"managerComment": None}

    async def test_second_decision_is_invalid_state(self, runner, employee, manager, annual_leave):
        leave = await self._submit(runner, employee, annual_leave, date(2026, 2, 15), date(2026, 2, 15))
        await runner.run(
            lambda wf: wf.leave.decide_request(
                manager, {"request_id": leave.id, "decision": "Approved"}
            )
        )

        with pytest.raises(InvalidStateError):
            await runner.run(
                lambda wf: wf.leave.decide_request(
                    manager, {"request_id": leave.id, "decision": "Rejected"}
                )
            )

        [balance] = await runner.read(lambda wf: wf.leave.get_balances(employee))
        assert balance.used == 1

    async def test_binding_survives_manager_map_change(
        self, runner, admin, employee, manager, other_manager, annual_leave
    ):
        """The manager at submission time decides, not the current mapping."""
        leave = await self._submit(runner, employee, annual_leave, date(2026, 2, 15), date(2026, 2, 15))
        await runner.run(
            lambda wf: wf.leave.set_manager_map(
                admin, {"employee_id": EMPLOYEE_ID, "manager_id": OTHER_MANAGER_ID}
            )
        )

        with pytest.raises(ForbiddenError):
            await runner.run(
                lambda wf: wf.leave.decide_request(
                    other_manager, {"request_id": leave.id, "decision": "Approved"}
                )
            )

        result = await runner.run(
            lambda wf: wf.leave.decide_request(
                manager, {"request_id": leave.id, "decision": "Approved"}
            )
        )
        assert result.value.status == "Approved"

    async def test_missing_request_is_not_found(self, runner, manager):
        with pytest.raises(NotFoundError):
            await runner.run(
                lambda wf: wf.leave.decide_request(
                    manager, {"request_id": "lr_404", "decision": "Approved"}
                )
            )

    async def test_employee_cannot_decide(self, runner, employee, annual_leave):
        leave = await self._submit(runner, employee, annual_leave, date(2026, 2, 15), date(2026, 2, 15))

        with pytest.raises(ForbiddenError):
            await runner.run(
                lambda wf: wf.leave.decide_request(
                    employee, {"request_id": leave.id, "decision": "Approved"}
                )
            )

    async def test_unknown_decision_is_invalid_input(self, runner, employee, manager, annual_leave):
        leave = await self._submit(runner, employee, annual_leave, date(2026, 2, 15), date(2026, 2, 15))

        with pytest.raises(InvalidInputError):
            await runner.run(
                lambda wf: wf.leave.decide_request(
                    manager, {"request_id": leave.id, "decision": "Pending"}
                )
            )

    async def test_approval_without_allocation_row_still_decides(self, session, ids, clock):
        """Approving when the allocation is gone only changes the request."""
        leave = LeaveRequest(
            id="lr_orphan",
            employee_id=EMPLOYEE_ID,
            manager_id=MANAGER_ID,
            leave_type_id="lt_gone",
            start_date=date(2026, 2, 15),
            end_date=date(2026, 2, 15),
            days=1,
            status="Pending",
            created_at=clock(),
            updated_at=clock(),
        )
        session.add(leave)
        await session.flush()

        service = LeaveService(session, ids=ids, clock=clock)
        result = await service.decide_request(
            ManagerActor(subject_id=MANAGER_ID), {"request_id": "lr_orphan", "decision": "Approved"}
        )

        assert result.value.status == "Approved"


class TestReadViews:
    async def test_list_requests_scoping(
        self, runner, admin, employee, manager, other_manager, annual_leave
    ):
        first = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 15))
            )
        )
        second = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(annual_leave, date(2026, 3, 1), date(2026, 3, 1))
            )
        )

        own = await runner.read(lambda wf: wf.leave.list_requests(employee))
        assert [r.id for r in own] == [second.value.id, first.value.id]

        assert len(await runner.read(lambda wf: wf.leave.list_requests(manager))) == 2
        assert await runner.read(lambda wf: wf.leave.list_requests(other_manager)) == []

        by_employee = await runner.read(
            lambda wf: wf.leave.list_requests(admin, {"employee_id": OTHER_EMPLOYEE_ID})
        )
        assert by_employee == []
        by_manager = await runner.read(
            lambda wf: wf.leave.list_requests(admin, {"manager_id": MANAGER_ID})
        )
        assert len(by_manager) == 2

    async def test_employee_filter_is_ignored_for_employees(self, runner, employee, annual_leave):
        await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 15))
            )
        )

        requests = await runner.read(
            lambda wf: wf.leave.list_requests(employee, {"employee_id": OTHER_EMPLOYEE_ID})
        )

        assert len(requests) == 1

    async def test_balances_ordered_by_leave_type_name(self, runner, admin, annual_leave):
        compassionate = await runner.run(
            lambda wf: wf.leave.create_leave_type(admin, {"name": "Compassionate", "paid": True})
        )
        await runner.run(
            lambda wf: wf.leave.allocate_leave(
                admin,
                {"employee_id": EMPLOYEE_ID, "leave_type_id": compassionate.value.id, "allocated": 3},
            )
        )

        balances = await runner.read(lambda wf: wf.leave.get_balances(admin, EMPLOYEE_ID))

        assert [b.leave_type for b in balances] == ["Annual", "Compassionate"]

    async def test_balances_need_a_target(self, runner, admin):
        with pytest.raises(InvalidInputError):
            await runner.read(lambda wf: wf.leave.get_balances(admin))

    async def test_on_leave_count(self, runner, employee, manager, annual_leave):
        leave = await runner.run(
            lambda wf: wf.leave.request_leave(
                employee, leave_payload(annual_leave, date(2026, 2, 15), date(2026, 2, 17))
            )
        )
        assert await runner.read(lambda wf: wf.leave.on_leave_count(date(2026, 2, 16))) == 0

        await runner.run(
            lambda wf: wf.leave.decide_request(
                manager, {"request_id": leave.value.id, "decision": "Approved"}
            )
        )

        assert await runner.read(lambda wf: wf.leave.on_leave_count(date(2026, 2, 16))) == 1
        assert await runner.read(lambda wf: wf.leave.on_leave_count(date(2026, 2, 18))) == 0
