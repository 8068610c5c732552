import pytest

from conftest import days
from gymoffice.errors import ConflictError, NotFoundError
from gymoffice.models import SubscriptionPlan
from gymoffice.services import plan_service, subscription_service
from gymoffice.time_utils import utcnow


class TestPlans:

    def test_create_and_get(self, db_session):
        plan = plan_service.create_plan({"name": "Silver", "price_cents": 500, "duration_days": 30})
        fetched = plan_service.get_plan(plan.id)
        assert fetched.name == "Silver"
        assert fetched.features == []
        assert fetched.is_active is True

    def test_duplicate_name_conflicts(self, db_session, plan):
        with pytest.raises(ConflictError):
            plan_service.create_plan({"name": "Gold Monthly", "price_cents": 1, "duration_days": 1})

    def test_rename_to_taken_name_conflicts(self, db_session, plan):
        other = plan_service.create_plan({"name": "Silver", "price_cents": 500, "duration_days": 30})
        with pytest.raises(ConflictError):
            plan_service.update_plan(other.id, {"name": "Gold Monthly"})

    def test_list_sorted_by_price_and_active_filter(self, db_session, plan):
        plan_service.create_plan({"name": "Yearly", "price_cents": 9000, "duration_days": 365})
        plan_service.create_plan({"name": "Day Pass", "price_cents": 100, "duration_days": 1, "is_active": False})

        all_plans = plan_service.list_plans()
        assert [p.name for p in all_plans.items] == ["Day Pass", "Gold Monthly", "Yearly"]

        active = plan_service.list_plans(active_only=True)
        assert [p.name for p in active.items] == ["Gold Monthly", "Yearly"]


class TestDeletePlan:

    def test_delete_with_active_subscriber_conflicts(self, db_session, plan, member):
        subscription_service.subscribe(member.id, plan.id)
        with pytest.raises(ConflictError):
            plan_service.delete_plan(plan.id)
        assert db_session.get(SubscriptionPlan, plan.id) is not None

    def test_delete_unused_plan(self, db_session, plan):
        plan_service.delete_plan(plan.id)
        with pytest.raises(NotFoundError):
            plan_service.get_plan(plan.id)

    def test_delete_plan_with_history_conflicts_and_leaves_it_unchanged(self, db_session, plan, member):
        sub = subscription_service.subscribe(member.id, plan.id)
        subscription_service.cancel(sub.id)

        with pytest.raises(ConflictError) as exc:
            plan_service.delete_plan(plan.id)
        assert exc.value.details == {"subscriptions": 1}
        assert db_session.get(SubscriptionPlan, plan.id).is_active is True

    def test_plan_with_history_is_retired_through_update(self, db_session, plan, member):
        sub = subscription_service.subscribe(member.id, plan.id)
        subscription_service.cancel(sub.id)

        plan_service.update_plan(plan.id, {"is_active": False})
        assert [p.id for p in plan_service.list_plans(active_only=True).items] == []

    def test_lapsed_subscriber_counts_as_history_not_active(self, db_session, plan, member):
        subscription_service.subscribe(member.id, plan.id, now=utcnow() - days(45))
        with pytest.raises(ConflictError) as exc:
            plan_service.delete_plan(plan.id)
        assert "active_subscriptions" not in exc.value.details
