"""
Notification dispatcher & inbox tests.

Tests cover:
  - Message templates
  - Recipient resolution and per-event deduplication
  - Overdue scan (repeat scans notify again)
  - Store failures are logged, not raised
  - Inbox: list, unread count, mark read, mark all read
"""

from datetime import date, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from plm.core.exceptions import NotFoundError
from plm.models.notification import Notification
from plm.services.approval_service import ApprovalService
from plm.services.gate_service import GateService
from plm.services.notification import NotificationService, render_template
from plm.services.notification_routing import (
    APPROVAL_DECISION,
    APPROVAL_REQUEST,
    GATE_ADVANCEMENT,
    OVERDUE_APPROVAL,
)
from plm.utils.helpers import utcnow


class _FailingCommitSession:
    """Session wrapper whose commit always fails."""

    def __init__(self, real):
        self._real = real

    def __getattr__(self, name):
        return getattr(self._real, name)

    def commit(self):
        raise SQLAlchemyError("database is locked")


def _of_type(user, notification_type):
    return Notification.query.filter_by(user_id=user.id, type=notification_type).all()


# ═════════════════════════════════════════════════════════════════════════
# TEMPLATES
# ═════════════════════════════════════════════════════════════════════════

class TestTemplates:
    def test_approval_request(self):
        title, message = render_template(APPROVAL_REQUEST, project_name="Alpha", gate=2, category="category_1b")
        assert title == "Approval Required: Alpha – Gate 2"
        assert message == 'Project "Alpha" (CATEGORY_1B) requires your approval to progress from Gate 2.'

    def test_gate_advancement(self):
        title, message = render_template(GATE_ADVANCEMENT, project_name="Alpha", gate=3)
        assert title == "Gate 3 Advanced: Alpha"
        assert message == 'Project "Alpha" has successfully advanced to Gate 3.'

    def test_overdue(self):
        title, message = render_template(OVERDUE_APPROVAL, project_name="Alpha", gate=4)
        assert title == "Overdue Approval: Gate 4"
        assert message == 'Approval for "Alpha" (Gate 4) is overdue.'

    def test_decision_with_comments(self):
        title, message = render_template(
            APPROVAL_DECISION, project_name="Alpha", gate=1, category="category_2",
            decision="rejected", approver_name="Dana", comments="Scope unclear",
        )
        assert title == "Gate 1 Rejected: Alpha"
        assert message.endswith("Comments: Scope unclear")

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            render_template("carrier_pigeon", project_name="Alpha")


# ═════════════════════════════════════════════════════════════════════════
# DISPATCH
# ═════════════════════════════════════════════════════════════════════════

class TestDispatch:
    def test_project_creation_requests_gate_one(self, make_user, make_project):
        bidder = make_user("bid_manager")
        branch = make_user("branch_manager")
        project = make_project(creator=bidder)

        requests = _of_type(bidder, APPROVAL_REQUEST)
        assert len(requests) == 1
        assert requests[0].payload["project_id"] == project.id
        assert requests[0].payload["current_gate"] == 1
        assert len(_of_type(branch, "project_creation")) == 1

    def test_gate_advancement_deduplicated(self, make_user, make_project):
        bidder = make_user("bid_manager")
        branch = make_user("branch_manager")
        project = make_project(creator=bidder)
        approval = ApprovalService().list_for_project(project.id, 1)[0]
        ApprovalService().resolve(approval.id, "approved", bidder.id)

        GateService().advance(project.id, branch.id)

        # branch_manager is both notify and inform for category_1b gate 1
        advanced = _of_type(branch, GATE_ADVANCEMENT)
        assert len(advanced) == 1
        assert advanced[0].title == f"Gate 2 Advanced: {project.name}"
        assert advanced[0].payload["completed_gate"] == 1
        assert advanced[0].payload["new_gate"] == 2

    def test_decision_reaches_stakeholders(self, make_user, make_project):
        bidder = make_user("bid_manager")
        pm = make_user("project_manager")
        project = make_project(creator=bidder, project_manager_id=pm.id)
        approval = ApprovalService().list_for_project(project.id, 1)[0]
        ApprovalService().resolve(approval.id, "rejected", bidder.id, comments="Not viable")

        decisions = _of_type(pm, APPROVAL_DECISION)
        assert len(decisions) == 1
        assert decisions[0].payload["status"] == "rejected"
        assert "Comments: Not viable" in decisions[0].message

    def test_inactive_users_skipped(self, make_user, make_project):
        make_user("branch_manager", is_active=False)
        project = make_project()
        assert Notification.query.filter_by(project_id=project.id, type="project_creation").count() == 0

    def test_no_recipients_returns_empty(self, make_project):
        project = make_project()
        assert NotificationService().notify_approval_request(project, 1) == []

    def test_store_failure_is_swallowed(self, make_user, make_project, session):
        make_user("bid_manager")
        project = make_project()
        before = Notification.query.count()

        svc = NotificationService(_FailingCommitSession(session))
        assert svc.notify_approval_request(project, 1) == []
        assert Notification.query.count() == before


# ═════════════════════════════════════════════════════════════════════════
# OVERDUE SCAN
# ═════════════════════════════════════════════════════════════════════════

class TestOverdueScan:
    def test_scan_notifies_role_and_escalation(self, make_user, make_project):
        bidder = make_user("bid_manager")
        branch = make_user("branch_manager")
        bu = make_user("bu_director")
        make_project()

        created = NotificationService().scan_overdue_approvals(now=utcnow() + timedelta(days=8))

        assert sorted(n.user_id for n in created) == sorted([bidder.id, branch.id, bu.id])
        assert {n.type for n in created} == {OVERDUE_APPROVAL}

    def test_nothing_overdue_yet(self, make_user, make_project):
        make_user("bid_manager")
        make_project()
        assert NotificationService().scan_overdue_approvals() == []

    def test_repeat_scans_notify_again(self, make_user, make_project):
        bidder = make_user("bid_manager")
        make_project()
        later = utcnow() + timedelta(days=8)
        svc = NotificationService()
        svc.scan_overdue_approvals(now=later)
        svc.scan_overdue_approvals(now=later)
        assert len(_of_type(bidder, OVERDUE_APPROVAL)) == 2

    def test_resolved_approvals_ignored(self, make_user, make_project):
        bidder = make_user("bid_manager")
        project = make_project()
        approval = ApprovalService().list_for_project(project.id, 1)[0]
        ApprovalService().resolve(approval.id, "approved", bidder.id)
        assert NotificationService().scan_overdue_approvals(now=utcnow() + timedelta(days=8)) == []


class TestPeriodicReview:
    def test_review_notice(self, make_user, make_project):
        bidder = make_user("bid_manager")
        branch = make_user("branch_manager")
        project = make_project(bid_manager_id=bidder.id, next_review_date=date.today().isoformat())

        created = NotificationService().notify_periodic_review(project)

        assert sorted(n.user_id for n in created) == sorted([bidder.id, branch.id])
        assert created[0].payload["review_date"] == date.today().isoformat()


# ═════════════════════════════════════════════════════════════════════════
# INBOX
# ═════════════════════════════════════════════════════════════════════════

class TestInbox:
    def test_list_count_and_read(self, make_user, make_project):
        branch = make_user("branch_manager")
        other = make_user("ceo")
        make_project()
        svc = NotificationService()

        # project_creation plus the gate-1 approval_request (branch_manager is notified)
        items, total = svc.list_for_user(branch.id)
        assert total == len(items) == 2
        assert svc.unread_count(branch.id) == 2

        svc.mark_read(items[0].id, branch.id)
        assert svc.unread_count(branch.id) == 1
        assert svc.list_for_user(branch.id, unread_only=True)[1] == 1

        with pytest.raises(NotFoundError):
            svc.mark_read(items[0].id, other.id)

    def test_mark_all_read(self, make_user, make_project):
        branch = make_user("branch_manager")
        make_project(name="One")
        make_project(name="Two")
        svc = NotificationService()
        assert svc.unread_count(branch.id) == 4
        assert svc.mark_all_read(branch.id) == 4
        assert svc.unread_count(branch.id) == 0
