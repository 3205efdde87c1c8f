"""
Notification service and milestone task tests.
"""

from datetime import date

from procureflow.models import db
from procureflow.services.notification import NotificationService
from procureflow.services.task_service import complete_task, create_milestone_tasks, find_by_project


class TestNotificationService:

    def test_create_and_list(self, org):
        NotificationService.create(recipient_id=org.staff.id, title="one")
        NotificationService.create(recipient_id=org.staff.id, title="two", priority="high")
        db.session.commit()
        items, total = NotificationService.list_for_recipient(org.staff.id)
        assert total == 2
        assert [n.title for n in items] == ["two", "one"]

    def test_mark_read(self, org):
        notif = NotificationService.create(recipient_id=org.staff.id, title="one")
        db.session.commit()
        NotificationService.mark_read(notif.id)
        assert notif.is_read
        assert NotificationService.unread_count(org.staff.id) == 0

    def test_mark_all_read(self, org):
        for title in ("a", "b", "c"):
            NotificationService.create(recipient_id=org.staff.id, title=title)
        db.session.commit()
        assert NotificationService.mark_all_read(org.staff.id) == 3
        items, total = NotificationService.list_for_recipient(org.staff.id, unread_only=True)
        assert total == 0

    def test_notify_function_targets_hod(self, org):
        created = NotificationService.notify_function("finance", title="Budget review")
        assert [n.recipient_id for n in created] == [org.hods.finance.id]

    def test_notify_function_falls_back_to_managers(self, org):
        org.hods.procurement.is_active = False
        buyer = org.eng_manager
        buyer.department = org.depts.procurement
        db.session.flush()
        created = NotificationService.notify_function("procurement", title="PO raised")
        assert [n.recipient_id for n in created] == [buyer.id]


class TestMilestoneTasks:

    def test_window_split(self, make_project, approve_all, org):
        project = approve_all(make_project(start_date=date(2026, 1, 1), end_date=date(2026, 1, 31)))
        tasks = create_milestone_tasks(project, created_by_id=org.staff.id)
        assert [(t.start_date, t.due_date) for t in tasks] == [
            (date(2026, 1, 1), date(2026, 1, 7)),
            (date(2026, 1, 7), date(2026, 1, 25)),
            (date(2026, 1, 25), date(2026, 1, 31)),
        ]
        assert all(t.assigned_to_id == org.staff.id for t in tasks)

    def test_default_window_and_idempotent(self, make_project, org):
        project = make_project()
        first = create_milestone_tasks(project)
        second = create_milestone_tasks(project)
        assert [t.id for t in first] == [t.id for t in second]
        assert (first[-1].due_date - first[0].start_date).days == 30
        assert len(find_by_project(project.id)) == 3

    def test_complete_task(self, make_project, org):
        project = make_project()
        task = create_milestone_tasks(project)[0]
        db.session.commit()
        task = complete_task(task.id)
        assert task.status == "completed"
        assert task.completed_at is not None
        assert project.implementation_progress == 0
