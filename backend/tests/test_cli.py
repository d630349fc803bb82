"""
CLI command tests (flask system / users / maintenance).
"""

from datetime import timedelta

from catering.extensions import db
from catering.models import Department, Notification, User
from catering.time_utils import utcnow


class TestSystemInit:

    def test_init_seeds_once(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        assert "Departments created: 5" in result.output
        assert "Users created: 6" in result.output

        cs = db_session.query(Department).filter_by(code="CS").one()
        assert cs.approver.email == "approver.cs@sasakawa.edu"
        assert db_session.query(User).filter_by(role="FINANCE_OFFICER").count() == 1

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0, result.output
        assert "Departments created: 0" in result.output
        assert "Users created: 0" in result.output
        assert db_session.query(User).count() == 6

    def test_seeded_user_signs_in(self, app, client, db_session):
        app.test_cli_runner().invoke(args=["system", "init"])

        headers = {
            "X-Auth-Subject": "idp|alice",
            "X-Auth-Email": "requester.cs@sasakawa.edu",
            "X-Auth-Name": "Alice Cooper",
        }
        resp = client.get("/api/users/me", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["department"]["code"] == "CS"
        assert resp.get_json()["phone"] == "+1-555-0301"


class TestUserCommands:

    def test_list_and_filter(self, app, db_session, requester, approver):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["users", "list"])
        assert result.exit_code == 0
        assert "requester@uni.test" in result.output
        assert "approver@uni.test" in result.output

        result = runner.invoke(args=["users", "list", "--role", "APPROVER"])
        assert "approver@uni.test" in result.output
        assert "requester@uni.test" not in result.output

    def test_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["users", "list"])
        assert "No users found." in result.output

    def test_promote(self, app, db_session, requester):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["users", "promote", "Requester@uni.test", "finance_officer"])
        assert result.exit_code == 0, result.output
        assert db.session.get(User, requester.id).role == "FINANCE_OFFICER"

    def test_promote_unknown_email(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["users", "promote", "ghost@uni.test", "APPROVER"])
        assert result.exit_code == 1
        assert "No user with e-mail" in result.output

    def test_promote_invalid_role(self, app, db_session, requester):
        result = app.test_cli_runner().invoke(args=["users", "promote", "requester@uni.test", "ADMIN"])
        assert result.exit_code != 0
        assert db.session.get(User, requester.id).role == "REQUESTER"


class TestMaintenanceCommands:

    def test_cleanup_notifications(self, app, db_session, approver):
        for days in (40, 2):
            db_session.add(Notification(
                user_id=approver.id,
                type="REQUEST_CREATED",
                title="t",
                message="m",
                is_read=True,
                created_at=utcnow() - timedelta(days=days),
            ))
        db_session.commit()

        runner = app.test_cli_runner()
        result = runner.invoke(args=["maintenance", "cleanup-notifications"])
        assert result.exit_code == 0
        assert "Deleted 1 read notification(s)" in result.output

        result = runner.invoke(args=["maintenance", "cleanup-notifications", "--retention-days", "1"])
        assert "Deleted 1 read notification(s)" in result.output
        assert db_session.query(Notification).count() == 0
