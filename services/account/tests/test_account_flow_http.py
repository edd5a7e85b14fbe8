from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from bookshop_account.main import create_app
from bookshop_account.services.credential_store import CredentialStoreError, SqlCredentialStore
from conftest import (
    DEFAULT_PASSWORD,
    FailingNotifier,
    TEST_AUDIENCE,
    TEST_SIGNING_KEY,
    USER_PASSWORD,
    login,
    register_and_confirm,
    registration_payload,
)


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def test_register_confirm_login_end_to_end(client, notifier):
    resp = client.post("/new", json=registration_payload("newreader", "new@example.com"))
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["message"] == "Account registration successful. Please check your email for confirmation link."
    assert body["data"]["roles"] == ["user"]
    assert body["data"]["notification"]["status"] == "sent"
    assert body["data"]["notification"]["link"] is None

    before_confirm = login(client, "new@example.com")
    assert before_confirm.status_code == 409
    assert before_confirm.json()["code"] == "EMAIL_NOT_CONFIRMED"
    assert "token" not in before_confirm.json()

    confirm = client.get(notifier.confirmation_link("new@example.com"))
    assert confirm.status_code == 200
    assert confirm.json()["message"] == "The account successfully confirmed."

    issued_after = datetime.now(timezone.utc)
    resp = login(client, "new@example.com")
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["user"] == "newreader"
    assert data["email"] == "new@example.com"
    expiration = _parse_ts(data["expiration"])
    assert abs(expiration - (issued_after + timedelta(hours=3))) < timedelta(minutes=1)

    claims = jwt.decode(data["token"], TEST_SIGNING_KEY, algorithms=["HS256"], audience=TEST_AUDIENCE)
    assert claims["name"] == "newreader"
    assert claims["role"] == ["user"]


def test_login_by_user_name_and_uniform_unauthorized(client, notifier):
    register_and_confirm(client, notifier, "reader", "reader@example.com")

    assert login(client, "reader").status_code == 200

    wrong_password = login(client, "reader", "Wrong1@pass")
    unknown_account = login(client, "nobody", USER_PASSWORD)
    assert wrong_password.status_code == unknown_account.status_code == 401
    assert wrong_password.json()["message"] == unknown_account.json()["message"]
    assert wrong_password.json()["code"] == "UNAUTHORIZED"


def test_registration_rejects_mismatched_confirmation_without_writing(client, notifier):
    payload = registration_payload("reader", "reader@example.com")
    payload["confirmPassword"] = "Aa1@aaab"

    resp = client.post("/new", json=payload)
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert resp.json()["details"]["error"] == "The confirmation password does not match."
    assert notifier.messages == []
    assert login(client, "reader").status_code == 401


def test_duplicate_email_rejected_regardless_of_login(client, notifier):
    assert client.post("/new", json=registration_payload("first", "dup@example.com")).status_code == 200

    resp = client.post("/new", json=registration_payload("second", "DUP@example.com"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "DUPLICATE_ACCOUNT"
    assert resp.json()["message"] == "An account with the provided email address already exists."

    again = client.post("/new", json=registration_payload("third", "dup@example.com"))
    assert again.json()["message"] == resp.json()["message"]


def test_duplicate_login_rejected_after_email_check(client):
    assert client.post("/new", json=registration_payload("taken", "one@example.com")).status_code == 200

    resp = client.post("/new", json=registration_payload("TAKEN", "two@example.com"))
    assert resp.status_code == 400
    assert resp.json()["message"] == "An account with the provided username already exists."


def test_login_cannot_take_another_accounts_email(client, notifier):
    register_and_confirm(client, notifier, "alice", "alice@example.com")

    resp = client.post("/new", json=registration_payload("alice@example.com", "bob@example.com"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "DUPLICATE_ACCOUNT"
    assert resp.json()["message"] == "An account with the provided username already exists."
    assert notifier.sent_to("bob@example.com") == []
    assert login(client, "alice@example.com").status_code == 200


def test_email_cannot_take_another_accounts_login(client, notifier):
    register_and_confirm(client, notifier, "shared@example.com", "carol@example.com")

    resp = client.post("/new", json=registration_payload("dave", "shared@example.com"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "DUPLICATE_ACCOUNT"
    assert resp.json()["message"] == "An account with the provided email address already exists."
    assert login(client, "shared@example.com").status_code == 200


def test_failed_registration_leaves_no_partial_account(client, notifier, monkeypatch):
    def failing_commit(self, action):
        self._db.rollback()
        raise CredentialStoreError(f"{action} failed: simulated")

    monkeypatch.setattr(SqlCredentialStore, "_commit", failing_commit)
    resp = client.post("/new", json=registration_payload("dave", "dave@example.com"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "ACCOUNT_STORE_ERROR"
    assert resp.json()["message"] == "The account registration failed."
    assert notifier.messages == []

    monkeypatch.undo()
    retry = client.post("/new", json=registration_payload("dave", "dave@example.com"))
    assert retry.status_code == 200, retry.text
    assert retry.json()["data"]["roles"] == ["user"]


def test_admin_registration_assigns_admin_role(client, notifier):
    data = register_and_confirm(client, notifier, "boss", "boss@example.com", path="/admin/new")
    assert data["roles"] == ["admin"]

    token = login(client, "boss").json()["data"]["token"]
    claims = jwt.decode(token, TEST_SIGNING_KEY, algorithms=["HS256"], audience=TEST_AUDIENCE)
    assert claims["role"] == ["admin"]


def test_missing_body_is_a_structural_error(client):
    resp = client.post("/account/login")
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert resp.json()["message"] == "Account model cannot be null."


def test_confirm_email_failures(client, notifier):
    client.post("/new", json=registration_payload("reader", "reader@example.com"))
    resend = client.post("/account/confirmemail/resend", json="reader@example.com")
    assert resend.status_code == 200

    unknown = client.get("/account/confirmemail", params={"userId": "00000000-0000-0000-0000-000000000000", "token": "x"})
    assert unknown.status_code == 404
    assert unknown.json()["message"] == "Account was not found."

    link = notifier.confirmation_link("reader@example.com")
    forged = link.rsplit("token=", 1)[0] + "token=forged"
    bad_token = client.get(forged)
    assert bad_token.status_code == 400
    assert bad_token.json()["message"] == "Request failed. Please contact the support team."

    assert client.get(link).status_code == 200
    # 令牌一次有效。
    assert client.get(link).status_code == 400


def test_resend_confirmation_validation(client):
    empty = client.post("/account/confirmemail/resend", json="")
    assert empty.status_code == 400
    assert empty.json()["message"] == "The email cannot be null or empty"

    malformed = client.post("/account/confirmemail/resend", json="not-an-email")
    assert malformed.status_code == 400
    assert malformed.json()["message"] == "The email is invalid format."

    unknown = client.post("/account/confirmemail/resend", json="ghost@example.com")
    assert unknown.status_code == 404


def test_default_account_mail_is_returned_in_payload(client, notifier):
    resp = client.post("/account/confirmemail/resend", json="user@example.com")
    assert resp.status_code == 200
    notification = resp.json()["data"]["notification"]
    assert notification["status"] == "suppressed"
    assert notification["subject"] == "Confirmation email"
    assert notification["link"].startswith("http://testserver/account/confirmemail?userId=")
    assert notifier.messages == []


def test_seeded_accounts_can_sign_in(client):
    admin = login(client, "admin", DEFAULT_PASSWORD)
    user = login(client, "user@example.com", DEFAULT_PASSWORD)
    assert admin.status_code == 200 and user.status_code == 200


def test_deletion_cancelled_unless_confirmed(client, notifier):
    register_and_confirm(client, notifier, "reader", "reader@example.com")
    sent_before = len(notifier.messages)

    resp = client.request(
        "DELETE",
        "/account/delete",
        json={"usernameOrEmail": "reader", "password": USER_PASSWORD, "isConfirmed": False},
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Account deletion process was canceled by the user."
    assert resp.json()["data"]["deleted"] is False
    assert len(notifier.messages) == sent_before
    assert login(client, "reader").status_code == 200

    null_flag = client.request(
        "DELETE",
        "/account/delete",
        json={"usernameOrEmail": "reader", "password": USER_PASSWORD, "isConfirmed": None},
    )
    assert null_flag.status_code == 200
    assert null_flag.json()["data"]["deleted"] is False
    assert login(client, "reader").status_code == 200


def test_delete_account_notifies_and_removes(client, notifier):
    register_and_confirm(client, notifier, "reader", "reader@example.com")

    denied = client.request(
        "DELETE",
        "/account/delete",
        json={"usernameOrEmail": "reader", "password": "Wrong1@pass", "isConfirmed": True},
    )
    assert denied.status_code == 401
    assert denied.json()["message"] == "Lack the necessary permissions to delete this account."

    resp = client.request(
        "DELETE",
        "/account/delete",
        json={"usernameOrEmail": "reader", "password": USER_PASSWORD, "isConfirmed": True},
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Your account has been successfully removed from our system."
    assert notifier.sent_to("reader@example.com")[-1].subject == "Account Deleted"
    assert login(client, "reader").status_code == 401


def test_default_accounts_cannot_be_deleted(client):
    resp = client.request(
        "DELETE",
        "/account/delete",
        json={"usernameOrEmail": "user", "password": DEFAULT_PASSWORD, "isConfirmed": True},
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "ACCOUNT_CONFLICT"


def test_change_password(client, notifier):
    register_and_confirm(client, notifier, "reader", "reader@example.com")

    resp = client.put(
        "/account/password/reset",
        json={
            "usernameOrEmail": "reader",
            "password": USER_PASSWORD,
            "newUserPassword": "Bb2#bbbb",
            "confirmNewUserPassword": "Bb2#bbbb",
        },
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["message"] == "Password changed successfully."
    assert notifier.sent_to("reader@example.com")[-1].subject == "The account password has been changed."
    assert login(client, "reader").status_code == 401
    assert login(client, "reader", "Bb2#bbbb").status_code == 200


def test_change_password_requires_confirmed_account(client, notifier):
    client.post("/new", json=registration_payload("reader", "reader@example.com"))

    resp = client.put(
        "/account/password/reset",
        json={
            "usernameOrEmail": "reader",
            "password": USER_PASSWORD,
            "newUserPassword": "Bb2#bbbb",
            "confirmNewUserPassword": "Bb2#bbbb",
        },
    )
    assert resp.status_code == 401
    assert resp.json()["message"] == "Lack the necessary permissions to change password for this account."


def test_email_update_requires_reconfirmation(client, notifier):
    register_and_confirm(client, notifier, "reader", "old@example.com")
    old_count = len(notifier.sent_to("old@example.com"))

    resp = client.put(
        "/account/update",
        json={
            "usernameOrEmail": "reader",
            "password": USER_PASSWORD,
            "updatedEmailAddress": "fresh@example.com",
            "confirmUpdatedEmailAddress": "fresh@example.com",
        },
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["email"] == "fresh@example.com"
    assert data["email_confirmed"] is False

    old_mail = notifier.sent_to("old@example.com")[old_count:]
    new_mail = notifier.sent_to("fresh@example.com")
    assert [message.subject for message in old_mail] == ["Updated account data"]
    assert [message.subject for message in new_mail] == ["Confirmation email"]

    assert login(client, "reader").status_code == 409
    assert client.get(notifier.confirmation_link("fresh@example.com")).status_code == 200
    assert login(client, "fresh@example.com").status_code == 200


def test_login_update_keeps_confirmation(client, notifier):
    register_and_confirm(client, notifier, "reader", "reader@example.com")

    resp = client.put(
        "/account/update",
        json={"usernameOrEmail": "reader", "password": USER_PASSWORD, "updatedLogin": "reader2"},
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Account updated successfully."
    assert resp.json()["data"]["email_confirmed"] is True
    assert login(client, "reader2").status_code == 200


def test_update_rejects_taken_or_unchanged_values(client, notifier):
    register_and_confirm(client, notifier, "reader", "reader@example.com")
    register_and_confirm(client, notifier, "other", "other@example.com")

    taken = client.put(
        "/account/update",
        json={"usernameOrEmail": "reader@example.com", "password": USER_PASSWORD, "updatedLogin": "other"},
    )
    assert taken.status_code == 400
    assert taken.json()["code"] == "DUPLICATE_ACCOUNT"

    other_email = client.put(
        "/account/update",
        json={"usernameOrEmail": "reader", "password": USER_PASSWORD, "updatedLogin": "other@example.com"},
    )
    assert other_email.status_code == 400
    assert other_email.json()["code"] == "DUPLICATE_ACCOUNT"
    assert login(client, "other@example.com").status_code == 200

    unchanged = client.put(
        "/account/update",
        json={
            "usernameOrEmail": "reader",
            "password": USER_PASSWORD,
            "updatedEmailAddress": "READER@example.com",
            "confirmUpdatedEmailAddress": "READER@example.com",
        },
    )
    assert unchanged.status_code == 400
    assert unchanged.json()["details"]["error"] == "The updated email should not match the current email."


def test_notifier_failure_degrades_message_but_keeps_change(settings, session_factory, session_store):
    app = create_app(
        settings=settings,
        session_factory=session_factory,
        notifier=FailingNotifier(),
        session_store=session_store,
    )
    with TestClient(app) as client:
        resp = client.post("/new", json=registration_payload("reader", "reader@example.com"))
        assert resp.status_code == 200
        body = resp.json()
        assert body["data"]["notification"]["status"] == "failed"
        assert "Please try to resend confirmation link later" in body["message"]

        duplicate = client.post("/new", json=registration_payload("reader", "reader@example.com"))
        assert duplicate.status_code == 400
