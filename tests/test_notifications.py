from carwash.domain.notifications.relay import (
    NotificationRelay,
    resolve_channel_aliases,
    serialize_notification,
)
from carwash.models import Notification, NotificationType
from carwash.realtime import ADMIN_CHANNEL, NEW_NOTIFICATION


def add_notifications(db, user, count, is_read=False):
    for i in range(count):
        db.add(
            Notification(
                user_id=user.id,
                title=f"Notice {i}",
                message="Your car is ready",
                type=NotificationType.APPOINTMENT,
                is_read=is_read,
            )
        )
    db.commit()


def test_aliases_cover_internal_and_identity_provider_ids(customer):
    assert resolve_channel_aliases(customer) == [f"user-{customer.id}", "user-fb-customer"]
    assert customer.channel_aliases == resolve_channel_aliases(customer)


def test_relay_pushes_only_after_flush(db, customer, publisher):
    relay = NotificationRelay(db, publisher)
    notification = relay.notify(customer, "Hello", "World", NotificationType.SYSTEM)
    assert publisher.events == []

    db.commit()
    report = relay.flush()

    assert report.delivered == [f"user-{customer.id}", "user-fb-customer"]
    assert report.failed == []
    ((event, payload),) = publisher.on("user-fb-customer")
    assert event == NEW_NOTIFICATION
    assert payload == serialize_notification(notification)
    assert payload["isRead"] is False


def test_one_failing_alias_does_not_block_the_others(db, customer, admin, publisher):
    publisher.failing_channels.add(f"user-{customer.id}")
    relay = NotificationRelay(db, publisher)
    relay.notify(customer, "Hello", "World")
    relay.notify_admins("New booking", "Someone booked")
    relay.broadcast_to_admins({"message": "New booking"})
    db.commit()

    report = relay.flush()

    assert report.failed == [f"user-{customer.id}"]
    assert "user-fb-customer" in report.delivered
    assert "user-fb-admin" in report.delivered
    assert ADMIN_CHANNEL in report.delivered
    assert db.query(Notification).count() == 2


def test_discard_drops_queued_pushes(db, customer, publisher):
    relay = NotificationRelay(db, publisher)
    relay.notify(customer, "Hello", "World")
    db.rollback()
    relay.discard()

    assert relay.flush().delivered == []
    assert db.query(Notification).count() == 0


def test_list_notifications_newest_first_with_unread_count(client, auth, customer, db):
    add_notifications(db, customer, 2)
    add_notifications(db, customer, 1, is_read=True)
    auth.login(customer)

    body = client.get("/notifications").json()

    assert body["unread_count"] == 2
    assert len(body["notifications"]) == 3
    ids = [n["id"] for n in body["notifications"]]
    assert ids == sorted(ids, reverse=True)

    unread = client.get("/notifications", params={"unread_only": True}).json()
    assert len(unread["notifications"]) == 2


def test_mark_read_and_mark_all_read(client, auth, customer, other_customer, db):
    add_notifications(db, customer, 3)
    add_notifications(db, other_customer, 1)
    auth.login(customer)
    first_id = client.get("/notifications").json()["notifications"][0]["id"]

    response = client.patch(f"/notifications/{first_id}/read")
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    response = client.post("/notifications/mark-all-read")
    assert response.json()["updated"] == 2
    assert client.get("/notifications").json()["unread_count"] == 0

    auth.login(other_customer)
    assert client.get("/notifications").json()["unread_count"] == 1
    assert client.patch(f"/notifications/{first_id}/read").status_code == 404


def test_admin_creates_and_pushes_notification(client, auth, admin, customer, publisher):
    auth.login(admin)

    response = client.post(
        "/notifications",
        json={"user_id": customer.id, "title": "Promo", "message": "20% off", "type": "system"},
    )

    assert response.status_code == 201
    assert response.json()["type"] == "SYSTEM"
    assert len(publisher.on(f"user-{customer.id}")) == 1
    assert len(publisher.on("user-fb-customer")) == 1


def test_creating_notifications_requires_admin(client, auth, customer):
    auth.login(customer)
    response = client.post(
        "/notifications", json={"user_id": customer.id, "title": "x", "message": "y"}
    )
    assert response.status_code == 403


def test_unknown_recipient_and_blank_title(client, auth, admin):
    auth.login(admin)
    assert (
        client.post("/notifications", json={"user_id": 999, "title": "x", "message": "y"})
        .status_code
        == 404
    )
    assert (
        client.post("/notifications", json={"user_id": admin.id, "title": " ", "message": "y"})
        .status_code
        == 422
    )
