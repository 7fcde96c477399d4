from datetime import date

import pytest

from carwash.models import Appointment, AppointmentStatus, Notification, SlotReservation
from carwash.realtime import NEW_NOTIFICATION, SLOT_AVAILABILITY_UPDATED

DAY = "2099-01-05"
CHANNEL = f"availability-{DAY}"


@pytest.fixture
def booking(wash_service, vehicle):
    def _booking(time_slot="14:30", **overrides):
        body = {
            "service_id": wash_service.id,
            "vehicle_id": vehicle.id,
            "date": DAY,
            "time_slot": time_slot,
        }
        body.update(overrides)
        return body

    return _booking


@pytest.fixture
def other_booking(wash_service, other_vehicle):
    def _booking(time_slot="14:30"):
        return {
            "service_id": wash_service.id,
            "vehicle_id": other_vehicle.id,
            "date": DAY,
            "time_slot": time_slot,
        }

    return _booking


def test_booking_creates_pending_appointment_and_broadcasts_counts(
    client, auth, customer, booking, publisher, db
):
    auth.login(customer)
    response = client.post("/appointments", json=booking("14:30"))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["payment_status"] == "PENDING"
    assert body["time_slot"] == "2:30 PM"
    assert body["price"] == 1000.0
    assert db.query(SlotReservation).count() == 1

    events = publisher.on(CHANNEL)
    assert len(events) == 1
    event, data = events[0]
    assert event == SLOT_AVAILABILITY_UPDATED
    assert data["date"] == DAY
    assert data["timeSlotsCount"]["14:30"] == 1
    assert data["timeSlotsCount"]["2:30 PM"] == 1


def test_third_booking_in_a_slot_is_rejected_with_409(
    client, auth, customer, other_customer, booking, other_booking, db
):
    auth.login(customer)
    assert client.post("/appointments", json=booking("14:30")).status_code == 201
    auth.login(other_customer)
    assert client.post("/appointments", json=other_booking("2:30 PM")).status_code == 201

    auth.login(customer)
    response = client.post("/appointments", json=booking("2:30PM"))

    assert response.status_code == 409
    assert "fully booked" in response.json()["detail"]
    assert db.query(Appointment).count() == 2


def test_availability_endpoint(client, auth, customer, booking):
    auth.login(customer)
    client.post("/appointments", json=booking("14:30"))
    client.post("/appointments", json=booking("14:30"))
    client.post("/appointments", json=booking("9:00 AM"))

    response = client.get("/availability", params={"date": DAY})

    assert response.status_code == 200
    body = response.json()
    assert body["capacity"] == 2
    assert body["timeSlotsCount"]["2:30 PM"] == 2
    assert body["timeSlotsCount"]["09:00"] == 1
    assert body["fullyBooked"] == ["2:30 PM"]


@pytest.mark.parametrize("time_slot", ["14:15", "8:00 AM", "not a time"])
def test_slots_outside_the_grid_fail_validation(client, auth, customer, booking, time_slot):
    auth.login(customer)
    response = client.post("/appointments", json=booking(time_slot))
    assert response.status_code == 422


def test_booking_in_the_past_is_rejected(client, auth, customer, booking, db):
    auth.login(customer)
    response = client.post("/appointments", json=booking("14:30", date="2020-01-01"))
    assert response.status_code == 400
    assert db.query(Appointment).count() == 0


def test_booking_someone_elses_vehicle_is_rejected(client, auth, customer, booking, other_vehicle):
    auth.login(customer)
    response = client.post("/appointments", json=booking("14:30", vehicle_id=other_vehicle.id))
    assert response.status_code == 404


def test_unsupported_payment_method_fails_validation(client, auth, customer, booking):
    auth.login(customer)
    response = client.post("/appointments", json=booking("14:30", payment_method="CASH"))
    assert response.status_code == 422


def test_editing_within_a_full_slot_never_rejects(
    client, auth, customer, other_customer, booking, other_booking
):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]
    auth.login(other_customer)
    client.post("/appointments", json=other_booking("14:30"))

    auth.login(customer)
    response = client.patch(
        f"/appointments/{appointment_id}",
        json={"time_slot": "2:30 PM", "notes": "Please clean the mats"},
    )

    assert response.status_code == 200
    assert response.json()["notes"] == "Please clean the mats"
    assert response.json()["time_slot"] == "2:30 PM"


def test_moving_to_a_full_slot_is_rejected_and_nothing_changes(
    client, auth, customer, other_customer, booking, other_booking, db
):
    auth.login(other_customer)
    client.post("/appointments", json=other_booking("14:30"))
    client.post("/appointments", json=other_booking("14:30"))

    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("15:00")).json()["id"]

    response = client.patch(f"/appointments/{appointment_id}", json={"time_slot": "14:30"})

    assert response.status_code == 409
    appointment = db.get(Appointment, appointment_id)
    assert appointment.time_slot == "3:00 PM"
    assert appointment.reservation.slot_minutes == 15 * 60


def test_moving_updates_both_slots_and_broadcasts(client, auth, customer, booking, publisher):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]
    publisher.events.clear()

    response = client.patch(f"/appointments/{appointment_id}", json={"time_slot": "16:00"})

    assert response.status_code == 200
    assert response.json()["time_slot"] == "4:00 PM"
    (_event, data), = publisher.on(CHANNEL)
    assert data["timeSlotsCount"]["14:30"] == 0
    assert data["timeSlotsCount"]["16:00"] == 1


def test_moving_to_another_day_broadcasts_both_days(client, auth, customer, booking, publisher):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]
    publisher.events.clear()

    response = client.patch(f"/appointments/{appointment_id}", json={"date": "2099-01-06"})

    assert response.status_code == 200
    assert publisher.on(CHANNEL)[0][1]["timeSlotsCount"]["14:30"] == 0
    assert publisher.on("availability-2099-01-06")[0][1]["timeSlotsCount"]["14:30"] == 1


def test_cancelling_frees_the_seat(
    client, auth, customer, other_customer, booking, other_booking, db
):
    auth.login(customer)
    first = client.post("/appointments", json=booking("14:30")).json()["id"]
    client.post("/appointments", json=booking("14:30"))

    response = client.patch(f"/appointments/{first}", json={"status": "cancelled"})
    assert response.status_code == 200
    assert response.json()["status"] == AppointmentStatus.CANCELLED
    assert db.query(SlotReservation).filter(SlotReservation.appointment_id == first).count() == 0

    auth.login(other_customer)
    assert client.post("/appointments", json=other_booking("14:30")).status_code == 201


def test_cancelled_appointment_cannot_be_edited_by_its_owner(client, auth, customer, booking):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]
    client.patch(f"/appointments/{appointment_id}", json={"status": "CANCELLED"})

    response = client.patch(f"/appointments/{appointment_id}", json={"notes": "again"})
    assert response.status_code == 400


def test_owner_cannot_set_staff_fields(client, auth, customer, booking):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]

    assert (
        client.patch(f"/appointments/{appointment_id}", json={"status": "COMPLETED"}).status_code
        == 403
    )
    assert (
        client.patch(f"/appointments/{appointment_id}", json={"payment_status": "PAID"}).status_code
        == 403
    )


def test_staff_status_change_notifies_the_owner(
    client, auth, customer, employee, booking, publisher, db
):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]

    auth.login(employee)
    response = client.patch(f"/appointments/{appointment_id}", json={"status": "IN_PROGRESS"})

    assert response.status_code == 200
    notification = db.query(Notification).filter(Notification.user_id == customer.id).one()
    assert notification.title == "Booking Status Updated"
    assert "in progress" in notification.message
    for channel in (f"user-{customer.id}", "user-fb-customer"):
        ((event, data),) = publisher.on(channel)
        assert event == NEW_NOTIFICATION
        assert data["id"] == notification.id


def test_staff_can_reactivate_a_cancelled_booking_only_if_a_seat_is_free(
    client, auth, customer, other_customer, employee, booking, other_booking
):
    auth.login(customer)
    cancelled = client.post("/appointments", json=booking("14:30")).json()["id"]
    client.patch(f"/appointments/{cancelled}", json={"status": "CANCELLED"})

    auth.login(other_customer)
    client.post("/appointments", json=other_booking("14:30"))
    client.post("/appointments", json=other_booking("14:30"))

    auth.login(employee)
    response = client.patch(f"/appointments/{cancelled}", json={"status": "PENDING"})
    assert response.status_code == 409


def test_staff_cannot_reactivate_a_booking_in_the_past(
    client, auth, customer, employee, wash_service, vehicle, db
):
    past = Appointment(
        user_id=customer.id,
        service_id=wash_service.id,
        vehicle_id=vehicle.id,
        date=date(2020, 3, 2),
        slot_minutes=14 * 60 + 30,
        time_slot="2:30 PM",
        price=wash_service.price,
        status=AppointmentStatus.CANCELLED,
    )
    db.add(past)
    db.commit()

    auth.login(employee)
    response = client.patch(f"/appointments/{past.id}", json={"status": "PENDING"})

    assert response.status_code == 400
    db.refresh(past)
    assert past.status == AppointmentStatus.CANCELLED
    assert db.query(SlotReservation).count() == 0


def test_users_only_see_their_own_appointments(
    client, auth, customer, other_customer, employee, booking
):
    auth.login(customer)
    appointment_id = client.post("/appointments", json=booking("14:30")).json()["id"]
    assert [a["id"] for a in client.get("/appointments").json()] == [appointment_id]

    auth.login(other_customer)
    assert client.get("/appointments").json() == []
    assert client.get(f"/appointments/{appointment_id}").status_code == 404

    auth.login(employee)
    assert client.get(f"/appointments/{appointment_id}").status_code == 200
    assert len(client.get("/admin/appointments", params={"date": DAY}).json()) == 1


def test_admin_appointment_list_requires_staff(client, auth, customer):
    auth.login(customer)
    assert client.get("/admin/appointments").status_code == 403


def test_failed_availability_push_does_not_fail_the_booking(
    client, auth, customer, booking, publisher, db
):
    publisher.failing_channels.add(CHANNEL)
    auth.login(customer)

    response = client.post("/appointments", json=booking("14:30"))

    assert response.status_code == 201
    assert db.query(Appointment).count() == 1
