"""
Tests for booking endpoints: create, cancel, complete/undo and listings.

The request clock is frozen at Monday 2026-03-02 09:00 UTC and the default
class starts at 08:00, so tomorrow's session is 23 hours away.
"""

from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError

from app.models.enums import ClassStatus
from app.services.sql_store import SqlBookingTransaction

TODAY = date(2026, 3, 2)
TOMORROW = TODAY + timedelta(days=1)
IN_TWO_DAYS = TODAY + timedelta(days=2)


async def book(client: AsyncClient, headers: dict, class_id: int, booking_date: date):
    return await client.post(
        "/api/v1/bookings/",
        json={"class_id": class_id, "booking_date": booking_date.isoformat()},
        headers=headers,
    )


# --- create ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, member_headers, member, pilates, db_session):
    """Booking debits one concession and returns the new balance."""
    response = await book(client, member_headers, pilates.id, TOMORROW)

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Booking created successfully"
    assert data["concession_balance"] == 4
    assert data["used_credit"] is False
    assert data["booking"]["status"] == "confirmed"
    assert data["booking"]["used_concession"] is True
    assert data["booking"]["booking_date"] == TOMORROW.isoformat()

    await db_session.refresh(member)
    assert member.concessions == 4


@pytest.mark.asyncio
async def test_create_booking_on_credit(client: AsyncClient, make_user, auth_headers_for, pilates):
    """A member with no concessions books into credit."""
    broke = await make_user("broke@example.com", concessions=0)

    response = await book(client, auth_headers_for(broke), pilates.id, TOMORROW)

    assert response.status_code == 201
    data = response.json()
    assert data["concession_balance"] == -1
    assert data["used_credit"] is True
    assert data["message"] == (
        "Booking created using credit. Please make a payment soon to avoid booking restrictions."
    )


@pytest.mark.asyncio
async def test_create_booking_at_credit_limit(
    client: AsyncClient, make_user, auth_headers_for, pilates, db_session
):
    """Balance at -5 is rejected and nothing changes."""
    maxed = await make_user("maxed@example.com", concessions=-5)

    response = await book(client, auth_headers_for(maxed), pilates.id, TOMORROW)

    assert response.status_code == 400
    assert response.json()["error"] == "credit_limit_exceeded"

    await db_session.refresh(maxed)
    assert maxed.concessions == -5

    listing = await client.get("/api/v1/bookings/my-bookings", headers=auth_headers_for(maxed))
    assert listing.json() == []


@pytest.mark.asyncio
async def test_create_booking_unauthenticated(client: AsyncClient, pilates):
    response = await book(client, {}, pilates.id, TOMORROW)

    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"


@pytest.mark.asyncio
async def test_create_booking_with_bad_token(client: AsyncClient, pilates):
    response = await book(client, {"Authorization": "Bearer not-a-jwt"}, pilates.id, TOMORROW)
    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("days_ahead, expected", [(-1, 400), (0, 201), (14, 201), (15, 400)])
async def test_booking_window(client: AsyncClient, member_headers, pilates, days_ahead, expected):
    response = await book(client, member_headers, pilates.id, TODAY + timedelta(days=days_ahead))

    assert response.status_code == expected
    if expected == 400:
        assert response.json() == {
            "error": "invalid_booking_date",
            "message": "You can only book classes up to 14 days in advance",
        }


@pytest.mark.asyncio
async def test_create_booking_unknown_class(client: AsyncClient, member_headers):
    response = await book(client, member_headers, 9999, TOMORROW)

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_create_booking_draft_class(client: AsyncClient, member_headers, make_class):
    draft = await make_class(name="Barre (draft)", status=ClassStatus.DRAFT)

    response = await book(client, member_headers, draft.id, TOMORROW)

    assert response.status_code == 400
    assert response.json()["error"] == "class_not_available"


@pytest.mark.asyncio
async def test_create_booking_scheduled_class(client: AsyncClient, member_headers, make_class):
    """Scheduled classes open on their publish date."""
    opened = await make_class(name="HIIT", status=ClassStatus.SCHEDULED, publish_date=TODAY)
    upcoming = await make_class(name="Boxing", status=ClassStatus.SCHEDULED, publish_date=TOMORROW)

    assert (await book(client, member_headers, opened.id, IN_TWO_DAYS)).status_code == 201
    assert (await book(client, member_headers, upcoming.id, IN_TWO_DAYS)).status_code == 400


@pytest.mark.asyncio
async def test_create_booking_on_or_after_end_date(client: AsyncClient, member_headers, make_class):
    """The end date itself is no longer bookable."""
    ending = await make_class(name="Summer Bootcamp", end_date=IN_TWO_DAYS)
    class_id = ending.id

    assert (await book(client, member_headers, class_id, IN_TWO_DAYS + timedelta(days=1))).status_code == 400
    assert (await book(client, member_headers, class_id, IN_TWO_DAYS)).status_code == 400
    assert (await book(client, member_headers, class_id, TOMORROW)).status_code == 201


@pytest.mark.asyncio
async def test_duplicate_booking(client: AsyncClient, member_headers, member, pilates, db_session):
    """Same member booking the same session twice returns 409 and pays once."""
    response1 = await book(client, member_headers, pilates.id, TOMORROW)
    assert response1.status_code == 201

    response2 = await book(client, member_headers, pilates.id, TOMORROW)
    assert response2.status_code == 409
    assert response2.json()["error"] == "duplicate_booking"

    await db_session.refresh(member)
    assert member.concessions == 4


@pytest.mark.asyncio
async def test_class_full(client: AsyncClient, make_user, auth_headers_for, make_class, db_session):
    tiny = await make_class(name="Reformer 1:1", max_capacity=1)
    first = await make_user("first@example.com")
    second = await make_user("second@example.com")

    assert (await book(client, auth_headers_for(first), tiny.id, TOMORROW)).status_code == 201

    response = await book(client, auth_headers_for(second), tiny.id, TOMORROW)
    assert response.status_code == 409
    assert response.json()["error"] == "class_full"

    await db_session.refresh(second)
    assert second.concessions == 5


@pytest.mark.asyncio
async def test_storage_failure_returns_500_and_rolls_back(
    client: AsyncClient, member_headers, member, pilates, db_session, monkeypatch
):
    """A database error after the debit surfaces as a generic 500 with the debit undone."""

    async def broken_insert(self, **kwargs):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(SqlBookingTransaction, "insert_booking", broken_insert)

    response = await book(client, member_headers, pilates.id, TOMORROW)

    assert response.status_code == 500
    assert response.json()["error"] == "internal_error"
    assert "connection reset" not in response.text

    await db_session.refresh(member)
    assert member.concessions == 5


# --- cancel ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_late_cancellation(client: AsyncClient, member_headers, member, pilates, db_session):
    """Cancelling 23 hours before the class keeps the concession spent."""
    booking = (await book(client, member_headers, pilates.id, TOMORROW)).json()["booking"]

    response = await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=member_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Late cancellation: You have been charged a concession"
    assert data["is_late_cancellation"] is True
    assert data["concession_refunded"] is False
    assert data["concession_balance"] == 4
    assert data["booking"]["status"] == "late-cancelled"
    assert data["booking"]["cancelled_at"] is not None

    await db_session.refresh(member)
    assert member.concessions == 4


@pytest.mark.asyncio
async def test_early_cancellation(client: AsyncClient, member_headers, member, pilates, db_session):
    """Cancelling two days ahead refunds the concession."""
    booking = (await book(client, member_headers, pilates.id, IN_TWO_DAYS)).json()["booking"]

    response = await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=member_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Booking cancelled successfully. Your concession has been refunded."
    assert data["is_late_cancellation"] is False
    assert data["concession_refunded"] is True
    assert data["concession_balance"] == 5
    assert data["booking"]["status"] == "cancelled"

    await db_session.refresh(member)
    assert member.concessions == 5


@pytest.mark.asyncio
async def test_cancel_twice(client: AsyncClient, member_headers, member, pilates, db_session):
    """Second cancel is rejected and does not refund again."""
    booking = (await book(client, member_headers, pilates.id, IN_TWO_DAYS)).json()["booking"]
    await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=member_headers)

    response = await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=member_headers)

    assert response.status_code == 400
    assert response.json() == {
        "error": "invalid_transition",
        "message": "Only confirmed bookings can be cancelled",
    }
    await db_session.refresh(member)
    assert member.concessions == 5


@pytest.mark.asyncio
async def test_cancel_other_members_booking(
    client: AsyncClient, member_headers, make_user, auth_headers_for, pilates
):
    booking = (await book(client, member_headers, pilates.id, IN_TWO_DAYS)).json()["booking"]
    stranger = await make_user("stranger@example.com")

    response = await client.patch(
        f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers_for(stranger)
    )

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_admin_can_cancel_any_booking(
    client: AsyncClient, member_headers, admin_headers, member, admin, pilates, db_session
):
    booking = (await book(client, member_headers, pilates.id, IN_TWO_DAYS)).json()["booking"]

    response = await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["concession_balance"] == 5

    await db_session.refresh(member)
    await db_session.refresh(admin)
    assert member.concessions == 5
    assert admin.concessions == 0


@pytest.mark.asyncio
async def test_cancel_unknown_booking(client: AsyncClient, member_headers):
    response = await client.patch("/api/v1/bookings/424242/cancel", headers=member_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_rebook_after_cancellation(client: AsyncClient, member_headers, member, pilates, db_session):
    """A cancelled booking does not block booking the same session again."""
    first = (await book(client, member_headers, pilates.id, IN_TWO_DAYS)).json()["booking"]
    await client.patch(f"/api/v1/bookings/{first['id']}/cancel", headers=member_headers)

    response = await book(client, member_headers, pilates.id, IN_TWO_DAYS)

    assert response.status_code == 201
    assert response.json()["booking"]["id"] != first["id"]
    await db_session.refresh(member)
    assert member.concessions == 4


# --- complete / undo ----------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_and_undo_class(
    client: AsyncClient, make_user, auth_headers_for, admin_headers, pilates
):
    for email in ("a@example.com", "b@example.com"):
        user = await make_user(email)
        assert (await book(client, auth_headers_for(user), pilates.id, TODAY)).status_code == 201

    session = {"class_id": pilates.id, "booking_date": TODAY.isoformat()}

    response = await client.patch("/api/v1/bookings/complete-class", json=session, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["updated_bookings"] == 2
    assert response.json()["message"] == "Class marked as completed for 2 booking(s)"

    roster = await client.get(
        f"/api/v1/bookings/?class_id={pilates.id}&status=completed", headers=admin_headers
    )
    assert len(roster.json()) == 2

    response = await client.patch("/api/v1/bookings/undo-complete-class", json=session, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["updated_bookings"] == 2
    assert response.json()["message"] == "Class completion undone for 2 booking(s)"

    roster = await client.get(
        f"/api/v1/bookings/?class_id={pilates.id}&status=confirmed", headers=admin_headers
    )
    assert len(roster.json()) == 2


@pytest.mark.asyncio
async def test_undo_complete_rejected_when_session_rebooked_to_capacity(
    client: AsyncClient, make_user, make_class, auth_headers_for, admin_headers
):
    spin = await make_class(name="Spin", max_capacity=1)
    class_id = spin.id
    first = auth_headers_for(await make_user("first@example.com"))
    second = auth_headers_for(await make_user("second@example.com"))
    session = {"class_id": class_id, "booking_date": TODAY.isoformat()}

    assert (await book(client, first, class_id, TODAY)).status_code == 201
    await client.patch("/api/v1/bookings/complete-class", json=session, headers=admin_headers)
    # Completion frees the seat
    assert (await book(client, second, class_id, TODAY)).status_code == 201

    response = await client.patch("/api/v1/bookings/undo-complete-class", json=session, headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["error"] == "class_full"
    roster = await client.get(f"/api/v1/bookings/?class_id={class_id}&status=confirmed", headers=admin_headers)
    assert len(roster.json()) == 1


@pytest.mark.asyncio
async def test_complete_class_requires_admin(client: AsyncClient, member_headers, pilates):
    response = await client.patch(
        "/api/v1/bookings/complete-class",
        json={"class_id": pilates.id, "booking_date": TODAY.isoformat()},
        headers=member_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_completed_booking_cannot_be_cancelled(
    client: AsyncClient, member_headers, admin_headers, pilates
):
    booking = (await book(client, member_headers, pilates.id, TODAY)).json()["booking"]
    await client.patch(
        "/api/v1/bookings/complete-class",
        json={"class_id": pilates.id, "booking_date": TODAY.isoformat()},
        headers=admin_headers,
    )

    response = await client.patch(f"/api/v1/bookings/{booking['id']}/cancel", headers=member_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_transition"


# --- listings ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_my_bookings(client: AsyncClient, member_headers, make_class, pilates):
    spin = await make_class(name="Spin", max_capacity=12)
    await book(client, member_headers, pilates.id, TOMORROW)
    await book(client, member_headers, spin.id, IN_TWO_DAYS)

    response = await client.get("/api/v1/bookings/my-bookings", headers=member_headers)

    assert response.status_code == 200
    data = response.json()
    assert [b["class_name"] for b in data] == ["Spin", "Morning Pilates"]
    assert data[0]["booking_date"] == IN_TWO_DAYS.isoformat()
    assert data[0]["class_time"] == "08:00:00"
    assert data[0]["instructor"] == "Emma Wilson"


@pytest.mark.asyncio
async def test_my_bookings_only_shows_own(
    client: AsyncClient, member_headers, make_user, auth_headers_for, pilates
):
    await book(client, member_headers, pilates.id, TOMORROW)
    other = await make_user("other@example.com")

    response = await client.get("/api/v1/bookings/my-bookings", headers=auth_headers_for(other))

    assert response.json() == []


@pytest.mark.asyncio
async def test_admin_booking_list_filters(
    client: AsyncClient, member_headers, admin_headers, member, pilates
):
    await book(client, member_headers, pilates.id, TOMORROW)
    await book(client, member_headers, pilates.id, IN_TWO_DAYS)

    everything = await client.get("/api/v1/bookings/", headers=admin_headers)
    assert everything.status_code == 200
    assert len(everything.json()) == 2

    by_date = await client.get(
        f"/api/v1/bookings/?booking_date={TOMORROW.isoformat()}", headers=admin_headers
    )
    assert [b["booking_date"] for b in by_date.json()] == [TOMORROW.isoformat()]

    by_user = await client.get(f"/api/v1/bookings/?user_id={member.id}", headers=admin_headers)
    assert len(by_user.json()) == 2


@pytest.mark.asyncio
async def test_admin_booking_list_requires_admin(client: AsyncClient, member_headers):
    response = await client.get("/api/v1/bookings/", headers=member_headers)
    assert response.status_code == 403
