from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from conftest import next_week
from studentpool import models as m
from studentpool.errors import InvalidOperation, NotAuthorized, NotFound
from studentpool.notifications import NotificationDispatcher


def test_create_ride_starts_with_all_seats(make_user, make_ride):
    driver = make_user("Driver")
    ride = make_ride(driver, seats=3)

    assert ride.id is not None
    assert ride.seats_total == 3
    assert ride.seats_available == 3
    assert ride.status == m.RideStatus.active
    assert ride.creator_id == driver.id


def test_create_ride_splits_total_cost_with_driver(make_user, make_ride):
    ride = make_ride(make_user("Driver"), seats=3, total_cost=400.0)
    assert ride.cost_per_person == 100.0

    ride = make_ride(make_user("Other"), seats=3, total_cost=400.0, cost_per_person=150.0)
    assert ride.cost_per_person == 150.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"seats_total": 0},
        {"destination": "   "},
        {"source": ""},
        {"date_time": None},
    ],
)
def test_create_ride_rejects_missing_fields(make_user, rides, kwargs):
    driver = make_user("Driver")
    args = dict(
        creator_id=driver.id,
        destination="Airport",
        source="Campus",
        date_time=next_week(),
        seats_total=2,
    )
    args.update(kwargs)
    with pytest.raises(InvalidOperation):
        rides.create(**args)


def test_create_ride_unknown_creator(rides):
    with pytest.raises(NotFound):
        rides.create(
            creator_id=999,
            destination="Airport",
            source="Campus",
            date_time=next_week(),
            seats_total=2,
        )


def test_create_ride_notifies_every_other_user(session, make_user, make_ride):
    driver = make_user("Driver")
    riders = [make_user("Rider") for _ in range(3)]

    ride = make_ride(driver)

    notes = session.exec(
        select(m.Notification).where(m.Notification.type == m.NotificationType.new_ride)
    ).all()
    assert sorted(n.user_id for n in notes) == sorted(r.id for r in riders)
    assert all(n.ride_id == ride.id for n in notes)


def test_broadcast_failure_keeps_the_ride(session, monkeypatch, make_user, rides):
    driver = make_user("Driver")
    make_user("Rider")

    def _boom(self, *args, **kwargs):
        raise SQLAlchemyError("insert failed")

    monkeypatch.setattr(NotificationDispatcher, "notify", _boom)
    ride = rides.create(
        creator_id=driver.id,
        destination="Airport",
        source="Campus",
        date_time=next_week(),
        seats_total=2,
    )

    assert session.get(m.Ride, ride.id) is not None
    assert session.exec(select(m.Notification)).all() == []


def test_get_available_filters_and_orders(make_user, make_ride, rides):
    me = make_user("Me")
    driver = make_user("Driver")

    later = make_ride(driver, destination="Airport Terminal 2", date_time=next_week(10))
    sooner = make_ride(driver, destination="airport", date_time=next_week(3))
    make_ride(driver, destination="Railway Station", date_time=next_week(5))
    make_ride(me, destination="Airport")  # own ride
    done = make_ride(driver, destination="Airport", date_time=next_week(4))
    rides.complete(done.id, driver.id)

    found = rides.get_available(me.id, destination_contains="AIRPORT")
    assert [r.id for r in found] == [sooner.id, later.id]

    found = rides.get_available(
        me.id,
        date_from=next_week(2),
        date_to=next_week(6),
    )
    assert {r.destination for r in found} == {"airport", "Railway Station"}

    assert rides.get_available(me.id, min_seats=4) == []


def test_get_available_hides_full_rides(make_user, make_ride, rides, joins, join_notification):
    me = make_user("Me")
    driver = make_user("Driver")
    rider = make_user("Rider")
    ride = make_ride(driver, seats=1)

    joins.request_join(ride.id, rider.id)
    joins.accept_join_request(join_notification(ride, rider).id, driver.id)

    assert rides.get_available(me.id) == []


def test_delete_requires_creator(make_user, make_ride, rides):
    driver = make_user("Driver")
    other = make_user("Other")
    ride = make_ride(driver)

    with pytest.raises(NotAuthorized):
        rides.delete(ride.id, other.id)
    with pytest.raises(NotFound):
        rides.delete(ride.id + 100, driver.id)


def test_delete_removes_requests_and_notifications(session, make_user, make_ride, rides, joins):
    driver = make_user("Driver")
    a, b = make_user("Anna"), make_user("Ben")
    ride = make_ride(driver)
    ride_id = ride.id
    joins.request_join(ride_id, a.id)
    joins.request_join(ride_id, b.id)

    rides.delete(ride_id, driver.id)

    assert session.get(m.Ride, ride_id) is None
    assert session.exec(select(m.RideJoinRequest)).all() == []
    assert session.exec(
        select(m.Notification).where(m.Notification.ride_id == ride_id)
    ).all() == []
    # join status of the former requesters no longer resolves
    for user in (a, b):
        with pytest.raises(NotFound):
            joins.get_join_status(ride_id, user.id)


def test_complete_is_idempotent(make_user, make_ride, rides):
    driver = make_user("Driver")
    ride = make_ride(driver)

    assert rides.complete(ride.id, driver.id).status == m.RideStatus.completed
    assert rides.complete(ride.id, driver.id).status == m.RideStatus.completed

    with pytest.raises(NotAuthorized):
        rides.complete(ride.id, make_user("Other").id)


def test_list_mine(make_user, make_ride, rides, joins, join_notification):
    driver = make_user("Driver")
    rider = make_user("Rider")
    mine = make_ride(rider, date_time=next_week() + timedelta(days=1))
    theirs = make_ride(driver)
    joins.request_join(theirs.id, rider.id)
    joins.accept_join_request(join_notification(theirs, rider).id, driver.id)

    result = rides.list_mine(rider.id)

    assert [r.id for r in result["created"]] == [mine.id]
    assert [r.id for r in result["joined"]] == [theirs.id]


def test_destination_wildcards_match_literally(make_user, make_ride, rides):
    me = make_user("Me")
    driver = make_user("Driver")
    make_ride(driver, destination="Airport")
    gate = make_ride(driver, destination="Gate_5 parking")
    promo = make_ride(driver, destination="100% Mall")

    assert [r.id for r in rides.get_available(me.id, destination_contains="%")] == [promo.id]
    assert [r.id for r in rides.get_available(me.id, destination_contains="_")] == [gate.id]
    assert rides.get_available(me.id, destination_contains="a%t") == []


def test_timestamps_are_naive_utc(make_user, make_ride):
    ride = make_ride(make_user("Driver"))

    assert ride.created_at.tzinfo is None
    assert ride.date_time.tzinfo is None
    assert abs(datetime.utcnow() - ride.created_at) < timedelta(minutes=1)
