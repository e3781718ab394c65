from datetime import datetime, timezone

import pytest

from busops.errors import AuthorizationError, NotFoundError, PreconditionError
from busops.models.models import Mission
from busops.schemas.missions import MissionStatus, MissionUpdate
from busops.schemas.notifications import NotificationResponse, NotificationType
from busops.services.mission_state import assign_driver, update_mission
from busops.services.notification_hub import NotificationHub
from busops.services.notifications import (
    accept,
    detect_mission_changes,
    mark_as_read,
    notifications_for_user,
    notify_mission_assigned,
    notify_mission_updated,
    pending_confirmations,
    propose_mission,
    refuse,
    unread_count,
)


def _of_type(db, user_id, notification_type):
    return [n for n in notifications_for_user(db, user_id) if n.type == notification_type.value]


@pytest.fixture
def proposal(db, admin, driver, make_mission, hub):
    mission = make_mission()
    assign_driver(db, mission.id, driver.id, admin, hub=hub)
    notice = pending_confirmations(db, driver.id)[0]
    return mission, notice


def test_propose_mission_creates_actionable_notice_only(db, driver, make_mission):
    mission = make_mission()
    notice = propose_mission(db, driver.id, mission)
    assert notice.type == NotificationType.MISSION_PENDING_CONFIRMATION.value
    assert notice.requires_action is True
    assert notice.is_read is False
    assert notice.mission_id == mission.id
    assert notice.mission_title == mission.title
    assert mission.status == MissionStatus.PENDING.value


def test_refuse_clears_driver_and_alerts_admins(db, admin, second_admin, driver, proposal, hub):
    mission, notice = proposal
    refuse(db, notice.id, driver.id, mission.id, hub=hub)

    assert mission.driver_id is None
    assert mission.status == MissionStatus.PENDING.value
    db.refresh(notice)
    assert notice.is_read is True
    assert notice.requires_action is False
    for user in (admin, second_admin):
        refused = _of_type(db, user.id, NotificationType.MISSION_REFUSED)
        assert len(refused) == 1
        assert "Jean Dupont" in refused[0].message


def test_refuse_twice_is_a_no_op(db, admin, driver, proposal):
    mission, notice = proposal
    refuse(db, notice.id, driver.id, mission.id)
    refuse(db, notice.id, driver.id, mission.id)
    assert len(_of_type(db, admin.id, NotificationType.MISSION_REFUSED)) == 1


def test_accept_assigns_mission(db, driver, proposal):
    mission, notice = proposal
    accept(db, notice.id, driver.id, mission.id)
    assert mission.status == MissionStatus.ASSIGNED.value
    assert mission.driver_id == driver.id
    db.refresh(notice)
    assert notice.is_read is True
    assert notice.requires_action is False
    assert len(_of_type(db, driver.id, NotificationType.MISSION_ACCEPTED)) == 1
    assert pending_confirmations(db, driver.id) == []


def test_accept_twice_creates_one_acceptance(db, driver, proposal):
    mission, notice = proposal
    accept(db, notice.id, driver.id, mission.id)
    again = accept(db, notice.id, driver.id, mission.id)
    assert again.id == mission.id
    assert mission.status == MissionStatus.ASSIGNED.value
    assert len(_of_type(db, driver.id, NotificationType.MISSION_ACCEPTED)) == 1


def test_accept_after_proposal_on_creation(db, driver, make_mission):
    mission = make_mission(driver_id=driver.id)
    notice = pending_confirmations(db, driver.id)[0]
    accept(db, notice.id, driver.id, mission.id)
    assert mission.status == MissionStatus.ASSIGNED.value


def test_accept_belongs_to_recipient(db, other_driver, proposal):
    mission, notice = proposal
    with pytest.raises(AuthorizationError):
        accept(db, notice.id, other_driver.id, mission.id)


def test_accept_requires_a_confirmation_request(db, driver, make_mission):
    mission = make_mission()
    notice = notify_mission_assigned(db, driver.id, mission)
    with pytest.raises(PreconditionError):
        accept(db, notice.id, driver.id, mission.id)


def test_accept_on_reassigned_mission_changes_nothing(db, admin, driver, other_driver, proposal):
    mission, notice = proposal
    update_mission(db, mission.id, MissionUpdate(driver_id=other_driver.id), admin)
    accept(db, notice.id, driver.id, mission.id)
    assert mission.driver_id == other_driver.id
    assert mission.status == MissionStatus.ASSIGNED.value
    assert _of_type(db, driver.id, NotificationType.MISSION_ACCEPTED) == []


def test_unassigned_driver_cannot_accept_old_proposal(db, admin, driver, proposal):
    mission, notice = proposal
    update_mission(db, mission.id, MissionUpdate(driver_id=None), admin)
    db.refresh(notice)
    assert notice.requires_action is False
    assert pending_confirmations(db, driver.id) == []

    accept(db, notice.id, driver.id, mission.id)
    db.refresh(mission)
    assert mission.driver_id is None
    assert mission.status == MissionStatus.PENDING.value
    assert _of_type(db, driver.id, NotificationType.MISSION_ACCEPTED) == []


def test_unassigned_driver_refusing_old_proposal_alerts_nobody(db, admin, driver, proposal):
    mission, notice = proposal
    update_mission(db, mission.id, MissionUpdate(driver_id=None), admin)
    refuse(db, notice.id, driver.id, mission.id)
    assert _of_type(db, admin.id, NotificationType.MISSION_REFUSED) == []


def test_reassignment_withdraws_previous_proposal(db, admin, driver, other_driver, proposal):
    mission, _ = proposal
    assign_driver(db, mission.id, other_driver.id, admin)
    assert pending_confirmations(db, driver.id) == []
    pending = pending_confirmations(db, other_driver.id)
    assert [n.mission_id for n in pending] == [mission.id]


def test_suppressed_reassignment_still_withdraws_proposal(db, admin, driver, other_driver, proposal):
    mission, _ = proposal
    update_mission(db, mission.id, MissionUpdate(driver_id=other_driver.id), admin, suppress_notifications=True)
    assert pending_confirmations(db, driver.id) == []


def test_accept_on_deleted_mission_is_not_found(db, driver, proposal):
    mission, notice = proposal
    db.delete(db.get(Mission, mission.id))
    db.commit()
    with pytest.raises(NotFoundError):
        accept(db, notice.id, driver.id, mission.id)
    with pytest.raises(NotFoundError):
        accept(db, "missing", driver.id, mission.id)


def test_mark_as_read_and_unread_count(db, driver, make_mission):
    mission = make_mission()
    first = notify_mission_assigned(db, driver.id, mission)
    notify_mission_updated(db, driver.id, mission, ["schedule"])
    assert unread_count(db, driver.id) == 2
    mark_as_read(db, first.id)
    mark_as_read(db, first.id)
    assert unread_count(db, driver.id) == 1


def test_notifications_are_newest_first(db, driver, make_mission):
    mission = make_mission()
    notify_mission_assigned(db, driver.id, mission)
    notify_mission_updated(db, driver.id, mission, ["title"])
    propose_mission(db, driver.id, mission)
    assert [n.type for n in notifications_for_user(db, driver.id)] == [
        NotificationType.MISSION_PENDING_CONFIRMATION.value,
        NotificationType.MISSION_UPDATED.value,
        NotificationType.MISSION_ASSIGNED.value,
    ]


def test_listener_receives_full_list(db, driver, make_mission, hub):
    received = []
    hub.register_listener(driver.id, received.append)
    mission = make_mission()
    notify_mission_assigned(db, driver.id, mission, hub=hub)
    propose_mission(db, driver.id, mission, hub=hub)
    assert len(received) == 2
    latest = received[-1]
    assert len(latest) == 2
    assert all(isinstance(n, NotificationResponse) for n in latest)
    assert latest[0].type == NotificationType.MISSION_PENDING_CONFIRMATION


def test_registering_again_replaces_listener(db, driver, make_mission, hub):
    first, second = [], []
    hub.register_listener(driver.id, first.append)
    hub.register_listener(driver.id, second.append)
    notify_mission_assigned(db, driver.id, make_mission(), hub=hub)
    assert first == []
    assert len(second) == 1


def test_unregistered_user_misses_push_but_can_requery(db, driver, make_mission, hub):
    received = []
    hub.register_listener(driver.id, received.append)
    hub.unregister_listener(driver.id)
    notify_mission_assigned(db, driver.id, make_mission(), hub=hub)
    assert received == []
    assert len(notifications_for_user(db, driver.id)) == 1


def test_failing_listener_does_not_abort_operation(db, driver, proposal, hub):
    mission, notice = proposal

    def boom(_):
        raise RuntimeError("screen gone")

    hub.register_listener(driver.id, boom)
    accept(db, notice.id, driver.id, mission.id, hub=hub)
    assert mission.status == MissionStatus.ASSIGNED.value


def test_missions_changed_channel(db, driver, proposal, hub):
    mission, notice = proposal
    pings = []
    hub.subscribe_missions(lambda: pings.append(1))
    accept(db, notice.id, driver.id, mission.id, hub=hub)
    assert pings == [1]


def test_hub_send_without_listener():
    hub = NotificationHub()
    assert hub.send_to_user("nobody", []) is False
    hub.register_listener("u1", lambda items: None)
    assert hub.has_listener("u1")
    hub.clear()
    assert not hub.has_listener("u1")


def test_detect_mission_changes():
    original = Mission(
        title="Trip",
        scheduled_departure_at=datetime(2024, 3, 15, 7, 0),
        departure_address="Lyon",
        arrival_address="Annecy",
        max_passengers=50,
    )
    update = {
        "title": "Trip",
        "scheduled_departure_at": datetime(2024, 3, 15, 7, 0, tzinfo=timezone.utc),
        "arrival_address": "Chamonix",
        "max_passengers": 40,
        "description": "new",
    }
    assert detect_mission_changes(original, update) == ["destination", "passenger count"]


def test_handshake_messages_use_given_timezone(db, driver, make_mission):
    # 23:30 in Paris is already the next morning in Auckland
    mission = make_mission(
        scheduled_departure_at=datetime(2024, 3, 15, 23, 30),
        estimated_arrival_at=datetime(2024, 3, 15, 23, 50),
    )
    notice = propose_mission(db, driver.id, mission, timezone_str="Pacific/Auckland")
    assert "16/03/2024" in notice.message

    accept(db, notice.id, driver.id, mission.id, timezone_str="Pacific/Auckland")
    accepted = _of_type(db, driver.id, NotificationType.MISSION_ACCEPTED)
    assert len(accepted) == 1


def test_handshake_messages_default_to_paris(db, driver, make_mission):
    mission = make_mission(
        scheduled_departure_at=datetime(2024, 3, 15, 23, 30),
        estimated_arrival_at=datetime(2024, 3, 15, 23, 50),
    )
    notice = propose_mission(db, driver.id, mission)
    assert "15/03/2024" in notice.message
