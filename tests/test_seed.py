from busops.models.models import Mission, Notification, User, Vehicle
from busops.schemas.missions import MissionStatus

from scripts.seed_demo_data import seed


def test_seed_is_idempotent(db):
    first = seed(db)
    seed(db)
    assert db.query(User).count() == 3
    assert db.query(Vehicle).count() == 2
    missions = db.query(Mission).all()
    assert len(missions) == 2
    assert all(m.status == MissionStatus.PENDING.value for m in missions)
    # each driver got exactly one proposal
    for driver in first["drivers"]:
        assert db.query(Notification).filter(Notification.user_id == driver.id).count() == 1
