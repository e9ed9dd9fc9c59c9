from datetime import datetime, timedelta, timezone

from recruitdesk.models.user import User
from recruitdesk.roles import ROLE_LABELS, ROLE_NAMES, is_staff, role_label, role_name
from recruitdesk.utils.timefmt import ensure_aware, time_ago


def test_role_ids_map_to_names():
    assert role_name(1) == "admin"
    assert role_name(3) == "supervisor"
    assert role_name(4) == "candidate"
    assert role_name(2) == "user"
    assert role_name(None) == "user"


def test_every_named_role_has_a_label():
    for name in ROLE_NAMES.values():
        assert name in ROLE_LABELS
    assert role_label("supervisor") == "Supervisor"
    assert role_label(None) == "User"
    assert role_label("recruiter") == "Recruiter"


def test_staff_is_admin_or_supervisor():
    assert is_staff("admin")
    assert is_staff("supervisor")
    assert not is_staff("candidate")
    assert not is_staff("user")
    assert not is_staff(None)


def test_user_role_goes_through_the_role_table():
    assert User(role_id=1, username="a", email="a@x").role == "admin"
    assert User(role_id=9, username="b", email="b@x").role == "user"
    assert User(role_id=4, username="c", email="c@x", full_name=None).display_name == "c"


def test_time_ago_buckets():
    now = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)
    assert time_ago(now - timedelta(seconds=30), now) == "Just now"
    assert time_ago(now - timedelta(minutes=1), now) == "1 min ago"
    assert time_ago(now - timedelta(minutes=5), now) == "5 mins ago"
    assert time_ago(now - timedelta(hours=1), now) == "1 hour ago"
    assert time_ago(now - timedelta(hours=3), now) == "3 hours ago"
    assert time_ago(now - timedelta(days=1), now) == "1 day ago"
    assert time_ago(now - timedelta(days=4), now) == "4 days ago"


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2026, 1, 1, 8, 30)
    assert ensure_aware(naive).tzinfo is timezone.utc
    assert ensure_aware(None) is None
