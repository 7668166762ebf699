from decimal import Decimal

import pytest

from models import Category
from budgetview.services import categories as cat_service
from budgetview.services import ledger
from budgetview.services.errors import NotFound
from budgetview.services.live import ChangeFeed, LiveSnapshots
from conftest import make_goal


@pytest.fixture
def feed(session_factory):
    feed = ChangeFeed(session_factory)
    feed.install()
    yield feed
    feed.uninstall()


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, rows):
        self.calls.append(rows)

    @property
    def last(self):
        return self.calls[-1]


def test_subscriber_gets_snapshot_immediately(feed, session, user):
    make_goal(session, user, name="Existing")
    goals = Recorder()

    feed.subscribe("goals", user.id, goals)

    assert len(goals.calls) == 1
    assert [g.goal_name for g in goals.last] == ["Existing"]


def test_commit_pushes_fresh_rows(feed, session, user, today):
    goals = Recorder()
    transactions = Recorder()
    feed.subscribe("goals", user.id, goals)
    feed.subscribe("transactions", user.id, transactions)

    goal = make_goal(session, user)
    assert len(goals.calls) == 2
    assert goals.last[0].current_amount == 0

    ledger.add_direct_goal_contribution(session, user.id, goal.id, Decimal("750"), on=today)

    # The SQL-side increment is reported along with the new transaction
    assert goals.last[0].current_amount == Decimal("750")
    assert [t.amount for t in transactions.last] == [Decimal("750")]


def test_other_users_are_not_notified(feed, session, user, other_user):
    theirs = Recorder()
    feed.subscribe("categories", other_user.id, theirs)

    cat_service.create_category(session, user.id, "Food")

    assert len(theirs.calls) == 1


def test_rollback_notifies_nobody(feed, session, user):
    categories = Recorder()
    feed.subscribe("categories", user.id, categories)

    session.add(Category(user_id=user.id, name="Draft"))
    session.flush()
    session.rollback()

    assert len(categories.calls) == 1


def test_failed_ledger_batch_notifies_nobody(feed, session, user, today):
    goal = make_goal(session, user)
    goals = Recorder()
    feed.subscribe("goals", user.id, goals)

    with pytest.raises(NotFound):
        ledger.add_direct_goal_contribution(session, user.id, goal.id + 100, 5, on=today)

    assert len(goals.calls) == 1


def test_unsubscribe(feed, session, user):
    categories = Recorder()
    unsubscribe = feed.subscribe("categories", user.id, categories)
    assert feed.subscriber_count("categories", user.id) == 1

    unsubscribe()
    cat_service.create_category(session, user.id, "Food")

    assert feed.subscriber_count("categories", user.id) == 0
    assert len(categories.calls) == 1


def test_failing_subscriber_does_not_break_the_commit(feed, session, user):
    def explode(rows):
        if rows:
            raise RuntimeError("boom")

    healthy = Recorder()
    feed.subscribe("categories", user.id, explode)
    feed.subscribe("categories", user.id, healthy)

    created = cat_service.create_category(session, user.id, "Food")

    assert created.id is not None
    assert [c.name for c in healthy.last] == ["Food"]


def test_unknown_collection(feed, user):
    with pytest.raises(ValueError):
        feed.subscribe("budgets", user.id, Recorder())


def test_snapshots_bump_revision_on_push_and_release_per_browser(feed, session, user):
    snapshots = LiveSnapshots(feed)

    assert snapshots.read("browser-1", "categories", user.id) == (1, [])

    cat_service.create_category(session, user.id, "Food")
    revision, rows = snapshots.read("browser-1", "categories", user.id)
    assert revision == 2
    assert [c.name for c in rows] == ["Food"]

    snapshots.read("browser-2", "categories", user.id)
    assert feed.subscriber_count("categories", user.id) == 2

    snapshots.release("browser-1")
    assert feed.subscriber_count("categories", user.id) == 1

    # A released browser starts over with a fresh subscription
    assert snapshots.read("browser-1", "categories", user.id)[0] == 1


def test_snapshots_reject_unknown_collection(feed, user):
    with pytest.raises(ValueError):
        LiveSnapshots(feed).read("browser-1", "budgets", user.id)
