from decimal import Decimal
from types import SimpleNamespace

import pytest

from models import Category, Transaction
from budgetview.services import categories as cat_service
from budgetview.services.errors import NotFound, ValidationFailed


def cat(id, name, parent_id=None):
    return SimpleNamespace(id=id, name=name, parent_id=parent_id)


def shape(forest):
    return [(node.name, [child.name for child in node.children]) for node in forest]


# -------------------------------------------------------------------
# Tree building
# -------------------------------------------------------------------

def test_tree_nests_children_and_sorts_by_name():
    rows = [
        cat(1, "Food"),
        cat(2, "Groceries", parent_id=1),
        cat(3, "Transport"),
        cat(4, "Dining out", parent_id=1),
        cat(5, "bills"),
    ]

    forest = cat_service.build_category_tree(rows)

    assert shape(forest) == [
        ("bills", []),
        ("Food", ["Dining out", "Groceries"]),
        ("Transport", []),
    ]


def test_dangling_parent_becomes_root():
    forest = cat_service.build_category_tree([cat(1, "Food"), cat(2, "Gifts", parent_id=99)])

    assert shape(forest) == [("Food", []), ("Gifts", [])]


def test_self_parent_and_cycles_still_show_every_category_once():
    rows = [
        cat(1, "Loop A", parent_id=2),
        cat(2, "Loop B", parent_id=1),
        cat(3, "Self", parent_id=3),
        cat(4, "Plain"),
    ]

    forest = cat_service.build_category_tree(rows)
    flattened = [c.id for _, c in cat_service.flatten_tree(forest)]

    assert sorted(flattened) == [1, 2, 3, 4]
    assert [node.name for node in forest] == ["Loop A", "Plain", "Self"]
    assert [child.name for child in forest[0].children] == ["Loop B"]


def test_flatten_tree_reports_depth():
    forest = cat_service.build_category_tree([cat(1, "Food"), cat(2, "Groceries", parent_id=1)])

    assert [(depth, c.name) for depth, c in cat_service.flatten_tree(forest)] == [
        (0, "Food"),
        (1, "Groceries"),
    ]


def test_empty_tree():
    assert cat_service.build_category_tree([]) == []


def test_descendant_ids():
    rows = [cat(1, "Food"), cat(2, "Groceries", 1), cat(3, "Dining", 1), cat(4, "Transport")]

    assert cat_service.descendant_ids(rows, 1) == {1, 2, 3}
    assert cat_service.descendant_ids(rows, 4) == {4}


def test_category_labels():
    labels = cat_service.category_labels([cat(1, "Food"), cat(2, "Groceries", 1)])

    assert labels == {1: "Food", 2: "Food / Groceries"}


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

def test_create_root_and_child(session, user):
    food = cat_service.create_category(session, user.id, "  Food ")
    groceries = cat_service.create_category(session, user.id, "Groceries", parent_id=food.id)

    assert food.name == "Food"
    assert groceries.parent_id == food.id


def test_subcategories_cannot_nest_further(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    groceries = cat_service.create_category(session, user.id, "Groceries", parent_id=food.id)

    with pytest.raises(ValidationFailed):
        cat_service.create_category(session, user.id, "Fruit", parent_id=groceries.id)


def test_parent_with_children_cannot_be_moved_under_another(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    cat_service.create_category(session, user.id, "Groceries", parent_id=food.id)
    living = cat_service.create_category(session, user.id, "Living")

    with pytest.raises(ValidationFailed):
        cat_service.move_category(session, user.id, food.id, living.id)


def test_category_cannot_be_its_own_parent(session, user):
    food = cat_service.create_category(session, user.id, "Food")

    with pytest.raises(ValidationFailed):
        cat_service.move_category(session, user.id, food.id, food.id)


def test_move_to_root_and_back(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    snacks = cat_service.create_category(session, user.id, "Snacks", parent_id=food.id)

    assert cat_service.move_category(session, user.id, snacks.id, None).parent_id is None
    assert cat_service.move_category(session, user.id, snacks.id, food.id).parent_id == food.id


def test_names_are_unique_per_parent_ignoring_case(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    cat_service.create_category(session, user.id, "Other", parent_id=food.id)
    # Same name under a different parent is fine
    cat_service.create_category(session, user.id, "Other")

    with pytest.raises(ValidationFailed):
        cat_service.create_category(session, user.id, "food")
    with pytest.raises(ValidationFailed):
        cat_service.create_category(session, user.id, "OTHER", parent_id=food.id)


@pytest.mark.parametrize("name", ["", "   ", "x" * 101])
def test_invalid_names(session, user, name):
    with pytest.raises(ValidationFailed):
        cat_service.create_category(session, user.id, name)


def test_rename(session, user):
    food = cat_service.create_category(session, user.id, "Food")

    renamed = cat_service.rename_category(session, user.id, food.id, "Food & drink")

    assert renamed.name == "Food & drink"


def test_update_renames_and_moves_in_one_step(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    transport = cat_service.create_category(session, user.id, "Transport")
    bus = cat_service.create_category(session, user.id, "Bus", parent_id=transport.id)

    updated = cat_service.update_category(session, user.id, bus.id, "Snacks", food.id)

    assert updated.name == "Snacks"
    assert updated.parent_id == food.id


def test_failed_update_changes_nothing(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    transport = cat_service.create_category(session, user.id, "Transport")
    bus = cat_service.create_category(session, user.id, "Bus", parent_id=transport.id)

    with pytest.raises(ValidationFailed):
        cat_service.update_category(session, user.id, bus.id, "", food.id)

    session.expire_all()
    stored = session.get(Category, bus.id)
    assert stored.name == "Bus"
    assert stored.parent_id == transport.id


def test_update_checks_the_new_name_under_the_new_parent(session, user):
    food = cat_service.create_category(session, user.id, "Food")
    cat_service.create_category(session, user.id, "Snacks", parent_id=food.id)
    transport = cat_service.create_category(session, user.id, "Transport")
    bus = cat_service.create_category(session, user.id, "Bus", parent_id=transport.id)

    with pytest.raises(ValidationFailed, match="already exists"):
        cat_service.update_category(session, user.id, bus.id, "snacks", food.id)

    session.expire_all()
    assert session.get(Category, bus.id).parent_id == transport.id


def test_other_users_category_is_not_found(session, user, other_user):
    food = cat_service.create_category(session, user.id, "Food")

    with pytest.raises(NotFound):
        cat_service.rename_category(session, other_user.id, food.id, "Mine now")
    with pytest.raises(NotFound):
        cat_service.delete_category(session, other_user.id, food.id)


def test_delete_removes_subtree_and_uncategorizes_transactions(session, user, other_user, today):
    food = cat_service.create_category(session, user.id, "Food")
    groceries = cat_service.create_category(session, user.id, "Groceries", parent_id=food.id)
    transport = cat_service.create_category(session, user.id, "Transport")
    theirs = cat_service.create_category(session, other_user.id, "Food")
    food_id, groceries_id = food.id, groceries.id

    def add_tx(owner, category):
        tx = Transaction(
            user_id=owner.id,
            description="x",
            amount=Decimal("10"),
            date=today,
            type="expense",
            category_id=category.id,
        )
        session.add(tx)
        session.commit()
        return tx.id

    in_food = add_tx(user, food)
    in_groceries = add_tx(user, groceries)
    in_transport = add_tx(user, transport)
    in_theirs = add_tx(other_user, theirs)

    deleted = cat_service.delete_category(session, user.id, food_id)

    assert deleted == {food_id, groceries_id}
    session.expire_all()
    remaining = {c.name for c in session.query(Category).filter(Category.user_id == user.id)}
    assert remaining == {"Transport"}
    assert session.get(Transaction, in_food).category_id is None
    assert session.get(Transaction, in_groceries).category_id is None
    assert session.get(Transaction, in_transport).category_id == transport.id
    assert session.get(Transaction, in_theirs).category_id == theirs.id
