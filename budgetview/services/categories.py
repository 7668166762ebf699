# budgetview/services/categories.py
"""
Category CRUD, tree building and cascading delete.

Categories form a forest of depth <= 2: a category may have a parent, and
that parent must itself be a root.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Category, Transaction
from .errors import NotFound, StoreRejected, ValidationFailed
from .live import mark_changed

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


@dataclass
class CategoryNode:
    category: object
    children: List["CategoryNode"] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.category.name


def _sort_key(category) -> Tuple[str, str]:
    name = category.name or ""
    return (name.casefold(), name)


# -------------------------------------------------------------------
# Tree
# -------------------------------------------------------------------

def build_category_tree(categories: Iterable) -> List[CategoryNode]:
    """
    Build the display forest in a single bucketing pass.

    Any category whose parent cannot be resolved (missing, itself, or part
    of a cycle) becomes a root. Names are sorted alphabetically at every
    level, and every category appears exactly once.
    """
    categories = list(categories)
    by_id = {c.id: c for c in categories}

    children_of: Dict[object, list] = defaultdict(list)
    roots = []
    for c in categories:
        parent_id = getattr(c, "parent_id", None)
        if parent_id is None or parent_id == c.id or parent_id not in by_id:
            roots.append(c)
        else:
            children_of[parent_id].append(c)

    placed: Set[object] = set()

    def make_node(c) -> CategoryNode:
        placed.add(c.id)
        node = CategoryNode(c)
        for child in sorted(children_of.get(c.id, []), key=_sort_key):
            if child.id not in placed:
                node.children.append(make_node(child))
        return node

    forest = [make_node(c) for c in sorted(roots, key=_sort_key)]

    # Members of a parent cycle are unreachable from any root
    orphans = [c for c in categories if c.id not in placed]
    while orphans:
        head = min(orphans, key=_sort_key)
        forest.append(make_node(head))
        orphans = [c for c in orphans if c.id not in placed]

    forest.sort(key=lambda node: _sort_key(node.category))
    return forest


def flatten_tree(nodes: Iterable[CategoryNode], depth: int = 0) -> Iterator[Tuple[int, object]]:
    """Yield (depth, category) pairs in display order."""
    for node in nodes:
        yield depth, node.category
        yield from flatten_tree(node.children, depth + 1)


def descendant_ids(categories: Iterable, root_id) -> Set:
    """Ids of `root_id` and everything below it, collected in one traversal."""
    children_of: Dict[object, list] = defaultdict(list)
    for c in categories:
        if c.parent_id is not None:
            children_of[c.parent_id].append(c.id)

    collected = set()
    stack = [root_id]
    while stack:
        current = stack.pop()
        if current in collected:
            continue
        collected.add(current)
        stack.extend(children_of.get(current, []))
    return collected


# -------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------

def list_categories(db: Session, user_id: int) -> List[Category]:
    return (
        db.query(Category)
        .filter(Category.user_id == user_id)
        .order_by(Category.name)
        .all()
    )


def get_category(db: Session, user_id: int, category_id: int) -> Category:
    category = (
        db.query(Category)
        .filter(Category.id == category_id, Category.user_id == user_id)
        .first()
    )
    if category is None:
        raise NotFound("That category no longer exists.")
    return category


def category_labels(categories: Iterable) -> Dict[object, str]:
    """id -> 'Parent / Child' style label for selects and tables."""
    by_id = {c.id: c for c in categories}
    labels = {}
    for c in by_id.values():
        parent = by_id.get(c.parent_id) if c.parent_id is not None else None
        labels[c.id] = f"{parent.name} / {c.name}" if parent is not None and parent.id != c.id else c.name
    return labels


# -------------------------------------------------------------------
# Mutations
# -------------------------------------------------------------------

def _clean_name(name) -> str:
    name = str(name or "").strip()
    if not name:
        raise ValidationFailed("Category name is required.")
    if len(name) > 100:
        raise ValidationFailed("Category name is too long.")
    return name


def _check_parent(db: Session, user_id: int, parent_id, category_id=None) -> None:
    if parent_id is None:
        return
    if category_id is not None and parent_id == category_id:
        raise ValidationFailed("A category cannot be its own parent.")

    parent = get_category(db, user_id, parent_id)
    if parent.parent_id is not None:
        raise ValidationFailed("Subcategories cannot have subcategories of their own.")

    if category_id is not None:
        has_children = (
            db.query(Category.id)
            .filter(Category.parent_id == category_id, Category.user_id == user_id)
            .first()
        )
        if has_children is not None:
            raise ValidationFailed("A category with subcategories cannot become a subcategory.")


def _check_unique(db: Session, user_id: int, name: str, parent_id, category_id=None) -> None:
    q = db.query(Category.id).filter(
        Category.user_id == user_id,
        func.lower(Category.name) == name.lower(),
    )
    q = q.filter(Category.parent_id.is_(None)) if parent_id is None else q.filter(Category.parent_id == parent_id)
    if category_id is not None:
        q = q.filter(Category.id != category_id)
    if q.first() is not None:
        raise ValidationFailed(f'Category "{name}" already exists.')


def _commit(db: Session, label: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[categories] %s: store rejected the batch: %r", label, e)
        raise StoreRejected("The category change could not be saved.") from e


def create_category(db: Session, user_id: int, name, parent_id=None) -> Category:
    name = _clean_name(name)
    _check_parent(db, user_id, parent_id)
    _check_unique(db, user_id, name, parent_id)

    category = Category(user_id=user_id, name=name, parent_id=parent_id)
    db.add(category)
    _commit(db, "create")
    db.refresh(category)

    logger.info("[categories] created %s %r (parent=%s)", category.id, name, parent_id)
    return category


def update_category(db: Session, user_id: int, category_id: int, name, parent_id) -> Category:
    """
    Rename and/or re-parent a category in one commit.

    The new name is checked for uniqueness under the new parent; if any
    check fails nothing is changed.
    """
    category = get_category(db, user_id, category_id)
    name = _clean_name(name)
    if parent_id != category.parent_id:
        _check_parent(db, user_id, parent_id, category_id=category.id)
    _check_unique(db, user_id, name, parent_id, category_id=category.id)

    category.name = name
    category.parent_id = parent_id
    _commit(db, "update")
    db.refresh(category)

    logger.info("[categories] updated %s %r (parent=%s)", category.id, name, parent_id)
    return category


def rename_category(db: Session, user_id: int, category_id: int, name) -> Category:
    category = get_category(db, user_id, category_id)
    return update_category(db, user_id, category_id, name, category.parent_id)


def move_category(db: Session, user_id: int, category_id: int, parent_id) -> Category:
    category = get_category(db, user_id, category_id)
    return update_category(db, user_id, category_id, category.name, parent_id)


def delete_category(db: Session, user_id: int, category_id: int) -> Set[int]:
    """
    Delete a category and its whole subtree as one batch.

    Transactions that referenced any deleted category are set to
    uncategorized in the same batch. Returns the deleted ids.
    """
    get_category(db, user_id, category_id)
    ids = descendant_ids(list_categories(db, user_id), category_id)

    try:
        (
            db.query(Transaction)
            .filter(Transaction.user_id == user_id, Transaction.category_id.in_(ids))
            .update({Transaction.category_id: None}, synchronize_session=False)
        )
        # Children first so the parent_id FK never points at a deleted row
        (
            db.query(Category)
            .filter(Category.user_id == user_id, Category.id.in_(ids), Category.parent_id.isnot(None))
            .delete(synchronize_session=False)
        )
        (
            db.query(Category)
            .filter(Category.user_id == user_id, Category.id.in_(ids))
            .delete(synchronize_session=False)
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[categories] delete: store rejected the batch: %r", e)
        raise StoreRejected("The category could not be deleted.") from e

    mark_changed(db, "categories", user_id)
    mark_changed(db, "transactions", user_id)
    _commit(db, "delete")

    logger.info("[categories] deleted %s", sorted(ids))
    return ids
