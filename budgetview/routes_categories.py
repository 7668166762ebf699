# routes_categories.py
"""
Category management: tree view, create, rename / move, delete (with subtree).
"""

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from models import User
from budgetview.deps import flash, get_current_user, get_db, redirect, render
from budgetview.services import categories as category_service
from budgetview.services.errors import BudgetError
from budgetview.services.form_input import parse_optional_int

router = APIRouter()


@router.get("/categories", response_class=HTMLResponse)
def categories_page(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    categories = category_service.list_categories(db, user.id)
    tree = category_service.build_category_tree(categories)

    return render(
        request,
        "categories.html",
        {
            "user": user,
            "tree": tree,
            "rows": list(category_service.flatten_tree(tree)),
            # Only roots can take children
            "parent_options": [node.category for node in tree],
        },
    )


@router.post("/categories")
def create_category(
    request: Request,
    name: str = Form(""),
    parent_id: str = Form(""),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = category_service.create_category(db, user.id, name, parse_optional_int(parent_id))
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, f'"{category.name}" has been added.')
    return redirect("/categories")


@router.post("/categories/{category_id}/edit")
def edit_category(
    category_id: int,
    request: Request,
    name: str = Form(""),
    parent_id: str = Form(""),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        category = category_service.update_category(
            db, user.id, category_id, name, parse_optional_int(parent_id)
        )
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        flash(request, f'Category has been updated to "{category.name}".')
    return redirect("/categories")


@router.post("/categories/{category_id}/delete")
def delete_category(
    category_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        name = category_service.get_category(db, user.id, category_id).name
        deleted = category_service.delete_category(db, user.id, category_id)
    except BudgetError as e:
        flash(request, e.message, "error")
    else:
        extra = f" and {len(deleted) - 1} subcategories" if len(deleted) > 1 else ""
        flash(request, f'"{name}"{extra} has been deleted.')
    return redirect("/categories")
