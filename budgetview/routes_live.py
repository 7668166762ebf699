# budgetview/routes_live.py
# Role: JSON polling endpoint over the live change feed. A browser asks for a
#       collection and gets the latest pushed rows plus a revision number that
#       moves whenever a commit changed that collection for the user.

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from models import User
from budgetview.deps import get_current_user, get_live_snapshots, session_id
from budgetview.services.live import COLLECTIONS, LiveSnapshots, row_to_dict

router = APIRouter()


@router.get("/api/live/{collection}")
def live_collection(
    collection: str,
    request: Request,
    user: User = Depends(get_current_user),
    snapshots: LiveSnapshots = Depends(get_live_snapshots),
):
    if collection not in COLLECTIONS:
        return JSONResponse(
            {"success": False, "message": f"Unknown collection: {collection}"}, status_code=404
        )

    revision, rows = snapshots.read(session_id(request), collection, user.id)
    return {"revision": revision, "items": jsonable_encoder([row_to_dict(row) for row in rows])}
