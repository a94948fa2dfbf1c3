# concerndesk/api/routes/health.py
from fastapi import APIRouter, Request
from sqlalchemy import text

from concerndesk.api.deps import DBDep

router = APIRouter()


@router.get("/health")
async def health(request: Request, db: DBDep):
    await db.execute(text("SELECT 1"))
    bus = request.app.state.bus
    return {
        "success": True,
        "status": "ok",
        "env": request.app.state.settings.env,
        "realtime": {"running": bus.running, "subscribers": bus.subscriber_count},
    }
