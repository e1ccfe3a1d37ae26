from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from neuronnook.core.database import Database, get_database
from neuronnook.utils.logger import get_logger

logger = get_logger("health")
router = APIRouter(prefix="/health", tags=["health"])

@router.get("")
async def health_check():
    return {"status": "ok"}

@router.get("/db")
async def database_health(request: Request, database: Database = Depends(get_database)):
    try:
        await database.ping()
    except Exception as e:
        logger.error(f"DB health check failed: {e}")
        return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
    return {"ok": True, "database": request.app.state.settings.DATABASE_NAME}
