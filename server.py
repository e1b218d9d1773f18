import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from survey.config import HISTORY_LIMIT, LOG_FORMAT, LOG_LEVEL, SERVER_HOST, SERVER_PORT, SESSION_CAP, USAGE_THRESHOLD
from survey.db_connection import DBConnection
from survey.exposure_selector import select_batch
from survey.item_store import ItemStore
from survey.survey_types import Judgment

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("survey_server")

app = FastAPI()

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ITEM_STORE: Optional[ItemStore] = None


def get_item_store() -> ItemStore:
    global _ITEM_STORE
    if _ITEM_STORE is None:
        conn = DBConnection()
        conn.create_tables()
        _ITEM_STORE = ItemStore(conn.build_db_session_factory())
    return _ITEM_STORE


def _db_error(where: str, e: Exception) -> JSONResponse:
    logger.error("%s: database error: %s", where, e)
    return JSONResponse(status_code=500, content={"error": "database error"})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "missing or invalid fields", "detail": jsonable_encoder(exc.errors())},
    )


# -----------------------
# Item pool
# -----------------------

@app.get("/items")
def get_items(
    rater_name: Optional[str] = Query(None, alias="raterName"),
    limit: int = Query(SESSION_CAP, ge=0),
    random: Optional[str] = None,  # accepted for compatibility; order is decided by the session
    store: ItemStore = Depends(get_item_store),
):
    try:
        snapshot = store.pool_snapshot(rater_name, threshold=USAGE_THRESHOLD)
    except SQLAlchemyError as e:
        return _db_error("get_items", e)

    batch = select_batch(snapshot, threshold=USAGE_THRESHOLD, limit=limit)
    if not batch:
        logger.info("No eligible items for rater=%s", rater_name)
    return [item.to_wire() for item in batch]


@app.get("/items/stats")
def get_item_stats(store: ItemStore = Depends(get_item_store)):
    try:
        return store.item_stats(threshold=USAGE_THRESHOLD)
    except SQLAlchemyError as e:
        return _db_error("get_item_stats", e)


@app.post("/items/{item_id}/increment-usage")
def increment_usage(item_id: str, store: ItemStore = Depends(get_item_store)):
    try:
        changes = store.increment_usage(item_id)
    except SQLAlchemyError as e:
        return _db_error("increment_usage", e)
    return {"message": "usage count updated", "changes": changes}


# -----------------------
# Judgment sink
# -----------------------

@app.post("/judgments")
def post_judgment(judgment: Judgment, store: ItemStore = Depends(get_item_store)):
    try:
        judgment_id = store.add_judgment(judgment)
    except SQLAlchemyError as e:
        return _db_error("post_judgment", e)
    return {"id": judgment_id, "message": "judgment saved"}


@app.get("/judgments")
def get_judgments(
    rater_name: Optional[str] = Query(None, alias="raterName"),
    limit: int = Query(HISTORY_LIMIT, ge=1),
    store: ItemStore = Depends(get_item_store),
):
    try:
        rows = store.list_judgments(rater_name=rater_name, limit=limit)
    except SQLAlchemyError as e:
        return _db_error("get_judgments", e)
    return [row.to_wire() for row in rows]


@app.get("/stats")
def get_stats(store: ItemStore = Depends(get_item_store)):
    try:
        return store.judgment_stats()
    except SQLAlchemyError as e:
        return _db_error("get_stats", e)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)
