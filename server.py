"""FastAPI server exposing Amazon order import, matching and review actions."""

import logging
from datetime import date
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from categorizer import ensure_amazon_categories
from database import SessionLocal
from errors import (
    EmptyExportError,
    InvalidTransition,
    LinkConflict,
    NothingToUndo,
    OrderNotFound,
    TransactionNotFound,
    WorkflowError,
)
from insights import order_stats, suggest_transaction_splits
from linker import auto_match_orders
from order_import import import_orders
from repository import AmazonRepository
from verification import MatchWorkflow, verify_transaction_category, unverify_transaction_category

logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Amazon Reconciliation Server", version="0.2.0")


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_repo(db: Session = Depends(get_db)) -> AmazonRepository:
    return AmazonRepository(db)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (OrderNotFound, TransactionNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (LinkConflict, InvalidTransition, NothingToUndo)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, EmptyExportError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.error("Request failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


class ItemOut(BaseModel):
    title: str
    price: float
    quantity: int
    category: str
    asin: Optional[str] = None
    seller: Optional[str] = None


class TransactionOut(BaseModel):
    transaction_id: str
    date: date
    amount: float
    description: str
    merchant_name: str
    category: Optional[str] = None
    confidence: int
    verified: bool
    amazon_order_id: Optional[str] = None


class OrderOut(BaseModel):
    order_id: str
    order_date: date
    total_amount: float
    payment_method: str
    status: str
    matched_transaction_id: Optional[str] = None
    match_confidence: int
    match_verified: bool
    items: List[ItemOut]
    matched_transaction: Optional[TransactionOut] = None


class MatchOut(BaseModel):
    order_id: str
    transaction_id: str
    confidence: int
    reason: str


class AutoMatchResponse(BaseModel):
    matched: int
    unmatched: int
    failed: int
    matches: List[MatchOut]


class UploadResponse(BaseModel):
    imported: int
    updated: int
    failed: int
    skipped_rows: int
    total: int
    matched: int
    unmatched: int


class LinkRequest(BaseModel):
    transaction_id: str
    confidence: int = Field(100, ge=0, le=100)


class StateResponse(BaseModel):
    order_id: str
    state: str


class SnapshotResponse(BaseModel):
    order_id: str
    transaction_id: str
    confidence: int
    verified: bool = False


class CategoryStateResponse(BaseModel):
    transaction_id: str
    category: Optional[str] = None


def _order_out(order, transaction=None) -> OrderOut:
    return OrderOut(
        order_id=order.order_id,
        order_date=order.order_date,
        total_amount=float(order.total_amount),
        payment_method=order.payment_method,
        status=order.status,
        matched_transaction_id=order.matched_transaction_id,
        match_confidence=order.match_confidence,
        match_verified=order.match_verified,
        items=[
            ItemOut(
                title=i.title,
                price=float(i.price),
                quantity=i.quantity,
                category=i.category,
                asin=i.asin,
                seller=i.seller,
            )
            for i in order.items
        ],
        matched_transaction=_transaction_out(transaction) if transaction else None,
    )


def _transaction_out(tx) -> TransactionOut:
    return TransactionOut(
        transaction_id=tx.transaction_id,
        date=tx.date,
        amount=float(tx.amount),
        description=tx.description,
        merchant_name=tx.merchant_name,
        category=tx.category,
        confidence=tx.confidence,
        verified=tx.verified,
        amazon_order_id=tx.amazon_order_id,
    )


@app.post("/amazon/upload", response_model=UploadResponse)
async def upload_orders(request: Request, repo: AmazonRepository = Depends(get_repo)):
    try:
        csv_content = (await request.body()).decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV content must be UTF-8 text")
    if not csv_content.strip():
        raise HTTPException(status_code=400, detail="No CSV content provided")

    try:
        imported = import_orders(repo, csv_content)
        matched = auto_match_orders(repo)
        ensure_amazon_categories(repo)
        repo.commit()
    except EmptyExportError as exc:
        raise _http_error(exc)

    return UploadResponse(
        imported=imported.imported,
        updated=imported.updated,
        failed=imported.failed,
        skipped_rows=imported.skipped_rows,
        total=imported.total,
        matched=matched.matched,
        unmatched=matched.unmatched,
    )


@app.get("/amazon/orders", response_model=List[OrderOut])
async def list_orders(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    matched: Optional[bool] = None,
    repo: AmazonRepository = Depends(get_repo),
):
    return [_order_out(o) for o in repo.get_orders(start_date=start_date, end_date=end_date, matched=matched)]


@app.get("/amazon/orders/{order_id}", response_model=OrderOut)
async def get_order(order_id: str, repo: AmazonRepository = Depends(get_repo)):
    order = repo.get_order(order_id)
    if order is None:
        raise _http_error(OrderNotFound(order_id))
    transaction = repo.get_transaction(order.matched_transaction_id) if order.matched_transaction_id else None
    return _order_out(order, transaction)


@app.get("/amazon/stats")
async def get_stats(repo: AmazonRepository = Depends(get_repo)):
    return order_stats(repo.get_orders())


@app.post("/amazon/orders/{order_id}/link", response_model=StateResponse)
async def link_order(order_id: str, req: LinkRequest, repo: AmazonRepository = Depends(get_repo)):
    try:
        state = MatchWorkflow(repo).link(order_id, req.transaction_id, req.confidence)
    except (OrderNotFound, TransactionNotFound, LinkConflict, WorkflowError) as exc:
        raise _http_error(exc)
    return StateResponse(order_id=order_id, state=state.value)


@app.post("/amazon/orders/{order_id}/unlink", response_model=SnapshotResponse)
async def unlink_order(order_id: str, repo: AmazonRepository = Depends(get_repo)):
    try:
        snapshot = MatchWorkflow(repo).unlink(order_id)
    except (OrderNotFound, InvalidTransition, WorkflowError) as exc:
        raise _http_error(exc)
    return SnapshotResponse(**snapshot.__dict__)


@app.post("/amazon/orders/{order_id}/verify", response_model=StateResponse)
async def verify_order(order_id: str, repo: AmazonRepository = Depends(get_repo)):
    try:
        state = MatchWorkflow(repo).verify(order_id)
    except (OrderNotFound, InvalidTransition, WorkflowError) as exc:
        raise _http_error(exc)
    return StateResponse(order_id=order_id, state=state.value)


@app.post("/amazon/orders/{order_id}/unverify", response_model=StateResponse)
async def unverify_order(order_id: str, repo: AmazonRepository = Depends(get_repo)):
    try:
        state = MatchWorkflow(repo).unverify(order_id)
    except (OrderNotFound, TransactionNotFound, InvalidTransition, WorkflowError) as exc:
        raise _http_error(exc)
    return StateResponse(order_id=order_id, state=state.value)


@app.post("/amazon/undo", response_model=SnapshotResponse)
async def undo_unlink(repo: AmazonRepository = Depends(get_repo)):
    try:
        snapshot = MatchWorkflow(repo).undo()
    except (NothingToUndo, OrderNotFound, TransactionNotFound, LinkConflict, WorkflowError) as exc:
        raise _http_error(exc)
    return SnapshotResponse(**snapshot.__dict__)


@app.post("/amazon/auto-match", response_model=AutoMatchResponse)
async def auto_match(repo: AmazonRepository = Depends(get_repo)):
    result = auto_match_orders(repo)
    return AutoMatchResponse(
        matched=result.matched,
        unmatched=result.unmatched,
        failed=result.failed,
        matches=[MatchOut(**m.__dict__) for m in result.matches],
    )


@app.post("/amazon/reset")
async def reset_matchings(repo: AmazonRepository = Depends(get_repo)):
    count = repo.reset_all_matchings()
    repo.clear_undo()
    repo.commit()
    return {"count": count, "message": f"Reset {count} Amazon order matchings"}


@app.get("/amazon/transactions/{transaction_id}/splits")
async def get_splits(transaction_id: str, repo: AmazonRepository = Depends(get_repo)):
    tx = repo.get_transaction(transaction_id)
    if tx is None:
        raise _http_error(TransactionNotFound(transaction_id))
    order = repo.get_order(tx.amazon_order_id) if tx.amazon_order_id else None
    result = suggest_transaction_splits(tx, order)
    # Decimals serialize as strings; report amounts as plain numbers
    for s in result["suggestions"]:
        s["amount"] = float(s["amount"])
    for key in ("original_amount", "total_suggested"):
        if key in result:
            result[key] = float(result[key])
    return result


@app.post("/transactions/{transaction_id}/verify", response_model=CategoryStateResponse)
async def verify_category(transaction_id: str, repo: AmazonRepository = Depends(get_repo)):
    try:
        category = verify_transaction_category(repo, transaction_id)
    except (TransactionNotFound, WorkflowError) as exc:
        raise _http_error(exc)
    return CategoryStateResponse(transaction_id=transaction_id, category=category)


@app.post("/transactions/{transaction_id}/unverify", response_model=CategoryStateResponse)
async def unverify_category(
    transaction_id: str,
    original_confidence: int = Body(0, embed=True, ge=0, le=100),
    repo: AmazonRepository = Depends(get_repo),
):
    try:
        category = unverify_transaction_category(repo, transaction_id, original_confidence)
    except (TransactionNotFound, WorkflowError) as exc:
        raise _http_error(exc)
    return CategoryStateResponse(transaction_id=transaction_id, category=category)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("server:app", host="0.0.0.0", port=8001, reload=True)
