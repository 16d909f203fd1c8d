# backend/routes/stock.py
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session, joinedload
from typing import Optional, List

from database import get_db
from models.stock import InventoryMovement
from models.product import Product
from models.users import User
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log, client_ip
from utils.errors import InventoryError
from utils import stock_ledger
import schemas.stock as stock_schemas

router = APIRouter(tags=["Stock"])


@router.get("/", response_model=stock_schemas.StockMovementPage)
def list_movements(
    q: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: str = "movement_date",
    order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = (
        db.query(InventoryMovement)
        .join(Product, Product.stock_code == InventoryMovement.product_stock_code)
        .options(joinedload(InventoryMovement.product), joinedload(InventoryMovement.supplier))
    )

    # Filter by product name or stock code
    if q:
        like = f"%{stock_ledger.escape_like(q.strip())}%"
        query = query.filter(
            Product.name.ilike(like, escape=stock_ledger.LIKE_ESCAPE)
            | Product.stock_code.ilike(like, escape=stock_ledger.LIKE_ESCAPE)
        )
    if type:
        query = query.filter(InventoryMovement.movement_type == type.lower())

    # Sort results
    col = InventoryMovement.movement_date if sort_by == "movement_date" else InventoryMovement.id
    if order == "desc":
        query = query.order_by(col.desc(), InventoryMovement.id.desc())
    else:
        query = query.order_by(col.asc(), InventoryMovement.id.asc())

    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()

    results = [stock_ledger.movement_to_dict(m) for m in items]
    return {"items": results, "total": total, "page": page, "page_size": page_size}


@router.post("/adjust", response_model=stock_schemas.StockChangeResponse)
def adjust_stock(
    payload: stock_schemas.StockAdjustmentCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = current_user.id
    try:
        result = stock_ledger.adjust_stock(
            db,
            payload.product_stock_code,
            payload.change_quantity,
            payload.notes,
            current_user,
            supplier_id=payload.supplier_id,
        )
    except InventoryError as exc:
        db.rollback()
        write_log(
            db, user_id=user_id, action="STOCK_ADJUSTMENT", resource="stock", status="FAIL",
            stock_code=stock_ledger.norm_code(payload.product_stock_code),
            ip=client_ip(request),
            meta={"stock_code": payload.product_stock_code, "change": payload.change_quantity, "reason": exc.message},
        )
        raise

    write_log(
        db, user_id=user_id, action="STOCK_ADJUSTMENT", resource="stock",
        status="SUCCESS" if result.movement_recorded else "PARTIAL", stock_code=result.stock_code,
        ip=client_ip(request),
        meta={
            "stock_code": result.stock_code,
            "change": result.change_quantity,
            "new_quantity": result.new_quantity,
            "movement_id": result.movement_id,
            "alert": result.alert_action.value,
        },
    )
    return result.to_dict()


@router.post("/delivery", response_model=stock_schemas.DeliveryResponse)
def receive_delivery(
    payload: stock_schemas.DeliveryCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user_id = current_user.id
    lines = [(item.product_stock_code, item.quantity) for item in payload.items]
    try:
        outcome = stock_ledger.receive_delivery(
            db, lines, current_user, supplier_id=payload.supplier_id, notes=payload.notes,
        )
    except InventoryError as exc:
        db.rollback()
        write_log(
            db, user_id=user_id, action="STOCK_DELIVERY", resource="stock", status="FAIL",
            ip=client_ip(request),
            meta={"lines": len(lines), "supplier_id": payload.supplier_id, "reason": exc.message},
        )
        raise

    received, skipped, failed = outcome["received"], outcome["skipped"], outcome["failed"]
    complete = not failed and all(r.movement_recorded for r in received)
    if complete:
        status = "SUCCESS"
    elif received:
        status = "PARTIAL"
    else:
        status = "FAIL"

    write_log(
        db, user_id=user_id, action="STOCK_DELIVERY", resource="stock", status=status,
        ip=client_ip(request),
        meta={
            "received": {r.stock_code: r.change_quantity for r in received},
            "skipped": skipped,
            "failed": [f["stock_code"] for f in failed],
            "supplier_id": payload.supplier_id,
        },
    )

    message = f"Received {len(received)} item(s)"
    if failed:
        message += f", {len(failed)} could not be booked"
    return {
        "success": complete,
        "stock_changed": bool(received),
        "message": message,
        "received": [r.to_dict() for r in received],
        "skipped": skipped,
        "failed": failed,
    }


@router.get("/discrepancies", response_model=List[stock_schemas.StockDiscrepancy])
def list_stock_discrepancies(
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    return stock_ledger.find_unrecorded_stock_changes(db)
