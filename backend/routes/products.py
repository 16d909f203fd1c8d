# backend/routes/products.py
import logging
from datetime import datetime, timezone
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log, client_ip
from utils.alerts import AlertAction, reconcile_low_stock_alert
from utils.pdf import generate_product_label_pdf
from utils import stock_ledger
from models.users import User
from models.product import Product
from models.stock import MovementType
import schemas.product as product_schemas
import schemas.stock as stock_schemas

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Products"])

# Catalogue editors
_can_edit = role_required("admin", "acc")


# ---- HELPERS ----
def _get_product_or_404(db: Session, stock_code: str, include_deleted: bool = False) -> Product:
    code = stock_ledger.norm_code(stock_code)
    query = db.query(Product).filter(Product.stock_code == code)
    if not include_deleted:
        query = query.filter(Product.deleted_at.is_(None))
    product = query.first()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _reconcile_alert(db: Session, stock_code: str, quantity: int, min_level: int):
    """Alert bookkeeping after a catalogue change; a store failure becomes a warning."""
    try:
        action = reconcile_low_stock_alert(db, stock_code, quantity, min_level)
        db.commit()
        return action, []
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Managing low stock alert for %s failed: %s", stock_code, exc)
        return AlertAction.NONE, [f"Low stock alert could not be updated: {exc}"]


# =========================
# PRODUCT LIST
# =========================
@router.get("/products", response_model=product_schemas.ProductListPage)
def list_products(
    name: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=500),
    sort_by: str = Query("name"),
    order: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Product)

    # Soft-deleted products are only visible to admins who ask for them
    if not (include_deleted and (current_user.role or "").lower() == "admin"):
        query = query.filter(Product.deleted_at.is_(None))

    if name: query = query.filter(Product.name.ilike(f"%{name}%"))
    if code: query = query.filter(Product.stock_code.ilike(f"%{code}%"))
    if category: query = query.filter(Product.category.ilike(f"%{category}%"))

    allowed = {
        "id": Product.id, "stock_code": Product.stock_code, "name": Product.name,
        "sale_price": Product.sale_price, "quantity_on_hand": Product.quantity_on_hand,
        "created_at": Product.created_at,
    }
    sort_col = allowed.get(sort_by.lower(), Product.name)
    query = query.order_by(sort_col.asc() if order == "asc" else sort_col.desc())

    total = query.count()
    items: List[Product] = query.offset((page - 1) * page_size).limit(page_size).all()

    return {"items": items, "total": total, "page": page, "page_size": page_size}


# =========================
# SEARCH (adjustment / sale forms)
# =========================
@router.get("/products/search", response_model=product_schemas.ProductSearchResponse)
def search_products_endpoint(
    term: str = Query("", description="Name or stock code fragment"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"success": True, "results": stock_ledger.search_products(db, term)}


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/products/{stock_code}", response_model=product_schemas.ProductOut)
def get_product(
    stock_code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_product_or_404(db, stock_code)


@router.get("/products/{stock_code}/movements", response_model=List[stock_schemas.StockMovementResponse])
def get_product_movements(
    stock_code: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = _get_product_or_404(db, stock_code, include_deleted=True)
    return stock_ledger.get_product_movements(db, product.stock_code)


@router.get("/products/{stock_code}/label")
def print_product_label(
    stock_code: str,
    copies: int = Query(1, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    product = _get_product_or_404(db, stock_code)
    pdf = generate_product_label_pdf(product, copies=copies)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="label-{product.stock_code}.pdf"'},
    )


# =========================
# CREATE PRODUCT
# =========================
@router.post("/products", response_model=product_schemas.ProductOut, status_code=201)
def add_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(_can_edit),
):
    norm_code = stock_ledger.norm_code(payload.stock_code)
    if not norm_code:
        raise HTTPException(status_code=422, detail="Stock code is required")
    # Stock codes stay reserved after a soft delete
    if db.query(Product).filter(Product.stock_code == norm_code).first():
        raise HTTPException(status_code=409, detail="Stock code already exists")

    min_level = payload.min_stock_level
    if min_level is None:
        min_level = settings.DEFAULT_MIN_STOCK_LEVEL

    new_product = Product(
        stock_code=norm_code, name=payload.name.strip(),
        description=payload.description, category=payload.category,
        purchase_price=payload.purchase_price, sale_price=payload.sale_price,
        currency=payload.currency.upper(),
        quantity_on_hand=0, min_stock_level=min_level,
    )
    db.add(new_product)
    db.commit()

    # Opening stock goes through the ledger so it has a movement and alert state
    if payload.quantity_on_hand > 0:
        opening = stock_ledger.apply_stock_change(
            db, norm_code, payload.quantity_on_hand, MovementType.INITIAL_STOCK, current_user,
            notes="Opening stock",
        )
        warnings = opening.warnings
    else:
        _, warnings = _reconcile_alert(db, norm_code, 0, min_level)

    write_log(
        db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products",
        status="SUCCESS" if not warnings else "PARTIAL", stock_code=norm_code, ip=client_ip(request),
        meta={"stock_code": norm_code, "quantity": payload.quantity_on_hand, "warnings": warnings},
    )

    return _get_product_or_404(db, norm_code)


# =========================
# PARTIAL UPDATE (PATCH)
# =========================
@router.patch("/products/{stock_code}", response_model=product_schemas.ProductOut)
def edit_product(
    stock_code: str,
    payload: product_schemas.ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(_can_edit),
):
    p = _get_product_or_404(db, stock_code)
    changes = payload.model_dump(exclude_unset=True)

    if "currency" in changes and changes["currency"]:
        changes["currency"] = changes["currency"].upper()
    if "name" in changes and changes["name"]:
        changes["name"] = changes["name"].strip()

    min_level_changed = "min_stock_level" in changes and changes["min_stock_level"] != p.min_stock_level
    for key, value in changes.items():
        if value is None and key in {"name", "purchase_price", "sale_price", "currency", "min_stock_level"}:
            continue
        setattr(p, key, value)

    db.commit()
    db.refresh(p)

    # The edit is committed first; alert bookkeeping only adds warnings
    alert_action, warnings = None, []
    if min_level_changed:
        alert_action, warnings = _reconcile_alert(db, p.stock_code, p.quantity_on_hand, p.min_stock_level)

    write_log(
        db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products",
        status="SUCCESS" if not warnings else "PARTIAL", stock_code=p.stock_code, ip=client_ip(request),
        meta={
            "stock_code": p.stock_code,
            "fields": sorted(changes.keys()),
            "alert": alert_action.value if alert_action else None,
            "warnings": warnings,
        },
    )
    return p


# =========================
# SOFT DELETE / RESTORE
# =========================
@router.delete("/products/{stock_code}")
def delete_product(
    stock_code: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(_can_edit),
):
    product = _get_product_or_404(db, stock_code)
    product.deleted_at = datetime.now(timezone.utc)
    code, pname = product.stock_code, product.name
    db.commit()
    write_log(
        db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products",
        status="SUCCESS", stock_code=code, ip=client_ip(request),
    )
    return {"detail": f"Product '{pname}' deleted"}


@router.post("/products/{stock_code}/restore", response_model=product_schemas.ProductOut)
def restore_product(
    stock_code: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(_can_edit),
):
    product = _get_product_or_404(db, stock_code, include_deleted=True)
    if product.deleted_at is not None:
        product.deleted_at = None
        db.commit()
        db.refresh(product)
        write_log(
            db, user_id=current_user.id, action="PRODUCT_RESTORE", resource="products",
            status="SUCCESS", stock_code=product.stock_code, ip=client_ip(request),
        )
    return product
