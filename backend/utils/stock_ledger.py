# backend/utils/stock_ledger.py
"""Stock ledger: the only code path that changes a product's quantity on hand.

Every change is applied in three steps, each committed on its own:

1. the quantity is written with an optimistic conditional update,
2. the product's low-stock alert is reconciled with the new quantity,
3. an append-only inventory movement is recorded.

Failures before step 1 raise an ``InventoryError`` and leave nothing behind.
Once step 1 is committed the stock number stands: an alert failure becomes a
warning, a movement failure is reported as a partial failure
(``StockChangeResult.movement_recorded`` is False).
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.product import Product
from models.stock import InventoryMovement, MovementType
from models.supplier import Supplier
from utils.alerts import AlertAction, reconcile_low_stock_alert
from utils.errors import InvalidInput, InventoryError, InvariantViolation, NotFound, StoreFailure, Unauthorized

logger = logging.getLogger(__name__)

NOTES_MAX_LENGTH = 500
LIKE_ESCAPE = "\\"

# Success message per movement type; anything else reads as an adjustment
CHANGE_MESSAGES = {
    MovementType.INITIAL_STOCK.value: "Opening stock recorded.",
    MovementType.PURCHASE_RECEIVED.value: "Delivery received.",
    MovementType.SALE.value: "Sale recorded.",
    MovementType.CUSTOMER_RETURN.value: "Customer return recorded.",
    MovementType.SUPPLIER_RETURN.value: "Return to supplier recorded.",
    MovementType.INVENTORY_COUNT_DISCREPANCY.value: "Stock count correction recorded.",
}


@dataclass
class StockChangeResult:
    stock_code: str
    movement_type: str
    change_quantity: int
    previous_quantity: int
    new_quantity: int
    movement_id: Optional[int] = None
    alert_action: AlertAction = AlertAction.NONE
    warnings: List[str] = field(default_factory=list)

    @property
    def movement_recorded(self) -> bool:
        return self.movement_id is not None

    def to_dict(self) -> dict:
        if self.movement_recorded:
            label = CHANGE_MESSAGES.get(self.movement_type, "Stock adjusted.")
            message = f"{label} New quantity: {self.new_quantity}"
        else:
            message = (
                "Stock was updated but the movement record could not be saved. "
                "Please check the product history."
            )
        return {
            "success": self.movement_recorded,
            "stock_changed": True,
            "message": message,
            "stock_code": self.stock_code,
            "movement_type": self.movement_type,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "movement_id": self.movement_id,
            "alert_action": self.alert_action.value,
            "warnings": list(self.warnings),
        }


# ---- HELPERS ----
def norm_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    c = code.strip().upper()
    return c if c else None


def escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _require_user(user) -> Tuple[int, str]:
    user_id = getattr(user, "id", None) if user is not None else None
    user_email = getattr(user, "email", None) if user is not None else None
    if user_id is None or not user_email:
        raise Unauthorized(
            "Authentication failed or the user email is missing.",
            {"general": ["Please sign in and try again."]},
        )
    return user_id, user_email


def _validate_change(change_quantity) -> None:
    if isinstance(change_quantity, bool) or not isinstance(change_quantity, int):
        raise InvalidInput("Invalid form data.", {"change_quantity": ["Quantity must be a whole number."]})
    if change_quantity == 0:
        raise InvalidInput("Invalid form data.", {"change_quantity": ["Change quantity cannot be 0."]})


def _validate_notes(notes: Optional[str]) -> None:
    if notes is not None and len(notes) > NOTES_MAX_LENGTH:
        raise InvalidInput(
            "Invalid form data.",
            {"notes": [f"Notes can be at most {NOTES_MAX_LENGTH} characters."]},
        )


def get_active_product(db: Session, stock_code: str) -> Product:
    product = (
        db.query(Product)
        .filter(Product.stock_code == stock_code, Product.deleted_at.is_(None))
        .first()
    )
    if product is None:
        raise NotFound(
            "Product not found.",
            {"product_stock_code": [f"No product with stock code {stock_code} exists."]},
        )
    return product


def get_active_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = (
        db.query(Supplier)
        .filter(Supplier.id == supplier_id, Supplier.deleted_at.is_(None))
        .first()
    )
    if supplier is None:
        raise NotFound(
            "Selected supplier was not found.",
            {"supplier_id": ["The selected supplier does not exist."]},
        )
    return supplier


def _write_quantity(db: Session, product: Product, change_quantity: int) -> Tuple[int, int]:
    """Conditional update ``quantity_on_hand: old -> old + change``, retried on a lost race."""
    attempts = max(1, settings.STOCK_UPDATE_ATTEMPTS)
    stock_code = product.stock_code
    for attempt in range(1, attempts + 1):
        current = product.quantity_on_hand or 0
        new_quantity = current + change_quantity
        if new_quantity < 0:
            raise InvariantViolation(
                "Stock cannot go negative.",
                {
                    "change_quantity": [
                        f"Current stock ({current}) cannot cover this change. "
                        f"The resulting stock would be {new_quantity}."
                    ]
                },
            )

        result = db.execute(
            update(Product)
            .where(
                Product.stock_code == stock_code,
                Product.quantity_on_hand == current,
                Product.deleted_at.is_(None),
            )
            .values(quantity_on_hand=new_quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.commit()
            return current, new_quantity

        db.rollback()
        logger.warning(
            "Stock of %s changed concurrently (attempt %s/%s), re-reading", stock_code, attempt, attempts
        )
        product = get_active_product(db, stock_code)

    raise StoreFailure(
        "Stock was changed by another operation too many times. Please try again.",
        {"general": [f"Gave up after {attempts} attempts."]},
    )


def _append_movement(db: Session, **fields) -> InventoryMovement:
    movement = InventoryMovement(**fields)
    db.add(movement)
    db.commit()
    db.refresh(movement)
    return movement


# ---- LEDGER OPERATIONS ----
def apply_stock_change(
    db: Session,
    stock_code: str,
    change_quantity: int,
    movement_type,
    user,
    notes: Optional[str] = None,
    supplier_id: Optional[int] = None,
    reference_document_id: Optional[str] = None,
) -> StockChangeResult:
    user_id, user_email = _require_user(user)

    code = norm_code(stock_code)
    if not code:
        raise InvalidInput("Invalid form data.", {"product_stock_code": ["Product stock code is required."]})
    _validate_change(change_quantity)
    _validate_notes(notes)
    try:
        movement_type = MovementType(movement_type).value
    except ValueError:
        raise InvalidInput("Invalid form data.", {"movement_type": [f"Unknown movement type: {movement_type}."]})

    try:
        product = get_active_product(db, code)
        if supplier_id is not None:
            get_active_supplier(db, supplier_id)
        previous, new_quantity = _write_quantity(db, product, change_quantity)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Updating stock of %s failed", code)
        raise StoreFailure("Could not update the product stock.", {"general": [str(exc)]}) from exc

    result = StockChangeResult(
        stock_code=code,
        movement_type=movement_type,
        change_quantity=change_quantity,
        previous_quantity=previous,
        new_quantity=new_quantity,
    )

    # Alert bookkeeping never undoes the stock change
    try:
        min_level = db.query(Product.min_stock_level).filter(Product.stock_code == code).scalar()
        result.alert_action = reconcile_low_stock_alert(db, code, new_quantity, min_level)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Managing low stock alert for %s failed: %s", code, exc)
        result.alert_action = AlertAction.NONE
        result.warnings.append(f"Low stock alert could not be updated: {exc}")

    try:
        movement = _append_movement(
            db,
            product_stock_code=code,
            movement_type=movement_type,
            quantity_changed=change_quantity,
            quantity_after_movement=new_quantity,
            notes=notes,
            reference_document_id=reference_document_id,
            user_id=user_id,
            user_email=user_email,
            supplier_id=supplier_id,
        )
        result.movement_id = movement.id
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Stock of %s is now %s but the movement could not be recorded: %s", code, new_quantity, exc
        )
        result.warnings.append(f"Movement record could not be saved: {exc}")

    return result


def adjust_stock(
    db: Session,
    stock_code: str,
    change_quantity: int,
    notes: Optional[str],
    user,
    supplier_id: Optional[int] = None,
) -> StockChangeResult:
    """Manual stock adjustment; the sign of the change picks the movement type."""
    _require_user(user)
    _validate_change(change_quantity)
    movement_type = (
        MovementType.ADJUSTMENT_POSITIVE if change_quantity > 0 else MovementType.ADJUSTMENT_NEGATIVE
    )
    return apply_stock_change(
        db, stock_code, change_quantity, movement_type, user, notes=notes, supplier_id=supplier_id
    )


def _delivery_lines(items: Iterable[Tuple[str, int]]) -> List[Tuple[str, int]]:
    """Normalize delivery lines, rejecting the whole delivery if any line is malformed."""
    lines: List[Tuple[str, int]] = []
    field_errors = {}
    for index, (stock_code, quantity) in enumerate(items):
        code = norm_code(stock_code)
        if not code:
            field_errors[f"items.{index}.product_stock_code"] = ["Product stock code is required."]
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            field_errors[f"items.{index}.quantity"] = ["Quantity must be a positive whole number."]
        lines.append((code, quantity))
    if not lines:
        field_errors["items"] = ["A delivery needs at least one line."]
    if field_errors:
        raise InvalidInput("Invalid form data.", field_errors)
    return lines


def receive_delivery(
    db: Session,
    items: Iterable[Tuple[str, int]],
    user,
    supplier_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> dict:
    """Book a purchase delivery: one ``purchase_received`` movement per line.

    All lines, the supplier and the notes are checked before the first write.
    After that each line is booked on its own: unknown products go to ``skipped``,
    any other ledger error goes to ``failed`` and the remaining lines are still booked.
    """
    _require_user(user)
    _validate_notes(notes)
    lines = _delivery_lines(items)
    if supplier_id is not None:
        try:
            get_active_supplier(db, supplier_id)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreFailure("Could not load the supplier.", {"general": [str(exc)]}) from exc

    received: List[StockChangeResult] = []
    skipped: List[str] = []
    failed: List[dict] = []
    for code, quantity in lines:
        try:
            received.append(
                apply_stock_change(
                    db, code, quantity, MovementType.PURCHASE_RECEIVED, user,
                    notes=notes, supplier_id=supplier_id,
                )
            )
        except NotFound:
            skipped.append(code)
        except InventoryError as exc:
            logger.warning("Delivery line %s x%s was not booked: %s", code, quantity, exc.message)
            failed.append({"stock_code": code, "quantity": quantity, "message": exc.message})
    return {"received": received, "skipped": skipped, "failed": failed}


# ---- READ SIDE ----
def search_products(db: Session, term: Optional[str], limit: Optional[int] = None) -> List[dict]:
    """Products whose name or stock code contains ``term`` (case-insensitive).

    Terms shorter than ``SEARCH_MIN_TERM_LENGTH`` return nothing without touching the database.
    """
    cleaned = (term or "").strip()
    if len(cleaned) < settings.SEARCH_MIN_TERM_LENGTH:
        return []

    escaped = escape_like(cleaned)
    contains = f"%{escaped}%"
    relevance = case(
        (func.upper(Product.stock_code) == cleaned.upper(), 0),
        (Product.name.ilike(f"{escaped}%", escape=LIKE_ESCAPE), 1),
        else_=2,
    )
    try:
        products = (
            db.query(Product)
            .filter(
                Product.deleted_at.is_(None),
                or_(
                    Product.name.ilike(contains, escape=LIKE_ESCAPE),
                    Product.stock_code.ilike(contains, escape=LIKE_ESCAPE),
                ),
            )
            .order_by(relevance, Product.name)
            .limit(limit or settings.SEARCH_RESULT_LIMIT)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("Product search failed")
        raise StoreFailure("Product search failed.", {"general": [str(exc)]}) from exc

    return [
        {"stock_code": p.stock_code, "name": p.name, "current_stock": p.quantity_on_hand or 0}
        for p in products
    ]


def search_suppliers(db: Session, term: Optional[str], limit: Optional[int] = None) -> List[dict]:
    cleaned = (term or "").strip()
    if len(cleaned) < settings.SEARCH_MIN_TERM_LENGTH:
        return []

    escaped = escape_like(cleaned)
    contains = f"%{escaped}%"
    relevance = case(
        (func.upper(Supplier.supplier_code) == cleaned.upper(), 0),
        (Supplier.name.ilike(f"{escaped}%", escape=LIKE_ESCAPE), 1),
        else_=2,
    )
    try:
        suppliers = (
            db.query(Supplier)
            .filter(
                Supplier.deleted_at.is_(None),
                or_(
                    Supplier.name.ilike(contains, escape=LIKE_ESCAPE),
                    Supplier.supplier_code.ilike(contains, escape=LIKE_ESCAPE),
                    Supplier.contact_name.ilike(contains, escape=LIKE_ESCAPE),
                ),
            )
            .order_by(relevance, Supplier.name)
            .limit(limit or settings.SEARCH_RESULT_LIMIT)
            .all()
        )
    except SQLAlchemyError as exc:
        logger.exception("Supplier search failed")
        raise StoreFailure("Supplier search failed.", {"general": [str(exc)]}) from exc

    return [
        {"id": s.id, "name": s.name, "supplier_code": s.supplier_code, "contact_name": s.contact_name}
        for s in suppliers
    ]


def get_product_movements(db: Session, stock_code: str) -> List[dict]:
    """Movement history of one product, newest first."""
    movements = (
        db.query(InventoryMovement)
        .filter(InventoryMovement.product_stock_code == stock_code)
        .order_by(InventoryMovement.movement_date.desc(), InventoryMovement.id.desc())
        .all()
    )
    return [movement_to_dict(m) for m in movements]


def movement_to_dict(m: InventoryMovement) -> dict:
    return {
        "id": m.id,
        "product_stock_code": m.product_stock_code,
        "product_name": m.product.name if m.product else "Unknown product",
        "movement_type": m.movement_type,
        "quantity_changed": m.quantity_changed,
        "quantity_after_movement": m.quantity_after_movement,
        "notes": m.notes,
        "reference_document_id": m.reference_document_id,
        "user_id": m.user_id,
        "user_email": m.user_email,
        "supplier_id": m.supplier_id,
        "supplier_name": m.supplier.name if m.supplier else None,
        "supplier_code": m.supplier.supplier_code if m.supplier else None,
        "movement_date": m.movement_date,
    }


def find_unrecorded_stock_changes(db: Session) -> List[dict]:
    """Active products whose quantity does not match their latest movement snapshot.

    These are the traces left by partial failures (stock written, movement missing).
    """
    latest = (
        db.query(
            InventoryMovement.product_stock_code.label("stock_code"),
            func.max(InventoryMovement.id).label("last_id"),
        )
        .group_by(InventoryMovement.product_stock_code)
        .subquery()
    )
    rows = (
        db.query(Product, InventoryMovement.quantity_after_movement)
        .outerjoin(latest, latest.c.stock_code == Product.stock_code)
        .outerjoin(InventoryMovement, InventoryMovement.id == latest.c.last_id)
        .filter(Product.deleted_at.is_(None))
        .order_by(Product.stock_code)
        .all()
    )

    discrepancies = []
    for product, recorded in rows:
        on_hand = product.quantity_on_hand or 0
        if on_hand != (recorded if recorded is not None else 0):
            discrepancies.append({
                "stock_code": product.stock_code,
                "name": product.name,
                "quantity_on_hand": on_hand,
                "last_recorded_quantity": recorded,
            })
    return discrepancies
