# backend/routes/suppliers.py
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional

from database import get_db
from models.supplier import Supplier
from models.users import User
from utils.tokenJWT import get_current_user, role_required
from utils.audit import write_log, client_ip
from utils.stock_ledger import norm_code, search_suppliers
import schemas.supplier as supplier_schemas

router = APIRouter(prefix="/suppliers", tags=["Suppliers"])


@router.get("", response_model=List[supplier_schemas.SupplierOut])
def list_suppliers(
    name: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Supplier).filter(Supplier.deleted_at.is_(None))
    if name:
        query = query.filter(Supplier.name.ilike(f"%{name}%"))
    return query.order_by(Supplier.name).all()


@router.get("/search", response_model=supplier_schemas.SupplierSearchResponse)
def search_suppliers_endpoint(
    term: str = Query("", description="Name, supplier code or contact name"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"success": True, "results": search_suppliers(db, term)}


@router.post("", response_model=supplier_schemas.SupplierOut, status_code=201)
def create_supplier(
    payload: supplier_schemas.SupplierCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin", "acc")),
):
    code = norm_code(payload.supplier_code)
    if code and db.query(Supplier).filter(Supplier.supplier_code == code).first():
        raise HTTPException(status_code=409, detail="Supplier code already exists")

    supplier = Supplier(
        name=payload.name.strip(),
        supplier_code=code,
        contact_name=payload.contact_name,
        phone=payload.phone,
        email=payload.email,
    )
    db.add(supplier)
    db.commit()
    db.refresh(supplier)

    write_log(
        db, user_id=current_user.id, action="SUPPLIER_CREATE", resource="suppliers",
        status="SUCCESS", ip=client_ip(request), meta={"id": supplier.id, "code": supplier.supplier_code},
    )
    return supplier
