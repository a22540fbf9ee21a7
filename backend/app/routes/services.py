from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app import models, schemas
from app.auth import require_admin
from app.database import get_db
from app.services import workflow

router = APIRouter()


def _get_service_or_404(db: Session, service_id: str) -> models.Service:
    service = db.get(models.Service, service_id)
    if not service:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


# ----------------------------
# Public catalog
# ----------------------------
@router.get("", response_model=List[schemas.ServiceRead])
def list_services(
    category: Optional[models.ServiceCategory] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    q = db.query(models.Service).filter(models.Service.is_active.is_(True))
    if category:
        q = q.filter(models.Service.category == category)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(models.Service.name.ilike(term), models.Service.description.ilike(term)))
    return q.order_by(models.Service.name.asc()).all()


@router.get("/categories", response_model=List[str])
def list_categories():
    return [c.value for c in models.ServiceCategory]


@router.get("/{service_id}", response_model=schemas.ServiceRead)
def get_service(service_id: str, db: Session = Depends(get_db)):
    service = _get_service_or_404(db, service_id)
    if not service.is_active:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


# ----------------------------
# Admin
# ----------------------------
@router.post("", response_model=schemas.ServiceRead)
def create_service(
    payload: schemas.ServiceCreate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    service = models.Service(**payload.model_dump())
    try:
        db.add(service)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(service)
    return service


@router.patch("/{service_id}", response_model=schemas.ServiceRead)
def update_service(
    service_id: str,
    payload: schemas.ServiceUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    service = _get_service_or_404(db, service_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(service, field, value)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(service)
    return service


@router.delete("/{service_id}")
def delete_service(
    service_id: str,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_admin),
):
    service = _get_service_or_404(db, service_id)
    try:
        workflow.delete_service(db, service)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"message": "Service deleted successfully"}
