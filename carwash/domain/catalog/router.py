"""Catalog router - wash services and the caller's vehicles"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from .repository import CatalogRepository
from .schemas import ServiceCreate, ServiceResponse, VehicleCreate, VehicleResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Catalog"])


@router.get("/services", response_model=list[ServiceResponse])
async def get_services(db: Session = Depends(get_db)):
    """List bookable wash services"""
    return CatalogRepository.get_active_services(db)


@router.post("/services", response_model=ServiceResponse, status_code=201)
async def create_service(
    body: ServiceCreate,
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = CatalogRepository.create_service(db, **body.model_dump())
    logger.info(f"✅ Service created: {service.name} (Rs{service.price})")
    return service


@router.get("/vehicles", response_model=list[VehicleResponse])
async def get_vehicles(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CatalogRepository.get_user_vehicles(db, current_user.id)


@router.post("/vehicles", response_model=VehicleResponse, status_code=201)
async def create_vehicle(
    body: VehicleCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return CatalogRepository.create_vehicle(db, current_user.id, **body.model_dump())
