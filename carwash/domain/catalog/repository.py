"""Catalog repository - Database operations for services and vehicles"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Service, Vehicle


class CatalogRepository:
    @staticmethod
    def get_active_services(db: Session) -> list[Service]:
        return db.query(Service).filter(Service.is_active.is_(True)).order_by(Service.name).all()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def create_service(db: Session, **service_data) -> Service:
        service = Service(**service_data)
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    @staticmethod
    def get_user_vehicles(db: Session, user_id: int) -> list[Vehicle]:
        return (
            db.query(Vehicle)
            .filter(Vehicle.user_id == user_id)
            .order_by(Vehicle.created_at.desc())
            .all()
        )

    @staticmethod
    def get_user_vehicle(db: Session, vehicle_id: int, user_id: int) -> Optional[Vehicle]:
        return (
            db.query(Vehicle).filter(Vehicle.id == vehicle_id, Vehicle.user_id == user_id).first()
        )

    @staticmethod
    def create_vehicle(db: Session, user_id: int, **vehicle_data) -> Vehicle:
        vehicle = Vehicle(user_id=user_id, **vehicle_data)
        db.add(vehicle)
        db.commit()
        db.refresh(vehicle)
        return vehicle
