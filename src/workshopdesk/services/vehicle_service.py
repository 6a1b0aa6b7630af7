from __future__ import annotations

import logging

from ..domain import Actor, Vehicle, new_id, utcnow
from ..errors import NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "plate", "brand", "model", "year", "capacity")


class VehicleService:
    def __init__(self, *, vehicle_repo) -> None:
        self.vehicle_repo = vehicle_repo

    def list_vehicles(self, conn, user_id: str) -> list[Vehicle]:
        return self.vehicle_repo.list_by_user(conn, user_id)

    def get_vehicle(self, conn, vehicle_id: str, *, actor: Actor) -> Vehicle:
        vehicle = self.vehicle_repo.get(conn, vehicle_id)
        if vehicle is None:
            raise NotFoundError("Vehicle", vehicle_id)
        if vehicle.user_id != actor.user_id:
            raise PermissionDeniedError("That vehicle belongs to another user.")
        return vehicle

    def add_vehicle(
        self,
        conn,
        *,
        actor: Actor,
        name: str,
        plate: str,
        brand: str = "",
        model: str = "",
        year: str = "",
        capacity: str = "",
        is_primary: bool = False,
    ) -> Vehicle:
        if not name or not name.strip():
            raise ValidationError("Vehicle name cannot be empty.")
        if not plate or not plate.strip():
            raise ValidationError("Plate number cannot be empty.")

        first = not self.vehicle_repo.list_by_user(conn, actor.user_id)
        vehicle = self.vehicle_repo.create(
            conn,
            vehicle=Vehicle(
                id=new_id(),
                user_id=actor.user_id,
                name=name.strip(),
                plate=plate.strip().upper(),
                brand=(brand or "").strip(),
                model=(model or "").strip(),
                year=str(year or "").strip(),
                capacity=(capacity or "").strip(),
                is_primary=False,
                created_at=utcnow(),
            ),
        )
        if first or is_primary:
            return self.set_primary(conn, vehicle.id, actor=actor)
        return vehicle

    def update_vehicle(self, conn, vehicle_id: str, *, actor: Actor, **fields) -> Vehicle:
        self.get_vehicle(conn, vehicle_id, actor=actor)
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit vehicle fields: {', '.join(sorted(unknown))}")
        clean = {k: str(v).strip() for k, v in fields.items() if v is not None}
        for required in ("name", "plate"):
            if required in clean and not clean[required]:
                raise ValidationError(f"Vehicle {required} cannot be empty.")
        if "plate" in clean:
            clean["plate"] = clean["plate"].upper()

        updated = self.vehicle_repo.update(conn, vehicle_id=vehicle_id, fields=clean)
        if updated is None:
            raise NotFoundError("Vehicle", vehicle_id)
        return updated

    def delete_vehicle(self, conn, vehicle_id: str, *, actor: Actor) -> None:
        vehicle = self.get_vehicle(conn, vehicle_id, actor=actor)
        self.vehicle_repo.delete(conn, vehicle.id)
        if vehicle.is_primary:
            rest = self.vehicle_repo.list_by_user(conn, actor.user_id)
            if rest:
                self.vehicle_repo.set_primary(conn, user_id=actor.user_id, vehicle_id=rest[0].id)
        logger.info("Vehicle %s deleted", vehicle.id)

    def set_primary(self, conn, vehicle_id: str, *, actor: Actor) -> Vehicle:
        vehicle = self.get_vehicle(conn, vehicle_id, actor=actor)
        self.vehicle_repo.set_primary(conn, user_id=actor.user_id, vehicle_id=vehicle.id)
        return self.vehicle_repo.get(conn, vehicle.id)
