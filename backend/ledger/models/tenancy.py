from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Location(db.Model):
    """
    Multi-tenant root: every licensed premises is a Location.

    WHY: All inventory, rooms, sales and audit entries are scoped by
    location_id. Operations receive the caller's location and never touch
    rows outside it.

    DESIGN:
    - license_number is issued by the licensing authority and is globally unique
    - Lookups that miss the caller's location are reported as "not found",
      never as "forbidden", so cross-tenant existence is not revealed
    """
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    license_number = db.Column(db.String(64), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "license_number": self.license_number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Room(db.Model):
    """
    Physical room within a location (grow room, vault, drying room...).

    Rooms are soft-deleted; a deleted room cannot receive inventory.
    """
    __tablename__ = "rooms"
    __table_args__ = (
        db.UniqueConstraint("location_id", "name", name="uq_rooms_location_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    room_type = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    location = db.relationship("Location", backref=db.backref("rooms", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Room id={self.id} name={self.name!r} location_id={self.location_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "name": self.name,
            "room_type": self.room_type,
            "created_at": to_utc_z(self.created_at),
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
        }
