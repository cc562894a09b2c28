from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow


class Location(db.Model):
    """
    Physical branch.

    location_code is the legacy short code ("01", "02", ...) that selects the
    stock counter a product sale draws from. It is independent of id.
    """
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    post_code = db.Column(db.String(16), nullable=True)
    location_code = db.Column(db.String(8), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} code={self.location_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "phone_number": self.phone_number,
            "post_code": self.post_code,
        }
