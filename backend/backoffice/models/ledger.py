from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

SERVICE_TRANSACTION_TYPES = ("purchased", "used", "credit")


class ServiceTransaction(db.Model):
    """
    Service-minute ledger entry.

    TRANSACTION TYPES:
    - purchased: minutes bought (quantity = service.minutes_available)
    - used: minutes consumed (quantity = service.minutes_available)
    - credit: minutes granted by staff (quantity from the request, no service)

    IMMUTABLE: entries are never updated. Reversal deletes the entry and
    applies the inverse balance adjustment.
    """
    __tablename__ = "service_transactions"
    __table_args__ = (
        db.Index("ix_service_txns_user_type_created", "user_id", "type", "created_at"),
        db.Index("ix_service_txns_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)
    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    service = db.relationship("Service")
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return f"<ServiceTransaction id={self.id} user_id={self.user_id} type={self.type} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "service_id": self.service_id,
            "type": self.type,
            "quantity": self.quantity,
            "location": self.location_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductTransaction(db.Model):
    """Product sale ledger entry. IMMUTABLE once written."""
    __tablename__ = "product_transactions"
    __table_args__ = (
        db.Index("ix_product_txns_created", "created_at"),
        db.Index("ix_product_txns_product_location", "product_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")
    location = db.relationship("Location")

    def __repr__(self) -> str:
        return f"<ProductTransaction id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }
