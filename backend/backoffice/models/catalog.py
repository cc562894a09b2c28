from __future__ import annotations

from ..extensions import db
from ..time_utils import cents_to_units, to_utc_z, utcnow


class Service(db.Model):
    """
    Service catalog entry: a bundle of minutes sold at a fixed price.

    minutes_available is both the minutes granted by a purchase and the
    minutes consumed by a use; ledger quantities for those types always come
    from here, never from the request.
    """
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    minutes_available = db.Column(db.Integer, nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Service id={self.id} name={self.name!r} minutes={self.minutes_available}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "minutesAvailable": self.minutes_available,
            "price": cents_to_units(self.price_cents),
            "price_cents": self.price_cents,
        }


class Product(db.Model):
    """Retail product. Stock is held per location code in ProductStock."""
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    stock_levels = db.relationship(
        "ProductStock",
        backref=db.backref("product", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def stock_by_location(self) -> dict[str, int]:
        return {row.location_code: row.quantity for row in self.stock_levels}

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": cents_to_units(self.price_cents),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "description": self.description,
            "price": cents_to_units(self.price_cents),
            "price_cents": self.price_cents,
            "stock": self.stock_by_location(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductStock(db.Model):
    """
    Stock counter for one product at one legacy location code.

    No floor: quantity may go negative when sales outrun recorded stock.
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_code", name="uq_product_stock_product_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_code = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "location_code": self.location_code,
            "quantity": self.quantity,
        }
