from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._money import money_to_json


VERSION_NORMAL = "normal"
VERSION_FOIL = "foil"
VALID_VERSIONS = (VERSION_NORMAL, VERSION_FOIL)


class Card(db.Model):
    """
    Catalog entry for a single Lorcana card.

    Ids are the catalog's own string codes (e.g. "tfc-1") and are what the
    checkout sends to the gateway as line item ids, so the payment callback can
    map gateway items straight back to rows here.

    Prices live on the card (one per printing); stock lives in InventoryRecord
    so that each printing has its own conditional-decrement target.
    """
    __tablename__ = "cards"
    __table_args__ = (
        db.Index("ix_cards_set_number", "set_code", "number"),
        db.Index("ix_cards_status", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    set_code = db.Column(db.String(32), nullable=True)
    number = db.Column(db.Integer, nullable=True)
    rarity = db.Column(db.String(32), nullable=True)
    card_type = db.Column(db.String(32), nullable=True)
    image = db.Column(db.String(512), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    foil_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # approved cards are visible in the catalog
    status = db.Column(db.String(16), nullable=False, default="approved")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    inventory = db.relationship(
        "InventoryRecord",
        backref=db.backref("card", lazy=True),
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Card id={self.id!r} name={self.name!r}>"

    def price_for(self, version: str):
        return self.foil_price if version == VERSION_FOIL else self.price

    def stock_for(self, version: str) -> int:
        for record in self.inventory:
            if record.version == version:
                return record.stock
        return 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "set": self.set_code,
            "number": self.number,
            "rarity": self.rarity,
            "type": self.card_type,
            "image": self.image,
            "price": money_to_json(self.price),
            "foilPrice": money_to_json(self.foil_price),
            "normalStock": self.stock_for(VERSION_NORMAL),
            "foilStock": self.stock_for(VERSION_FOIL),
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class InventoryRecord(db.Model):
    """
    Stock for one printing of a card, keyed by (card_id, version).

    The CHECK constraint is the last line of defence; fulfillment never reads
    and writes back stock, it issues a conditional UPDATE ... WHERE stock >= qty.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_inventory_stock_non_negative"),
        db.CheckConstraint("version IN ('normal', 'foil')", name="ck_inventory_version"),
    )

    card_id = db.Column(db.String(64), db.ForeignKey("cards.id"), primary_key=True)
    version = db.Column(db.String(16), primary_key=True)
    stock = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "cardId": self.card_id,
            "version": self.version,
            "stock": self.stock,
            "updatedAt": to_utc_z(self.updated_at),
        }


class CardSubmission(db.Model):
    """
    User-submitted card data waiting for admin review.

    `card_data` holds the proposed card fields as submitted; approval turns
    them into a Card plus its inventory rows.
    """
    __tablename__ = "card_submissions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    card_data = db.Column(db.JSON, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    source = db.Column(db.String(16), nullable=False, default="manual")  # mobile | admin | manual
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    submitted_by = db.Column(db.String(64), nullable=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    reviewed_by = db.Column(db.String(64), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    card_id = db.Column(db.String(64), db.ForeignKey("cards.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "card": self.card_data,
            "images": self.images or [],
            "source": self.source,
            "status": self.status,
            "submittedBy": self.submitted_by,
            "submittedAt": to_utc_z(self.submitted_at),
            "reviewedBy": self.reviewed_by,
            "reviewedAt": to_utc_z(self.reviewed_at),
            "rejectionReason": self.rejection_reason,
            "cardId": self.card_id,
        }
