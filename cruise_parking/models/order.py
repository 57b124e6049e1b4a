import uuid
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, JSON, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
from ..utils.dates import utcnow


class Order(Base):
    """
    A WooCommerce order as last seen by the reconciler (or written via the API).

    Owns its bookings exclusively: replacing or deleting an order replaces
    or deletes every booking under it.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # WooCommerce order id - unique and stable
    external_id = Column(Integer, nullable=False, unique=True, index=True)

    status = Column(String(50), nullable=False)
    date_created = Column(DateTime, nullable=False)

    # Customer contact
    billing_first_name = Column(String(100), default="")
    billing_last_name = Column(String(100), default="")
    billing_email = Column(String(255), default="")
    billing_phone = Column(String(50), nullable=True)

    # Last write by sync or API - compared against the aggregate rebuild time
    synced_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    bookings = relationship(
        "Booking",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Booking.position",
    )

    def __repr__(self):
        return f"<Order #{self.external_id} {self.status}>"


class Booking(Base):
    """
    One line item of an order: a block of parking spaces for a cruise.

    end_date is derived from start_date + duration_nights so overlap scans
    can use a plain range predicate.
    """
    __tablename__ = "order_bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)

    # WooCommerce line item id - immutable once assigned
    external_id = Column(Integer, nullable=False)

    name = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    start_date = Column(Date, nullable=True)
    duration_nights = Column(Integer, nullable=True)
    end_date = Column(Date, nullable=True)

    meta_data = Column(JSON, nullable=True)
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="bookings")

    __table_args__ = (
        UniqueConstraint('order_id', 'external_id', name='uq_booking_order_external'),
        Index('ix_booking_span', 'start_date', 'end_date'),
    )

    def __repr__(self):
        return f"<Booking {self.name!r} x{self.quantity} {self.start_date}+{self.duration_nights}>"
