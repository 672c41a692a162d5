"""
Module: fieldwork_kernel.models.category
Responsibility: ORM persistence for work categories and their priced rate
    items.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - The category chain itself (cycle freedom, no dangling successor) is
      enforced by the domain CategoryGraph before the graph is saved.  The
      table stores whatever graph the domain accepted; ``next_category_id``
      carries no foreign key so that a whole graph can be replaced in one
      flush regardless of row order.
    - Rate items belong to exactly one category and are deleted with it.
"""

from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fieldwork_kernel.db.base import Base, TrackedBase


class CategoryModel(TrackedBase):
    """
    A work category row.

    ``position`` is the display order (the domain's ``Category.order``).
    """

    __tablename__ = "categories"

    __table_args__ = (Index("idx_category_position", "position"),)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    next_category_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    rates: Mapped[list["CategoryRateModel"]] = relationship(
        back_populates="category",
        cascade="all, delete-orphan",
        order_by="CategoryRateModel.position",
    )

    def __repr__(self) -> str:
        return f"<Category {self.name} -> {self.next_category_id}>"


class CategoryRateModel(Base):
    """A priced work item under a category."""

    __tablename__ = "category_rates"

    category_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    default_price: Mapped[Decimal] = mapped_column(nullable=False)

    unit: Mapped[str] = mapped_column(String(50), nullable=False)

    category: Mapped[CategoryModel] = relationship(back_populates="rates")
