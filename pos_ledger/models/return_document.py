"""
Return model.

A return originates either from a sale (customer gives goods
back) or from a purchase (we send goods back to a supplier).
Either way it reduces the party's balance once it reaches a
counted status.
"""

from decimal import Decimal
from typing import ClassVar

from sqlalchemy import String, Numeric, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.models.base import Base
from pos_ledger.models.document import DocumentMixin, PartyReferenceMixin
from pos_ledger.models.enums import DocumentKind, ReturnOrigin, ReturnStatus


class Return(DocumentMixin, PartyReferenceMixin, Base):
    __tablename__ = "returns"

    document_kind: ClassVar[DocumentKind] = DocumentKind.RETURN

    return_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    origin: Mapped[ReturnOrigin] = mapped_column(
        SAEnum(ReturnOrigin, name="return_origin_enum", create_constraint=True),
        nullable=False,
    )
    status: Mapped[ReturnStatus] = mapped_column(
        SAEnum(ReturnStatus, name="return_status_enum", create_constraint=True),
        nullable=False,
        default=ReturnStatus.PENDING,
    )
    net_refund_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )
    total_refund_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 2), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Return {self.return_number} {self.origin.value} "
            f"({self.status.value})>"
        )
