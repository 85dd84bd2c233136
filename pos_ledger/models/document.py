"""
Columns shared by every financial document.

Documents are never physically deleted. They are soft-deleted
via is_deleted and are otherwise immutable once posted, apart
from status transitions and reconciliation fixes.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, Enum as SAEnum, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pos_ledger.models.enums import PartyRole
from pos_ledger.models.party import PartyRef


class DocumentMixin:
    id: Mapped[int] = mapped_column(primary_key=True)
    # Target of LedgerEntry.reference_id
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )


class PartyReferenceMixin:
    """
    Document that belongs to either a customer or a supplier.

    The reference is a single tagged value; there is no way to
    set both a customer and a supplier on the same row.
    """

    party_role: Mapped[PartyRole] = mapped_column(
        SAEnum(PartyRole, name="party_role_enum", create_constraint=True),
        nullable=False,
        index=True,
    )
    party_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    @property
    def party_ref(self) -> PartyRef:
        return PartyRef(self.party_role, self.party_id)

    @party_ref.setter
    def party_ref(self, ref: PartyRef) -> None:
        self.party_role = ref.role
        self.party_id = ref.party_id
