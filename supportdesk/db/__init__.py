from .models import (
    ClientTable,
    EquipmentTable,
    InterventionCostTable,
    InterventionTable,
    TicketActivityTable,
    TicketSequenceTable,
    TicketTable,
    TicketTypeTable,
    UserTable,
)

__all__ = [
    "ClientTable",
    "EquipmentTable",
    "InterventionCostTable",
    "InterventionTable",
    "TicketActivityTable",
    "TicketSequenceTable",
    "TicketTable",
    "TicketTypeTable",
    "UserTable",
]
