# Import all models here so Alembic's env.py can discover them via Base.metadata
from procurement.models.base import Base  # noqa: F401
from procurement.models.user import User  # noqa: F401
from procurement.models.reference import Site, Location, Stage, Supplier  # noqa: F401
from procurement.models.purchasing import PurchaseOrder, POLineItem, POSequence, Invoice  # noqa: F401
from procurement.models.audit import AuditRecord  # noqa: F401
