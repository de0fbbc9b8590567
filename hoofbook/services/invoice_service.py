"""
Repositorio de facturas con sus ítems.
"""

import uuid
from decimal import Decimal

from hoofbook.models import EntityType, Invoice, InvoiceItem
from hoofbook.schemas.remote import InvoiceDTO, InvoiceItemDTO
from hoofbook.services.repository_service import CompositeRepository


class InvoiceRepository(CompositeRepository[Invoice]):
    entity_type = EntityType.INVOICE
    model = Invoice
    schema = InvoiceDTO
    children_attr = "items"
    child_model = InvoiceItem
    child_schema = InvoiceItemDTO

    def _build_child(self, entity: Invoice, values: dict) -> InvoiceItem:
        values = {k: v for k, v in values.items() if k != "invoice_id"}
        item_id = values.pop("id", None) or str(uuid.uuid4())
        quantity = values.setdefault("quantity", 1)
        unit_price = Decimal(str(values.get("unit_price", "0.00")))
        values["unit_price"] = unit_price
        values.setdefault("total", unit_price * quantity)
        return InvoiceItem(
            id=item_id,
            invoice_id=entity.id,
            **values,
        )
