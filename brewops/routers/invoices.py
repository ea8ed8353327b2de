from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from brewops.db import get_db
from brewops.schemas import InvoicePatch
from brewops.services import invoice_service
from brewops.services.invoice_service import InvoiceLineInput

router = APIRouter(prefix='/invoices', tags=['invoices'])


@router.get('/{invoice_id}')
def get_invoice(invoice_id: int, db: Session = Depends(get_db)):
    return invoice_service.get_invoice_detail(db, invoice_id)


@router.patch('/{invoice_id}')
def save_invoice(invoice_id: int, payload: InvoicePatch, db: Session = Depends(get_db)):
    lines = [
        InvoiceLineInput(
            item_name=item.item_name,
            quantity=item.quantity,
            unit=item.unit,
            price=item.price,
            has_keg_deposit=item.has_keg_deposit,
            keg_codes=list(item.keg_codes or []),
        )
        for item in payload.items or []
    ]
    detail = invoice_service.save_draft_items(db, invoice_id, lines)
    db.commit()
    return detail


@router.post('/{invoice_id}/post')
def post_invoice(invoice_id: int, db: Session = Depends(get_db)):
    invoice = invoice_service.post_invoice(db, invoice_id)
    db.commit()
    return {
        'message': 'Invoice posted successfully',
        'invoiceId': invoice.id,
        'subtotal': invoice.subtotal,
        'kegDepositTotal': invoice.keg_deposit_total,
        'total': invoice.total,
    }
