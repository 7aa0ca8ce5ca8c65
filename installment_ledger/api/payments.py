"""
Installment payment endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query, status

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import (
    ApplyPaymentRequest, CreatePaymentRequest, entry_response, parse_date, parse_datetime
)
from ..exceptions import LedgerError
from ..ledger_math import PaymentStatus


router = APIRouter()


@router.get("")
async def list_payments(
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    plan_id: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List payment entries, optionally filtered"""
    try:
        payment_status = PaymentStatus(status_filter) if status_filter else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status_filter}")

    entries = system.payments.list_entries(
        status=payment_status, customer_id=customer_id, plan_id=plan_id
    )
    today = system.clock.today()
    return {
        "payments": [entry_response(entry, today) for entry in entries],
        "count": len(entries)
    }


@router.get("/count/pending")
async def count_pending_payments(system: LedgerSystem = Depends(get_ledger_system)):
    """Number of entries with nothing paid yet"""
    return {"count": system.payments.count_pending()}


@router.get("/count/overdue")
async def count_overdue_payments(system: LedgerSystem = Depends(get_ledger_system)):
    """Number of Pending entries past their due date"""
    return {"count": system.payments.count_overdue()}


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get payment entry details"""
    try:
        entry = system.payments.get_entry(payment_id)
        return entry_response(entry, system.clock.today())

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: CreatePaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create the first payment entry of a plan"""
    try:
        entry = system.payments.create_initial_payment(
            plan_id=request.plan_id,
            customer_id=request.customer_id,
            amount_due=request.amount_due.to_money() if request.amount_due else None,
            due_date=parse_date(request.due_date, "due_date") if request.due_date else None,
            amount_paid=request.amount_paid.to_money() if request.amount_paid else None,
            notes=request.notes,
            payment_date=(parse_datetime(request.payment_date, "payment_date")
                          if request.payment_date else None)
        )
        return {
            "payment_id": entry.id,
            "payment": entry_response(entry, system.clock.today()),
            "message": "Installment payment created successfully"
        }

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.put("/{payment_id}")
async def apply_payment(
    payment_id: str,
    request: ApplyPaymentRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Record a payment against an entry, or edit its notes when no amount is given"""
    try:
        if request.amount_paid is None:
            entry = system.payments.update_notes(payment_id, request.notes)
            message = "Installment payment notes updated successfully"
        else:
            entry = system.payments.apply_payment(
                payment_id, request.amount_paid.to_money(), notes=request.notes
            )
            message = "Installment payment updated successfully"

        return {
            "payment": entry_response(entry, system.clock.today()),
            "message": message
        }

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete an entry nothing was paid on"""
    try:
        system.payments.delete_entry(payment_id)
        return {"message": "Installment payment deleted successfully"}

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
