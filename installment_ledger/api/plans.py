"""
Installment plan endpoints
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, status

from .dependencies import LedgerSystem, get_ledger_system
from .schemas import CreatePlanRequest, entry_response, parse_date, plan_response
from ..exceptions import LedgerError, NotFoundError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_plan(
    request: CreatePlanRequest,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Create the installment plan of a sale"""
    try:
        plan = system.plan_manager.create_plan(
            sale_id=request.sale_id,
            customer_id=request.customer_id,
            number_of_months=request.number_of_months,
            monthly_installment=request.monthly_installment.to_money(),
            collection_start_date=parse_date(request.collection_start_date,
                                             "collection_start_date"),
            collection_end_date=parse_date(request.collection_end_date,
                                           "collection_end_date"),
            financed_amount=(request.financed_amount.to_money()
                             if request.financed_amount else None)
        )
        return {
            "plan_id": plan.id,
            "plan": plan_response(plan),
            "message": "Installment plan created successfully"
        }

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("")
async def list_plans(
    customer_id: Optional[str] = None,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """List installment plans"""
    plans = system.plan_manager.list_plans(customer_id)
    return {
        "plans": [plan_response(plan) for plan in plans],
        "count": len(plans)
    }


@router.get("/{plan_id}")
async def get_plan(
    plan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Get plan details"""
    plan = system.plan_manager.get_plan(plan_id)
    if not plan:
        error = NotFoundError("plan", plan_id)
        raise HTTPException(status_code=error.status_code, detail=error.to_dict())
    return plan_response(plan)


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Delete a plan that has no recorded payments"""
    try:
        system.plan_manager.delete_plan(plan_id)
        return {"message": "Installment plan deleted successfully"}

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/{plan_id}/payments")
async def get_plan_payments(
    plan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Payment entries of a plan in due date order"""
    try:
        entries = system.payments.entries_for_plan(plan_id)
        today = system.clock.today()
        next_entry = system.payments.next_payable_entry(plan_id)
        return {
            "plan_id": plan_id,
            "payments": [entry_response(entry, today) for entry in entries],
            "next_payment_id": next_entry.id if next_entry else None
        }

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())


@router.get("/{plan_id}/summary")
async def get_plan_summary(
    plan_id: str,
    system: LedgerSystem = Depends(get_ledger_system)
):
    """Totals and month counts of a plan"""
    try:
        return system.payments.get_summary(plan_id).to_dict()

    except LedgerError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
