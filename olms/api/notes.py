"""
Note endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import LoanManagementSystem, get_system, require_permission
from .schemas import CreateNoteRequest
from ..exceptions import ValidationError
from ..rbac import Permission, User


router = APIRouter()


@router.get("")
async def list_notes(
    loan_id: Optional[str] = Query(None, alias="loanId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(require_permission(Permission.MANAGE_NOTES)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Newest notes first, with the author's name"""
    notes = system.note_manager.list_notes(loan_id=loan_id, customer_id=customer_id, limit=limit)
    authors = {}
    items = []
    for note in notes:
        if note.user_id and note.user_id not in authors:
            author = system.user_manager.get_user(note.user_id)
            authors[note.user_id] = {"name": author.name, "username": author.username} if author else None
        data = note.to_dict()
        data["user"] = authors.get(note.user_id)
        items.append(data)
    return {"notes": items}


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_note(
    request: CreateNoteRequest,
    user: User = Depends(require_permission(Permission.MANAGE_NOTES)),
    system: LoanManagementSystem = Depends(get_system)
):
    """Attach a note to a loan or a customer"""
    if request.loan_id and not system.loan_manager.get_loan(request.loan_id):
        raise ValidationError("Loan not found")
    if request.customer_id and not system.customer_manager.get_customer(request.customer_id):
        raise ValidationError("Customer not found")

    note = system.note_manager.add_note(
        content=request.content,
        loan_id=request.loan_id,
        customer_id=request.customer_id,
        user_id=user.id
    )
    return {"note": note.to_dict(), "message": "Note added successfully"}
