"""Alert recipient endpoints - who gets a branch's reminder emails"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from branch_expenses.api.dependencies import get_request_id
from branch_expenses.api.v1.schemas import (
    RecipientCreateRequest,
    RecipientResponse,
    RecipientUpdateRequest,
)
from branch_expenses.domain.exceptions import (
    BranchNotFoundError,
    DuplicateRecipientError,
    InvalidEmailError,
    RecipientNotFoundError,
)
from branch_expenses.infrastructure.database.repositories import RecipientRepository
from branch_expenses.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/branches/{branch_id}/recipients", response_model=List[RecipientResponse])
def list_recipients(branch_id: int, db: Session = Depends(get_db)):
    """Recipients of a branch, active ones first"""
    try:
        recipients = RecipientRepository(db).list_for_branch(branch_id)
    except BranchNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [RecipientResponse.model_validate(r) for r in recipients]


@router.post("/branches/{branch_id}/recipients", response_model=RecipientResponse, status_code=201)
def create_recipient(
    branch_id: int,
    request_body: RecipientCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    request_id = get_request_id(request)
    try:
        recipient = RecipientRepository(db).create(
            branch_id,
            request_body.email,
            name=request_body.name,
            is_active=request_body.is_active,
        )
        db.commit()
        db.refresh(recipient)
        logging.info(
            "Recipient created",
            extra={"request_id": request_id, "branch_id": branch_id, "recipient_id": recipient.id},
        )
        return RecipientResponse.model_validate(recipient)

    except InvalidEmailError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except BranchNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except DuplicateRecipientError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/recipients/{recipient_id}", response_model=RecipientResponse)
def get_recipient(recipient_id: int, db: Session = Depends(get_db)):
    try:
        recipient = RecipientRepository(db).get_or_raise(recipient_id)
    except RecipientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return RecipientResponse.model_validate(recipient)


@router.patch("/recipients/{recipient_id}", response_model=RecipientResponse)
def update_recipient(
    recipient_id: int,
    request_body: RecipientUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Change email, display name or active flag"""
    request_id = get_request_id(request)
    try:
        recipient = RecipientRepository(db).update(recipient_id, request_body.model_dump(exclude_unset=True))
        db.commit()
        db.refresh(recipient)
        logging.info("Recipient updated", extra={"request_id": request_id, "recipient_id": recipient_id})
        return RecipientResponse.model_validate(recipient)

    except InvalidEmailError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    except RecipientNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    except DuplicateRecipientError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/recipients/{recipient_id}", status_code=204)
def delete_recipient(recipient_id: int, request: Request, db: Session = Depends(get_db)):
    try:
        RecipientRepository(db).delete(recipient_id)
        db.commit()
    except RecipientNotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

    logging.info("Recipient deleted", extra={"request_id": get_request_id(request), "recipient_id": recipient_id})
    return Response(status_code=204)
