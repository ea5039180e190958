from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas, data_protection
from ..database import get_db
from .booking_router import public_limiter


router = APIRouter(prefix="/data-protection", tags=["Data protection"], dependencies=[Depends(public_limiter)])


@router.post("/verification-code", status_code=status.HTTP_202_ACCEPTED)
def send_verification_code(request: schemas.VerificationCodeRequest, db: Session = Depends(get_db)):
    """
    Mails a one-time code to the address. The code itself is never returned.
    """
    data_protection.issue_verification_code(db, request.email, request.purpose)
    return {"message": "Verification code sent."}


@router.post("/query", response_model=schemas.CustomerDetailRead)
def query_personal_data(request: schemas.VerificationSubmit, db: Session = Depends(get_db)):
    return data_protection.query_personal_data(db, request.email, request.code)


@router.post("/delete")
def delete_personal_data(request: schemas.VerificationSubmit, db: Session = Depends(get_db)):
    anonymized = data_protection.request_erasure(db, request.email, request.code)
    return {"anonymized_bookings": anonymized}
