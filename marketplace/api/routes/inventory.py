from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from marketplace.core.database import get_db
from marketplace.models.schemas import Envelope, InventoryRecord
from marketplace.services.inventory_service import InventoryLedger

router = APIRouter()

# Stock only changes through orders and cancellations, so these are read-only


@router.get("", response_model=Envelope[List[InventoryRecord]])
def get_inventory(db: Session = Depends(get_db)):
    """Get stock levels for all products"""
    return Envelope(data=InventoryLedger(db).snapshot())


@router.get("/{product_id}", response_model=Envelope[InventoryRecord])
def get_inventory_record(product_id: int, db: Session = Depends(get_db)):
    """Get the stock level of a specific product"""
    record = InventoryLedger(db).get_record(product_id)
    if not record:
        raise HTTPException(status_code=404, detail="Inventory record not found")
    return Envelope(data=record)
