# models/category.py

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from models.enums import RfaType


class CategoryCreate(BaseModel):
    category_code: str = Field(..., min_length=1)
    category_name: str = Field(..., min_length=1)
    rfa_types: List[RfaType] = []
    sequence: int = 0
    active: bool = True


class CategoryRead(BaseModel):
    """Per-site classification used when creating RFAs."""
    id: str
    site_id: str
    category_code: str
    category_name: str
    rfa_types: List[RfaType] = []
    sequence: int = 0
    active: bool = True
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
