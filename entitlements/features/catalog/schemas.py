"""
Pydantic schemas for the module and plan catalog.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ModuleResponse(BaseModel):
    """Catalog module."""
    code: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    is_core: bool
    rank: int
    required_module_codes: List[str] = Field(default_factory=list, serialization_alias="required_modules")

    model_config = ConfigDict(from_attributes=True)


class PlanResponse(BaseModel):
    code: str
    name: str
    max_modules: int
    max_branches: int
    price_usd_month: Optional[Decimal] = None
    trial_days: int
    features: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)
