"""
Database Schemas for the recycling carbon ledger

Each persisted Pydantic model maps to a MongoDB collection:

- ScanEntry -> "carbonentries"
- UserAccount -> "users"
- Center -> "centers"

Fields are snake_case in Python and camelCase (their aliases) in stored
documents and API responses.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


class EmissionFactor(BaseModel):
    """Per-category coefficients converting a recycled item count into CO2 saved"""
    model_config = ConfigDict(frozen=True)

    category: str = Field(..., description="Lowercase category name")
    average_weight: float = Field(..., gt=0, description="Average weight of one item in kg")
    recycle_factor: float = Field(..., ge=0, description="kg of CO2 saved per kg recycled")


class ScanEntry(BaseModel):
    """
    A single recycling action reported by a user.
    Entries are append-only: never updated, never deleted.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", description="Opaque user identifier")
    category: str = Field(..., description="Lowercase emission table category")
    quantity: int = Field(1, ge=1, description="Number of items recycled")
    total_weight: float = Field(..., alias="totalWeight", description="average_weight x quantity, in kg")
    co2_saved: float = Field(..., alias="co2Saved", description="total_weight x recycle_factor, in kg")
    timestamp: datetime = Field(..., description="When the scan was recorded (UTC)")


class UserAccount(BaseModel):
    """Running CO2 total for one user, created lazily on the first scan"""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    total_co2_saved: float = Field(0.0, ge=0, alias="totalCo2Saved")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class Center(BaseModel):
    """A recycling drop-off location"""
    name: str
    city: str = ""
    country: str = ""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RankedCenter(Center):
    distance_km: float = Field(..., description="Great-circle distance from the query point, 2 decimals")


class ScanResult(BaseModel):
    co2_saved: float
    total_co2_saved: float
    entry: ScanEntry


class CategoryTotal(BaseModel):
    category: str
    co2_saved: float


class Summary(BaseModel):
    total_co2_saved: float
    weekly_co2_saved: float
    category_breakdown: List[CategoryTotal]
    recent_entries: List[ScanEntry]
