from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional

# -- orders -----------------------------------------------------------------

ADDRESS_REQUIRED_FIELDS = ("name", "street", "city", "state", "postal_code", "phone")

class DeliveryAddress(BaseModel):
    model_config = ConfigDict(extra="ignore")
    name: str
    street: str
    city: str
    state: str
    postal_code: str
    phone: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

class OrderItemCreate(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_product_id(cls, value):
        # Clients send numeric catalog ids as well as string ids
        return str(value) if isinstance(value, int) else value

class OrderCreate(BaseModel):
    user_id: int
    items: list[OrderItemCreate]
    delivery_address: DeliveryAddress
    total_amount: Optional[float] = None

class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    status: str
    rejection_reason: Optional[str] = Field(default=None, alias="rejectionReason")

class OrderReject(BaseModel):
    reason: str = ""

class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    product_id: str
    name: Optional[str] = None
    quantity: int
    price: float
    total: float

class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    user_id: int
    status: str
    total_amount: float
    delivery_address: dict
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemRead]

class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int

class OrderPage(BaseModel):
    data: list[OrderRead]
    pagination: Pagination

class DashboardStats(BaseModel):
    total_orders: int
    pending_orders: int
    accepted_orders: int
    preparing_orders: int
    out_for_delivery_orders: int
    completed_orders: int
    rejected_orders: int
    cancelled_orders: int
    total_revenue: float

# -- catalog ----------------------------------------------------------------

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None

class CategoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    unit: str = "1 pc"
    image_url: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    is_active: bool = True
    category_id: Optional[int] = None

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    image_url: Optional[str] = None
    stock: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    category_id: Optional[int] = None

class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    description: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    unit: str
    image_url: Optional[str] = None
    stock: int
    is_active: bool
    category_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

# -- riders -----------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

class RiderCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    phone: str = Field(min_length=10, max_length=15)
    vehicle_number: Optional[str] = Field(default=None, min_length=5, max_length=20)
    vehicle_model: Optional[str] = Field(default=None, max_length=100)

class RiderProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    phone: Optional[str] = Field(default=None, min_length=10, max_length=15)
    vehicle_number: Optional[str] = Field(default=None, min_length=5, max_length=20)
    vehicle_model: Optional[str] = Field(default=None, max_length=100)
    is_available: Optional[bool] = None
    current_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    current_lng: Optional[float] = Field(default=None, ge=-180, le=180)

class RiderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: str
    phone: str
    vehicle_number: Optional[str] = None
    vehicle_model: Optional[str] = None
    is_available: bool
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
