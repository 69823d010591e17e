"""
Database Schemas

MongoDB collection schemas and request bodies as Pydantic models.
Each collection model's name lowercased is the collection name:
User -> "user", Product -> "product", Order -> "order", Payment -> "payment".
"""

from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["ADMIN", "CUSTOMER"]
UserStatus = Literal["ACTIVE", "INACTIVE"]
DiscountType = Literal["PERCENTAGE", "FLAT"]
OrderStatus = Literal["PLACED", "CONFIRMED", "SHIPPED", "DELIVERED", "CANCELLED"]
PaymentStatus = Literal["PENDING", "PAID", "FAILED", "CANCELLED"]
PaymentMethod = Literal["cash_on_delivery", "online_payment"]

ORDER_STATUSES = ("PLACED", "CONFIRMED", "SHIPPED", "DELIVERED", "CANCELLED")

CATEGORIES = (
    "Pain Relief",
    "Antibiotics",
    "Vitamins & Supplements",
    "Diabetes Care",
    "Heart Health",
    "Skin Care",
    "Baby Care",
    "Cold & Flu",
    "Digestive Health",
    "First Aid",
    "Personal Care",
    "Medical Devices",
)
Category = Literal[CATEGORIES]

EXPIRY_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


# Collections

class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="BCrypt hashed password")
    role: Role = "CUSTOMER"
    status: UserStatus = "ACTIVE"
    is_blocked: bool = False
    is_deleted: bool = False


class Product(BaseModel):
    name: str
    slug: str
    description: str
    category: Category
    price: float = Field(..., gt=0)
    discount: float = Field(0, ge=0)
    discount_type: DiscountType = "PERCENTAGE"
    stock: int = Field(0, ge=0)
    in_stock: bool = False
    requires_prescription: bool = False
    manufacturer: str
    expiry_date: str = Field(..., pattern=EXPIRY_DATE_PATTERN)
    form: Optional[str] = None
    dosage: Optional[str] = None
    pack_size: Optional[str] = None
    is_deleted: bool = False


class OrderItem(BaseModel):
    """Snapshot of a product at the time it was ordered."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId
    name: str
    price: float
    dosage: Optional[str] = None
    discount: float = 0
    discount_type: DiscountType = "PERCENTAGE"
    quantity: int = Field(..., ge=1)
    requires_prescription: bool = False


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order_id: str = Field(..., min_length=6, max_length=6)
    customer_id: ObjectId
    products: List[OrderItem]
    customer_name: str
    customer_email: EmailStr
    customer_phone: str
    address: str
    city: str
    postal_code: str
    notes: Optional[str] = None
    payment_method: PaymentMethod
    prescription: Optional[str] = Field(None, description="Uploaded prescription URL")
    subtotal: float = Field(..., ge=0)
    delivery_charge: float = Field(..., ge=0)
    grand_total: float = Field(..., ge=0)
    transaction_id: str
    order_status: OrderStatus = "PLACED"
    payment_status: PaymentStatus = "PENDING"


class Payment(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order_id: ObjectId = Field(..., description="Back-reference to order _id")
    amount: float = Field(..., ge=0)
    transaction_id: str
    payment_status: PaymentStatus = "PENDING"
    payment_gateway_data: Optional[dict] = None


# Request bodies

class LoginBody(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class ChangePasswordBody(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class RefreshTokenBody(BaseModel):
    refresh_token: Optional[str] = None


class ProductCreateBody(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: Category
    price: float = Field(..., gt=0)
    discount: float = Field(0, ge=0)
    discount_type: DiscountType = "PERCENTAGE"
    stock: int = Field(0, ge=0)
    requires_prescription: bool = False
    manufacturer: str = Field(..., min_length=1)
    expiry_date: str = Field(..., pattern=EXPIRY_DATE_PATTERN)
    form: Optional[str] = None
    dosage: Optional[str] = None
    pack_size: Optional[str] = None


class ProductUpdateBody(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    price: Optional[float] = Field(None, gt=0)
    discount: Optional[float] = Field(None, ge=0)
    discount_type: Optional[DiscountType] = None
    stock: Optional[int] = Field(None, ge=0)
    requires_prescription: Optional[bool] = None
    manufacturer: Optional[str] = Field(None, min_length=1)
    expiry_date: Optional[str] = Field(None, pattern=EXPIRY_DATE_PATTERN)
    form: Optional[str] = None
    dosage: Optional[str] = None
    pack_size: Optional[str] = None


class CartBody(BaseModel):
    product_ids: List[str] = Field(default_factory=list)


class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderForm(BaseModel):
    """Multipart fields of the create-order request. `products` is a JSON string of OrderLine."""
    products: str
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    notes: Optional[str] = None
    payment_method: PaymentMethod


class OrderStatusBody(BaseModel):
    status: str


class UserStatusBody(BaseModel):
    is_blocked: bool
