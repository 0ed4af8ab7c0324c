"""
Database Schemas

MongoDB collection schemas and request/response bodies, as Pydantic models.
Model name is converted to lowercase for the collection name:
- Product -> "product" collection
- Cart -> "cart" collection
- Wishlist -> "wishlist" collection
- PaymentIntent -> "paymentintent" collection
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Gateway = Literal["stripe", "paypal"]
PaymentStatus = Literal["pending", "succeeded", "failed"]


class VariantOption(BaseModel):
    name: str = Field(..., description="Attribute name, e.g. size or color")
    value: str = Field(..., description="Attribute value, e.g. M or black")


def describe_selector(selector: List[VariantOption]) -> str:
    if not selector:
        return "default variant"
    return ", ".join(f"{o.name}={o.value}" for o in selector)


def unique_skus(variants: List["Variant"]) -> List["Variant"]:
    seen = set()
    for v in variants:
        if v.sku in seen:
            raise ValueError(f"Duplicate variant sku {v.sku}")
        seen.add(v.sku)
    return variants


class Variant(BaseModel):
    sku: str = Field(..., description="Stock keeping unit, unique within the product")
    price: Optional[float] = Field(None, ge=0, description="Unit price")
    stock: int = Field(0, ge=0, description="Available units")
    attributes: Dict[str, str] = Field(default_factory=dict, description="color, size, gender, ...")
    images: List[str] = Field(default_factory=list, description="Image URLs")

    def matches(self, selector: List[VariantOption]) -> bool:
        return all(self.attributes.get(o.name) == o.value for o in selector)

    def options(self) -> List[VariantOption]:
        return [VariantOption(name=k, value=v) for k, v in sorted(self.attributes.items())]


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product" (lowercase of class name)
    """
    id: Optional[str] = None
    title: str = Field(..., description="Product title")
    description: Optional[str] = Field(None, description="Product description")
    category: str = Field(..., description="Product category")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    tags: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)

    @field_validator("variants")
    @classmethod
    def check_unique_skus(cls, variants: List[Variant]) -> List[Variant]:
        return unique_skus(variants)

    @property
    def total_stock(self) -> int:
        return sum(v.stock for v in self.variants)

    def variant_by_sku(self, sku: str) -> Optional[Variant]:
        for v in self.variants:
            if v.sku == sku:
                return v
        return None

    def resolve_variant(self, selector: List[VariantOption]) -> Optional[Variant]:
        """Returns the single variant the selector points at, or None."""
        if not selector:
            return self.variants[0] if len(self.variants) == 1 else None
        found = [v for v in self.variants if v.matches(selector)]
        return found[0] if len(found) == 1 else None


class CartItem(BaseModel):
    id: str
    product: str = Field(..., description="Product id")
    sku: str = Field(..., description="Resolved variant sku")
    variant: List[VariantOption] = Field(default_factory=list)
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0, description="Unit price snapshot taken at add time")
    images: List[str] = Field(default_factory=list, description="Image snapshot taken at add time")
    product_title: Optional[str] = Field(None, description="Populated on read")


class Cart(BaseModel):
    """
    Carts collection schema
    Collection name: "cart", one document per user
    """
    id: Optional[str] = None
    user: str
    items: List[CartItem] = Field(default_factory=list)


class WishlistItem(BaseModel):
    id: str
    product: str
    sku: str
    variant: List[VariantOption] = Field(default_factory=list)
    price: float = Field(..., ge=0)
    images: List[str] = Field(default_factory=list)
    product_title: Optional[str] = None


class Wishlist(BaseModel):
    """
    Wishlists collection schema
    Collection name: "wishlist", one document per user
    """
    id: Optional[str] = None
    user: str
    items: List[WishlistItem] = Field(default_factory=list)


class ShippingAddress(BaseModel):
    street: str = Field(..., min_length=1, max_length=100)
    city: str = Field(..., min_length=1, max_length=50)
    state: str = Field(..., min_length=1, max_length=50)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=50)


class PaymentIntent(BaseModel):
    """
    Payment intents collection schema
    Collection name: "paymentintent"
    """
    id: Optional[str] = None
    user_id: str
    cart_id: Optional[str] = None
    gateway: Gateway
    status: PaymentStatus = "pending"
    amount: float = Field(..., ge=0, description="Total in major units")
    currency: str = "usd"
    shipping_address: ShippingAddress
    gateway_response: Dict[str, Any] = Field(default_factory=dict, description="Raw gateway payload")


# ---------- Request / response bodies ----------

class CartItemRequest(BaseModel):
    product: str
    variant: List[VariantOption] = Field(default_factory=list)
    quantity: int = Field(1, ge=1)


class WishlistItemRequest(BaseModel):
    product: str
    variant: List[VariantOption] = Field(default_factory=list)


class CheckoutRequest(BaseModel):
    shipping_address: ShippingAddress
    payment_method: Gateway


class CheckoutSession(BaseModel):
    client_secret: str
    payment_intent_id: str


class ProductCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    category: str
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(..., min_length=1)

    @field_validator("variants")
    @classmethod
    def check_unique_skus(cls, variants: List[Variant]) -> List[Variant]:
        return unique_skus(variants)


class VariantUpdateRequest(BaseModel):
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
