from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Literal, Optional, Union
from uuid import UUID

DeliveryType = Literal["pickup", "delivery"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class _Schema(BaseModel):
    # Browser clients send camelCase; snake_case is accepted too.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class CartItem(_Schema):
    item_id: UUID = Field(validation_alias=AliasChoices("itemId", "item_id", "id"))
    quantity: int = Field(ge=1, le=99)
    # Historical encodings: "small"/"medium"/"large", "6"/"8"/"10", or an option index.
    size_selector: Optional[Union[int, str]] = Field(
        default=None,
        validation_alias=AliasChoices("sizeSelector", "size_selector", "size"),
    )
    customizations: list[str] = Field(default_factory=list)


class CustomerContact(_Schema):
    customer_name: str = Field(min_length=1)
    customer_email: str = Field(pattern=EMAIL_PATTERN)
    customer_phone: str = Field(min_length=1)


class CheckoutRequest(CustomerContact):
    delivery_type: DeliveryType
    pickup_delivery_time: str = Field(min_length=1)
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    cart: list[CartItem] = Field(min_length=1)

    @model_validator(mode="after")
    def _address_required_for_delivery(self):
        if self.delivery_type == "delivery" and not self.delivery_address:
            raise ValueError("deliveryAddress is required for delivery orders")
        return self


class EventCheckoutRequest(CustomerContact):
    event_id: UUID
    quantity: int = Field(ge=1, le=99)


class CheckoutResponse(_Schema):
    url: str
    order_id: str


class EventCheckoutResponse(_Schema):
    url: str
    registration_id: str


class WebhookResponse(BaseModel):
    accepted: bool = True
