"""Template resolution and rendering models."""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class TemplateType(str, Enum):
    """Message purposes with their own template chain."""
    GIFT_CARD_DELIVERY = "gift_card_delivery"
    OPT_IN_REQUEST = "opt_in_request"
    OPT_IN_CONFIRMATION = "opt_in_confirmation"
    MARKETING = "marketing"


class TemplateSource(str, Enum):
    """Tier a resolved template came from."""
    CUSTOM = "custom"
    CONDITION = "condition"
    CLIENT = "client"
    SYSTEM = "system"


class TemplateResolutionRequest(BaseModel):
    """Inputs to the template priority chain."""
    template_type: TemplateType = Field(..., description="Message purpose")
    client_id: str = Field(..., min_length=1, description="Client identifier")
    campaign_id: Optional[str] = Field(None, description="Campaign identifier")
    condition_id: Optional[str] = Field(None, description="Campaign condition identifier")
    custom_message: Optional[str] = Field(None, description="Direct override, highest priority")


class TemplateResolutionResult(BaseModel):
    """Resolved template text and the tier it came from."""
    template: str
    source: TemplateSource


class TemplateVariables(BaseModel):
    """Values substituted into transactional templates."""

    # Recipient identity
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    recipient_company: Optional[str] = None

    # Address
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None

    # Gift card
    value: Optional[Union[int, float, str]] = None
    brand: Optional[str] = None
    provider: Optional[str] = None
    code: Optional[str] = None
    link: Optional[str] = None

    # Client/business
    client_name: Optional[str] = None
    company: Optional[str] = None

    # Recipient custom fields, rendered through {custom.<name>}
    custom: Dict[str, Any] = Field(default_factory=dict)
