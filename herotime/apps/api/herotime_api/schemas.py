"""Pydantic schemas for API requests/responses.

Wire names follow the web client: camelCase for the generation and billing
endpoints, snake_case for the generation history endpoints.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Errors
# ============================================================================


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details for HTTP API errors.

    ``code`` and ``diagnostic`` are extension members; ``diagnostic`` is only
    populated outside production.
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: str | dict[str, Any] = Field(..., description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference identifying the occurrence")
    code: Optional[str] = Field(None, description="Stable machine-readable error code")
    diagnostic: Optional[str] = Field(None, description="Debug detail (non-production only)")


# ============================================================================
# POST /api/generate-image
# ============================================================================


class SelectedProp(BaseModel):
    """One prop chosen in the character builder, in selection order."""

    id: str
    name: str = ""
    image: str = ""
    position: str = ""


AspectRatio = Literal["1:1", "4:3", "3:4", "16:9", "9:16"]
ImageSize = Literal["1K", "2K", "4K", "custom"]


class GenerationOptions(BaseModel):
    """Client-requested image options; plan policy may override them."""

    size: Optional[ImageSize] = None
    aspect_ratio: Optional[AspectRatio] = Field(None, alias="aspectRatio")
    width: Optional[int] = Field(None, ge=1024, le=4096)
    height: Optional[int] = Field(None, ge=1024, le=4096)
    prompt: Optional[str] = Field(None, max_length=4000)

    model_config = ConfigDict(populate_by_name=True)


class GenerateImageRequest(BaseModel):
    uploaded_image: str = Field(..., alias="uploadedImage", min_length=1)
    uploaded_image_path: Optional[str] = Field(None, alias="uploadedImagePath")
    selected_props: list[SelectedProp] = Field(default_factory=list, alias="selectedProps")
    selected_template: Optional[str] = Field(None, alias="selectedTemplate")
    options: Optional[GenerationOptions] = None

    model_config = ConfigDict(populate_by_name=True)


class GenerateImageResponse(BaseModel):
    status: str = "success"
    generation_id: str = Field(..., alias="generationId")
    output: str
    image_url: str = Field(..., alias="imageUrl")
    replicate_url: str = Field(..., alias="replicateUrl")
    message: str = "Image generated successfully!"

    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# POST /api/upload-image
# ============================================================================


class UploadImageRequest(BaseModel):
    file: str = Field(..., min_length=1, description="base64 data URI")
    folder: str = "images"


class UploadImageResponse(BaseModel):
    success: bool = True
    url: str
    path: str
    message: str = "Image uploaded successfully"


# ============================================================================
# /api/generations, /api/delete-generation
# ============================================================================


class GenerationOut(BaseModel):
    """Generation record as shown in the history view."""

    id: str
    title: Optional[str] = None
    status: str
    image_url: Optional[str] = None
    uploaded_image_url: Optional[str] = None
    selected_props: Optional[list[dict[str, Any]]] = None
    selected_template: Optional[str] = None
    error: Optional[str] = None
    file_size: Optional[str] = None
    prediction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    has_more: bool = Field(..., alias="hasMore")

    model_config = ConfigDict(populate_by_name=True)


class GenerationListResponse(BaseModel):
    generations: list[GenerationOut]
    pagination: Pagination


class GenerationCreateRequest(BaseModel):
    """Manual generation record (history import path)."""

    title: Optional[str] = None
    image_url: str = Field(..., min_length=1)
    uploaded_image_url: Optional[str] = None
    selected_props: Optional[list[SelectedProp]] = None
    selected_template: Optional[str] = None


class GenerationCreateResponse(BaseModel):
    generation: GenerationOut


class DeleteGenerationRequest(BaseModel):
    generation_id: str = Field(..., alias="generationId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# ============================================================================
# Billing / subscription
# ============================================================================


class SubscriptionSnapshot(BaseModel):
    """Local view of a user's subscription."""

    plan: str
    scheduled_plan: Optional[str] = Field(None, alias="scheduledPlan")
    generations_used: int = Field(..., alias="generationsUsed")
    generations_limit: int = Field(..., alias="generationsLimit")
    stripe_customer_id: Optional[str] = Field(None, alias="stripeCustomerId")
    stripe_subscription_id: Optional[str] = Field(None, alias="stripeSubscriptionId")
    subscription_status: Optional[str] = Field(None, alias="subscriptionStatus")
    current_period_end: Optional[datetime] = Field(None, alias="currentPeriodEnd")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class SubscriptionResponse(BaseModel):
    subscription: Optional[SubscriptionSnapshot]


class CheckoutSessionRequest(BaseModel):
    plan: str = Field(..., min_length=1)


class RedirectResponse(BaseModel):
    url: str


class CancelSubscriptionResponse(BaseModel):
    success: bool = True
    message: str = "Subscription will be canceled at the end of the billing period"
    cancels_at: Optional[datetime] = Field(None, alias="cancelsAt")

    model_config = ConfigDict(populate_by_name=True)


class ReactivatedSubscription(BaseModel):
    id: str
    status: str
    current_period_end: Optional[int] = Field(None, alias="currentPeriodEnd")

    model_config = ConfigDict(populate_by_name=True)


class ReactivateSubscriptionResponse(BaseModel):
    success: bool = True
    message: str = "Subscription reactivated successfully"
    subscription: ReactivatedSubscription


# ============================================================================
# Catalogs
# ============================================================================


class PlanOut(BaseModel):
    id: str
    name: str
    price: float
    interval: str = "month"
    generations_limit: int = Field(..., alias="generationsLimit")
    features: list[str]
    highlighted: bool = False

    model_config = ConfigDict(populate_by_name=True)


class PlanCatalogResponse(BaseModel):
    plans: list[PlanOut]
    publishable_key: Optional[str] = Field(None, alias="publishableKey")

    model_config = ConfigDict(populate_by_name=True)


class TemplateOut(BaseModel):
    id: str
    name: str
    image: str


class TemplateCategoryOut(BaseModel):
    id: str
    name: str
    templates: list[TemplateOut]


class TemplateCatalogResponse(BaseModel):
    categories: list[TemplateCategoryOut]


class PropOut(BaseModel):
    id: str
    name: str
    image: str
    positions: list[str]


class PropCategoryOut(BaseModel):
    id: str
    name: str
    icon_name: str = Field(alias="iconName")
    props: list[PropOut]

    model_config = ConfigDict(populate_by_name=True)


class PropCatalogResponse(BaseModel):
    categories: list[PropCategoryOut]
