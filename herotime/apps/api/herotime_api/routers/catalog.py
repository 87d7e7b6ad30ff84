"""Read-only catalogs: plans, the caller's subscription, hero templates, props."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from herotime_api.auth.session_auth import AuthContext, get_auth_context
from herotime_api.config import env
from herotime_api.db.repo_users import UserRepository
from herotime_api.db.session import get_db
from herotime_api.plans import PLAN_ORDER, PLANS
from herotime_api.providers import get_storage
from herotime_api.schemas import (
    PlanCatalogResponse,
    PlanOut,
    PropCatalogResponse,
    PropCategoryOut,
    PropOut,
    SubscriptionResponse,
    SubscriptionSnapshot,
    TemplateCatalogResponse,
    TemplateCategoryOut,
    TemplateOut,
)
from herotime_api.storage.props import PropCatalog
from herotime_api.storage.s3_client import StorageClient
from herotime_api.storage.templates import TemplateCatalog

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/plans", response_model=PlanCatalogResponse)
async def list_plans() -> PlanCatalogResponse:
    """Public plan catalog (no auth)."""
    plans = [
        PlanOut(
            id=plan.id,
            name=plan.name,
            price=plan.price,
            interval=plan.interval,
            generations_limit=plan.generations_limit,
            features=list(plan.features),
            highlighted=plan.highlighted,
        )
        for plan in (PLANS[plan_id] for plan_id in PLAN_ORDER)
    ]
    return PlanCatalogResponse(plans=plans, publishable_key=env.get_stripe_publishable_key())


@router.get("/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
) -> SubscriptionResponse:
    """Local subscription row without contacting the billing provider.

    ``subscription`` is null until the first sync or billing interaction.
    """
    user = UserRepository(db).get(auth.user_id)
    if user is None:
        return SubscriptionResponse(subscription=None)
    return SubscriptionResponse(subscription=SubscriptionSnapshot.model_validate(user))


@router.get("/templates", response_model=TemplateCatalogResponse)
async def list_templates(
    storage: StorageClient = Depends(get_storage),
) -> TemplateCatalogResponse:
    categories = TemplateCatalog(storage).list_categories()
    return TemplateCatalogResponse(
        categories=[
            TemplateCategoryOut(
                id=category.id,
                name=category.name,
                templates=[
                    TemplateOut(id=t.id, name=t.name, image=t.image) for t in category.templates
                ],
            )
            for category in categories
        ]
    )


@router.get("/props", response_model=PropCatalogResponse)
async def list_props(
    storage: StorageClient = Depends(get_storage),
) -> PropCatalogResponse:
    """Prop categories for the character builder, one per body slot."""
    categories = PropCatalog(storage).list_categories()
    return PropCatalogResponse(
        categories=[
            PropCategoryOut(
                id=category.id,
                name=category.name,
                icon_name=category.icon_name,
                props=[
                    PropOut(id=p.id, name=p.name, image=p.image, positions=list(p.positions))
                    for p in category.props
                ],
            )
            for category in categories
        ]
    )
