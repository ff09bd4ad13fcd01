from fastapi import APIRouter

from .endpoints import (
    customers,
    health,
    observability,
    payment_links,
    payments,
    purchases,
    rules,
    transactions,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(transactions.router)
router.include_router(purchases.router)
router.include_router(payment_links.router)
router.include_router(payments.router)
router.include_router(customers.router)
router.include_router(rules.router)
router.include_router(observability.router)
