# products/utils.py
import logging

from django.db import transaction
from django.utils import timezone

from products.enums import ApprovalStatus
from notification.utils import notify_product_reviewed, notify_product_submitted

logger = logging.getLogger(__name__)


def submit_for_approval(product):
    product.approval_status = ApprovalStatus.PENDING
    product.submitted_for_approval_at = timezone.now()
    product.reviewed_by = None
    product.reviewed_at = None
    product.save(update_fields=[
        "approval_status", "submitted_for_approval_at", "reviewed_by", "reviewed_at", "updated_at",
    ])
    logger.info("Product %s submitted for approval", product.pk)
    notify_product_submitted(product)
    return product


def set_approval_status(product, approval_status, reviewer, comments=""):
    """Record an admin review decision and let the vendor know."""
    if approval_status in (ApprovalStatus.REJECTED, ApprovalStatus.NEEDS_CHANGES) and not comments:
        raise ValueError("Comments are required when rejecting or requesting changes")

    with transaction.atomic():
        product.approval_status = approval_status
        product.review_comments = comments or ""
        product.reviewed_by = reviewer
        product.reviewed_at = timezone.now()
        product.save(update_fields=[
            "approval_status", "review_comments", "reviewed_by", "reviewed_at", "updated_at",
        ])

    logger.info("Product %s marked %s by %s", product.pk, approval_status, getattr(reviewer, "pk", None))
    notify_product_reviewed(product, reviewer=reviewer)
    return product
