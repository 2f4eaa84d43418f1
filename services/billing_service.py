"""
Billing Service - payment confirmation against the billing provider (Stripe)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import stripe

logger = logging.getLogger(__name__)

# Stripe subscription statuses that grant entitlement immediately
CONFIRMED_STATUSES = {"active", "trialing"}


@dataclass
class PaymentConfirmation:
    success: bool
    subscription_id: Optional[str] = None
    customer_id: Optional[str] = None
    price_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class BillingBackend(ABC):
    """Opaque billing backend used by the subscription lifecycle manager"""

    @abstractmethod
    async def confirm_payment(
        self,
        principal_id: str,
        email: Optional[str],
        price_id: Optional[str],
        payment_method_ref: str,
    ) -> PaymentConfirmation:
        ...


class StripeBillingBackend(BillingBackend):
    """
    Confirms a subscription payment with Stripe.
    Card failures are reported through PaymentConfirmation, never raised.
    """

    def __init__(self, secret_key: Optional[str]):
        """
        Initialize the billing backend.

        Args:
            secret_key: Stripe secret key; without it every confirmation fails
        """
        self.secret_key = secret_key
        if secret_key:
            stripe.api_key = secret_key
        else:
            logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")

    def _get_or_create_customer(self, principal_id: str, email: Optional[str]) -> str:
        if email:
            customers = stripe.Customer.list(email=email, limit=1)
            if customers.data:
                return customers.data[0].id
        customer = stripe.Customer.create(
            email=email,
            metadata={"principal_id": principal_id},
        )
        return customer.id

    async def confirm_payment(
        self,
        principal_id: str,
        email: Optional[str],
        price_id: Optional[str],
        payment_method_ref: str,
    ) -> PaymentConfirmation:
        """
        Create (or reuse) the customer, attach the payment method and start
        the subscription.

        Args:
            principal_id: Identity provider uid
            email: Customer email, used to reuse an existing customer
            price_id: Stripe price for the selected plan
            payment_method_ref: Stripe payment method id collected by the client

        Returns:
            PaymentConfirmation with success=False and a Stripe error code on failure
        """
        if not self.secret_key:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot confirm payment.")
            return PaymentConfirmation(success=False, error_code="api_connection_error",
                                       message="Billing is not configured")
        if not price_id:
            logger.error("No Stripe price configured for the selected plan.")
            return PaymentConfirmation(success=False, message="No price configured for plan")

        try:
            customer_id = self._get_or_create_customer(principal_id, email)
            stripe.PaymentMethod.attach(payment_method_ref, customer=customer_id)
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_ref},
            )
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                default_payment_method=payment_method_ref,
                metadata={"principal_id": principal_id},
            )
        except stripe.CardError as e:
            code = getattr(e, "code", None) or "card_declined"
            decline_code = getattr(e, "error", None) and getattr(e.error, "decline_code", None)
            logger.warning(f"Card error for {principal_id}: {code} ({decline_code})")
            return PaymentConfirmation(success=False, error_code=decline_code or code, message=e.user_message)
        except stripe.APIConnectionError as e:
            logger.error(f"Stripe connection failed: {e}")
            return PaymentConfirmation(success=False, error_code="api_connection_error", message=str(e))
        except stripe.StripeError as e:
            logger.error(f"Stripe payment failed: {e}", exc_info=True)
            return PaymentConfirmation(success=False, error_code=getattr(e, "code", None), message=str(e))

        if subscription.status not in CONFIRMED_STATUSES:
            logger.warning(f"Stripe subscription {subscription.id} is {subscription.status}")
            return PaymentConfirmation(
                success=False,
                subscription_id=subscription.id,
                customer_id=customer_id,
                price_id=price_id,
                error_code="card_declined" if subscription.status == "incomplete" else None,
                message=f"Subscription status: {subscription.status}",
            )

        logger.info(f"✅ Stripe subscription {subscription.id} confirmed for {principal_id}")
        return PaymentConfirmation(
            success=True,
            subscription_id=subscription.id,
            customer_id=customer_id,
            price_id=price_id,
        )
