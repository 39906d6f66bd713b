# cafe/services/payment_confirmer.py
from cafe.domain.errors import PaymentNotCompleted
from cafe.domain.schemas import PaymentIntent, BillingDetailsIn
from cafe.domain.types import PaymentStatus
from cafe.services.payment_gateway import PaymentGateway
from cafe.utils.logging import get_logger

logger = get_logger(__name__)

_MESSAGES = {
    PaymentStatus.REQUIRES_PAYMENT_METHOD.value: "Your payment was not completed. Please try another card.",
    PaymentStatus.REQUIRES_ACTION.value: "Card authentication was not completed.",
    PaymentStatus.REQUIRES_CONFIRMATION.value: "Payment has not been confirmed yet.",
    PaymentStatus.PROCESSING.value: "Payment is still processing.",
    PaymentStatus.CANCELED.value: "Payment was cancelled.",
}


class PaymentConfirmer:
    """
    Doprowadza PaymentIntent do stanu koncowego i pilnuje, ze dalej idzie tylko succeeded.

    - z payment_method: potwierdzamy po stronie serwera
    - bez: klient potwierdzil przez Stripe.js, my tylko odczytujemy status
    """

    def __init__(self, gateway: PaymentGateway):
        self.gateway = gateway

    def confirm(
        self,
        intent_id: str,
        idempotency_key: str,
        payment_method: str | None = None,
        billing_details: BillingDetailsIn | None = None,
    ) -> PaymentIntent:
        if payment_method:
            receipt_email = billing_details.email if billing_details else None
            intent = self.gateway.confirm_intent(
                intent_id,
                payment_method=payment_method,
                idempotency_key=idempotency_key,
                receipt_email=receipt_email,
            )
        else:
            intent = self.gateway.retrieve_intent(intent_id)

        logger.info(f"Payment intent {intent_id} status: {intent.status}")

        if intent.status != PaymentStatus.SUCCEEDED.value:
            message = _MESSAGES.get(intent.status, "Payment has not been completed successfully.")
            logger.warning(f"Payment intent {intent_id} not completed: {intent.status}")
            raise PaymentNotCompleted(message, status=intent.status)

        return intent
