# cafe/services/payment_gateway.py
import requests
from requests import RequestException

from cafe.domain.errors import PaymentGatewayError, PaymentDeclined
from cafe.domain.schemas import PaymentIntent, ProcessorMetadata
from cafe.utils.retry import http_retry
from cafe.utils.settings import STRIPE_API_URL, STRIPE_SECRET_KEY
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentGateway:
    """
    Klient HTTP procesora platnosci (API w stylu Stripe, form-encoded, bearer token).

    create_intent i confirm_intent NIE maja retry - powtorzenie moze zalozyc drugi charge.
    Zamiast tego kazde wywolanie niesie Idempotency-Key z proby checkoutu.
    retrieve_intent jest idempotentne, wiec ma tenacity retry.
    """

    def __init__(self, base_url: str | None = None, secret_key: str | None = None, timeout: int = 10):
        self.base_url = (base_url or STRIPE_API_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else STRIPE_SECRET_KEY
        self.timeout = timeout

    def _headers(self, idempotency_key: str | None = None) -> dict:
        if not self.secret_key:
            raise PaymentGatewayError("Payment processing not configured")

        headers = {"Authorization": f"Bearer {self.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: ProcessorMetadata,
        idempotency_key: str,
    ) -> PaymentIntent:
        if not isinstance(amount_minor, int) or amount_minor <= 0:
            raise PaymentGatewayError(f"Amount must be a positive integer in minor units, got {amount_minor!r}")

        data = {
            "amount": str(amount_minor),
            "currency": currency,
            "payment_method_types[]": "card",
        }
        for key, value in metadata.to_params().items():
            data[f"metadata[{key}]"] = value

        url = f"{self.base_url}/payment_intents"
        logger.info(f"PaymentGateway POST {url} amount={amount_minor} {currency}")

        try:
            resp = requests.post(
                url,
                data=data,
                headers=self._headers(f"intent-{idempotency_key}"),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error(f"Payment processor unreachable: {e}")
            raise PaymentGatewayError(f"Payment processor unreachable: {e}") from e

        if not resp.ok:
            logger.error(f"Payment processor error {resp.status_code}: {resp.text}")
            raise PaymentGatewayError(
                f"Payment processing failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        intent = _intent(resp)
        logger.info(f"Payment intent {intent.id} created ({intent.status})")
        return intent

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        try:
            resp = self._get_intent(intent_id)
        except RequestException as e:
            logger.error(f"Payment processor unreachable: {e}")
            raise PaymentGatewayError(f"Payment processor unreachable: {e}") from e

        if not resp.ok:
            logger.error(f"Failed to retrieve payment intent {intent_id}: {resp.status_code} {resp.text}")
            raise PaymentGatewayError(
                f"Failed to retrieve payment intent: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        return _intent(resp)

    @http_retry()
    def _get_intent(self, intent_id: str) -> requests.Response:
        url = f"{self.base_url}/payment_intents/{intent_id}"
        logger.info(f"PaymentGateway GET {url}")
        return requests.get(url, headers=self._headers(), timeout=self.timeout)

    def confirm_intent(
        self,
        intent_id: str,
        payment_method: str,
        idempotency_key: str,
        receipt_email: str | None = None,
    ) -> PaymentIntent:
        data = {"payment_method": payment_method}
        if receipt_email:
            data["receipt_email"] = receipt_email

        url = f"{self.base_url}/payment_intents/{intent_id}/confirm"
        logger.info(f"PaymentGateway POST {url}")

        try:
            resp = requests.post(
                url,
                data=data,
                headers=self._headers(f"confirm-{idempotency_key}-{payment_method}"),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error(f"Payment processor unreachable: {e}")
            raise PaymentGatewayError(f"Payment processor unreachable: {e}") from e

        #402 = karta odrzucona, komunikat procesora idzie do klienta
        if resp.status_code == 402:
            error = _error_body(resp)
            message = error.get("message") or "Your card was declined."
            logger.warning(f"Payment intent {intent_id} declined: {message}")
            raise PaymentDeclined(message, status=error.get("code"))

        if not resp.ok:
            logger.error(f"Payment processor error {resp.status_code}: {resp.text}")
            raise PaymentGatewayError(
                f"Payment confirmation failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        return _intent(resp)


def _intent(resp: requests.Response) -> PaymentIntent:
    #ValueError obejmuje zly JSON i ValidationError pydantica
    try:
        return PaymentIntent.model_validate(resp.json())
    except ValueError as e:
        logger.error(f"Unreadable payment processor response {resp.status_code}: {resp.text}")
        raise PaymentGatewayError(
            "Payment processor returned an unreadable response",
            status_code=resp.status_code,
            body=resp.text,
        ) from e


def _error_body(resp: requests.Response) -> dict:
    try:
        return resp.json().get("error") or {}
    except ValueError:
        return {}
