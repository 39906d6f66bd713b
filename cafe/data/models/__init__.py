#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from cafe.data.models.checkout_attempt import CheckoutAttemptModel

__all__ = ["CheckoutAttemptModel"]
