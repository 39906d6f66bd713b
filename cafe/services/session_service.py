# cafe/services/session_service.py
import hashlib
import hmac
import secrets

import redis

from cafe.domain.errors import AuthenticationError
from cafe.utils.retry import redis_retry
from cafe.utils.settings import REDIS_URL, ADMIN_EMAIL, ADMIN_PASSWORD_HASH, ADMIN_SESSION_TTL_SECONDS
from cafe.utils.logging import get_logger

logger = get_logger(__name__)


def hash_password(password: str, iterations: int = 260_000, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt), iterations)
    return f"pbkdf2_sha256${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False

    candidate = hash_password(password, int(iterations), salt).split("$")[-1]
    return hmac.compare_digest(candidate, expected)


class SessionService:
    """
    Sesje admina po stronie serwera.
    Token jest tylko kluczem do redisa - rola nigdy nie pochodzi od klienta.
    """

    def __init__(
        self,
        url: str | None = None,
        client: redis.Redis | None = None,
        admin_email: str = ADMIN_EMAIL,
        password_hash: str = ADMIN_PASSWORD_HASH,
        ttl: int = ADMIN_SESSION_TTL_SECONDS,
    ):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.admin_email = admin_email
        self.password_hash = password_hash
        self.ttl = ttl

    @staticmethod
    def _key(token: str) -> str:
        return f"admin:session:{token}"

    @redis_retry()
    def login(self, email: str, password: str) -> str:
        if not self.password_hash:
            raise AuthenticationError("Admin login is not configured")

        if email.lower() != self.admin_email.lower() or not verify_password(password, self.password_hash):
            logger.warning(f"Failed admin login for {email}")
            raise AuthenticationError("Invalid credentials")

        token = secrets.token_urlsafe(32)
        self.redis.set(self._key(token), self.admin_email, ex=self.ttl)
        logger.info(f"Admin session opened for {email}")
        return token

    @redis_retry()
    def validate(self, token: str) -> str:
        """Zwraca email admina albo AuthenticationError."""
        email = self.redis.get(self._key(token)) if token else None
        if not email:
            raise AuthenticationError("Session expired or invalid")
        return email

    @redis_retry()
    def logout(self, token: str) -> None:
        self.redis.delete(self._key(token))
