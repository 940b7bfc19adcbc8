import os
from dotenv import load_dotenv

load_dotenv()


def _csv(name: str, default: str) -> list:
    return [x.strip() for x in os.getenv(name, default).split(",") if x.strip()]


class Settings:
    APP_NAME: str = os.getenv("APP_NAME", "EBOSACCO")
    APP_VERSION: str = os.getenv("APP_VERSION", "2.0.0")
    BANK_ID: str = os.getenv("BANK_ID", "EBO_SACCO_BANK_ID")
    COUNTRY: str = os.getenv("COUNTRY", "UGANDA")
    CODEBASE: str = os.getenv("CODEBASE", "EBOSACCOUSSD")

    # Static key for the ops cleanup endpoint. Empty means the endpoint rejects everything.
    API_KEY: str = os.getenv("API_KEY", "")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_TIMEOUT_SEC: float = float(os.getenv("REDIS_TIMEOUT_SEC", "5"))
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "ussd-maintenance")

    # Sessions
    SESSION_BACKEND: str = os.getenv("SESSION_BACKEND", "redis").lower()  # redis | memory
    SESSION_PREFIX: str = os.getenv("SESSION_PREFIX", "ussd:session")
    SESSION_TTL_SEC: int = int(os.getenv("SESSION_TTL_SEC", "1800"))

    # PIN lockout + per-key serialization
    MAX_PIN_ATTEMPTS: int = int(os.getenv("MAX_PIN_ATTEMPTS", "3"))
    # Must outlive one full request, backend round trip included.
    LOCK_TTL_MS: int = int(os.getenv("LOCK_TTL_MS", "45000"))
    LOCK_WAIT_MS: int = int(os.getenv("LOCK_WAIT_MS", "1500"))
    DUPLICATE_WINDOW_SEC: int = int(os.getenv("DUPLICATE_WINDOW_SEC", "10"))

    # Core-banking endpoints, one per service type
    AUTHENTICATE_URL: str = os.getenv("AUTHENTICATE_URL", "")
    BANK_URL: str = os.getenv("BANK_URL", "")
    OTHER_URL: str = os.getenv("OTHER_URL", "")
    PURCHASE_URL: str = os.getenv("PURCHASE_URL", "")
    VALIDATE_URL: str = os.getenv("VALIDATE_URL", "")
    BACKEND_TIMEOUT_SEC: float = float(os.getenv("BACKEND_TIMEOUT_SEC", "20"))

    # Legacy backend contract: PIN fields are wrapped with a fixed key/iv pair.
    PIN_CIPHER_KEY: str = os.getenv("PIN_CIPHER_KEY", "KBSB&er3bflx9%")
    PIN_CIPHER_IV: str = os.getenv("PIN_CIPHER_IV", "84jfkfndl3ybdfkf")

    # Input validation defaults
    COUNTRY_CODE: str = os.getenv("COUNTRY_CODE", "256")
    PHONE_LENGTH: int = int(os.getenv("PHONE_LENGTH", "12"))
    MTN_PREFIXES: list = _csv("MTN_PREFIXES", "25631,25639,25678,25677,25676,25679")
    AIRTEL_PREFIXES: list = _csv("AIRTEL_PREFIXES", "25620,25670,25675,25674")
    MIN_AMOUNT: int = int(os.getenv("MIN_AMOUNT", "100"))
    MAX_AMOUNT: int = int(os.getenv("MAX_AMOUNT", "5000000"))

    # Carrier behaviour
    # keystroke: one keystroke per callback; cumulative: "1*2*50" style history, last segment wins
    USSD_INPUT_MODE: str = os.getenv("USSD_INPUT_MODE", "keystroke").lower()
    EXIT_SENTINEL: str = os.getenv("EXIT_SENTINEL", "000")

    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    METRICS_ENABLED: bool = os.getenv("METRICS_ENABLED", "true").lower() == "true"

    def network_prefixes(self) -> dict:
        return {"mtn": list(self.MTN_PREFIXES), "airtel": list(self.AIRTEL_PREFIXES)}

    def endpoint_for(self, service_type: str) -> str:
        return {
            "authenticate": self.AUTHENTICATE_URL,
            "bank": self.BANK_URL,
            "other": self.OTHER_URL,
            "purchase": self.PURCHASE_URL,
            "validate": self.VALIDATE_URL,
        }.get(service_type, "")


settings = Settings()
