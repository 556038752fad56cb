"""
dsyncpay

Payment gateway for PayPal orders and subscriptions and Coinbase Commerce
charges, with one event model for the host application.
"""

from . import config, exceptions, models, storage, utils
from .core import PaymentGateway
from .events import EventDispatcher
from .exceptions import AuthError, DSyncPayError, ProviderError, SignatureError, ValidationError
from .models import CanonicalStatus, EventRecord, EventType
from .providers import CoinbaseProvider, PaymentProvider, PayPalProvider, create_payment_provider
from .storage import MemoryMetadataStore, MetadataStore

__version__ = "0.1.0"

__all__ = [
    "PaymentGateway",
    "EventDispatcher",
    "PaymentProvider",
    "PayPalProvider",
    "CoinbaseProvider",
    "create_payment_provider",
    "MetadataStore",
    "MemoryMetadataStore",
    "CanonicalStatus",
    "EventRecord",
    "EventType",
    "DSyncPayError",
    "ValidationError",
    "AuthError",
    "ProviderError",
    "SignatureError",
    "models",
    "exceptions",
    "storage",
    "utils",
    "config",
]
