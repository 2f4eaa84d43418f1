from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Screen(str, Enum):
    WELCOME = "Welcome"
    LOGIN = "Login"
    REGISTER = "Register"
    FORGOT_PASSWORD = "ForgotPassword"
    EMAIL_VERIFICATION = "EmailVerification"
    SUBSCRIPTION_PLANS = "SubscriptionPlans"
    PAYMENT = "Payment"
    PAYMENT_SUCCESS = "PaymentSuccess"
    PAYMENT_FAILED = "PaymentFailed"
    HOME = "Home"


class Stack(str, Enum):
    AUTH = "Auth"
    MAIN = "Main"


class LinkFamily(str, Enum):
    VERIFY_EMAIL = "verify-email"
    PASSWORD_RESET = "password-reset"
    PAYMENT_SUCCESS = "payment-success"
    PAYMENT_FAILED = "payment-failed"
    REFERRAL_INVITE = "referral-invite"
    SUBSCRIPTION_PLANS = "subscription-plans"
    PAYMENT = "payment"
    WELCOME = "welcome"
    LOGIN = "login"
    REGISTER = "register"
    HOME = "home"


@dataclass(frozen=True)
class RouteIntent:
    """Structured in-app action parsed from an external URL"""
    family: LinkFamily
    screen: Screen
    params: Dict[str, Any] = field(default_factory=dict)
    url: Optional[str] = None
    # Acknowledge-only intents are logged, not navigated
    navigate: bool = True
    stack: Stack = Stack.AUTH
