"""
config.py — Static Configuration for the Settlement Service

Holds the service addresses (normally supplied through environment variables)
and the default catalog tables used for pricing:

    • Delivery fee table per currency (local / national / international tier)
    • Region keyword lists used for delivery tier selection
    • Exchange rates from the base currency (NGN)
    • Promo code catalog

The tables are wrapped read-only. They are passed into the calculator, the promo
validator and the currency converter at construction, so tests can hand in
their own tables instead.
"""

import os
import secrets
from decimal import Decimal
from types import MappingProxyType

# Service addresses (normally from env vars)
BACKEND_URL = os.environ.get("BACKEND_URL", "http://backend:54321")
BACKEND_API_KEY = os.environ.get("BACKEND_API_KEY", "")
RABBITMQ_HOST = os.environ.get("RABBITMQ_HOST", "localhost")
RABBITMQ_USER = os.environ.get("RABBITMQ_USER", "storefront")
RABBITMQ_PASSWORD = os.environ.get("RABBITMQ_PASSWORD", "storefront")
ORDER_EVENTS_QUEUE = os.environ.get("ORDER_EVENTS_QUEUE", "orders.settled")
LOG_FILE = os.environ.get("LOG_FILE", "settlement.log")
# Signs payment handles handed to the app; set it explicitly when running several workers
HANDLE_SIGNING_KEY = os.environ.get("HANDLE_SIGNING_KEY") or secrets.token_hex(32)

BASE_CURRENCY = "NGN"
SERVICE_FEE_PERCENTAGE = Decimal("0.02")  # 2%

# Delivery fees in the currency they are keyed by
DELIVERY_FEES_BY_CURRENCY = MappingProxyType({
    "NGN": MappingProxyType({"local": Decimal("3500"), "national": Decimal("5000"), "international": Decimal("15000")}),
    "USD": MappingProxyType({"local": Decimal("5"), "national": Decimal("8"), "international": Decimal("25")}),
    "EUR": MappingProxyType({"local": Decimal("4"), "national": Decimal("7"), "international": Decimal("20")}),
    "GBP": MappingProxyType({"local": Decimal("4"), "national": Decimal("6"), "international": Decimal("18")}),
    "CAD": MappingProxyType({"local": Decimal("6"), "national": Decimal("9"), "international": Decimal("28")}),
    "AUD": MappingProxyType({"local": Decimal("6"), "national": Decimal("9"), "international": Decimal("30")}),
    "JPY": MappingProxyType({"local": Decimal("500"), "national": Decimal("800"), "international": Decimal("2500")}),
    "CHF": MappingProxyType({"local": Decimal("4"), "national": Decimal("7"), "international": Decimal("20")}),
    "CNY": MappingProxyType({"local": Decimal("30"), "national": Decimal("50"), "international": Decimal("150")}),
    "INR": MappingProxyType({"local": Decimal("300"), "national": Decimal("500"), "international": Decimal("1500")}),
    "ZAR": MappingProxyType({"local": Decimal("80"), "national": Decimal("120"), "international": Decimal("400")}),
})

# Local delivery area of the base currency
LOCAL_REGIONS = ("lagos",)

# Nigerian states, major cities and the country name itself -> national tier
DOMESTIC_REGIONS = (
    "nigeria",
    "abia", "adamawa", "akwa ibom", "anambra", "bauchi", "bayelsa", "benue", "borno",
    "cross river", "delta", "ebonyi", "edo", "ekiti", "enugu", "gombe", "imo",
    "jigawa", "kaduna", "kano", "katsina", "kebbi", "kogi", "kwara", "nasarawa",
    "niger", "ogun", "ondo", "osun", "oyo", "plateau", "rivers", "sokoto",
    "taraba", "yobe", "zamfara", "abuja", "fct",
    "ibadan", "port harcourt", "benin", "maiduguri", "zaria", "aba", "jos", "ilorin",
    "abeokuta", "onitsha", "warri", "okene", "calabar", "uyo", "ado-ekiti", "awka",
    "akure", "makurdi", "lafia", "yenagoa", "jalingo", "owerri", "abakaliki", "dutse",
    "damaturu", "gusau", "yola", "minna", "birnin kebbi", "lokoja", "osogbo",
)

# Markers that force the international tier for non-base currencies
INTERNATIONAL_MARKERS = ("international", "worldwide", "global")

# Units of the target currency per 1 NGN
EXCHANGE_RATES = MappingProxyType({
    "NGN": Decimal("1"),
    "USD": Decimal("0.00065"),
    "EUR": Decimal("0.00060"),
    "GBP": Decimal("0.00052"),
    "CAD": Decimal("0.00089"),
    "AUD": Decimal("0.00099"),
    "JPY": Decimal("0.097"),
    "CHF": Decimal("0.00058"),
    "CNY": Decimal("0.0047"),
    "INR": Decimal("0.054"),
    "ZAR": Decimal("0.012"),
})

# Promo catalog as plain records; turned into PromoCode models by the validator
PROMO_CODES = MappingProxyType({
    "WELCOME10": {"code": "WELCOME10", "description": "10% off your order", "discount": "0.10", "is_active": True},
    "SAVE20": {"code": "SAVE20", "description": "20% off your order", "discount": "0.20", "is_active": True},
    "FIRST15": {"code": "FIRST15", "description": "15% off for first-time customers", "discount": "0.15", "is_active": True},
    "STUDENT": {"code": "STUDENT", "description": "12% student discount", "discount": "0.12", "is_active": True},
    "HOLIDAY25": {"code": "HOLIDAY25", "description": "25% holiday special", "discount": "0.25", "is_active": True},
})
