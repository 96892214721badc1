"""
Payment gateway adapters.

This package provides adapters for external payment gateways. Adapters
encapsulate API interactions with consistent error handling, timeouts
and observability.

Available Adapters:
    MpesaAdapter: Safaricom Daraja STK push payments

Usage:
    from payments.adapters import MpesaAdapter, StkPushParams

    result = MpesaAdapter.initiate(
        StkPushParams(amount_cents=400_000, phone_number="0712345678", reference=ref)
    )
"""

from payments.adapters.mpesa_adapter import (
    GatewayCallback,
    MpesaAdapter,
    StkPushParams,
    StkPushResult,
)

__all__ = [
    "GatewayCallback",
    "MpesaAdapter",
    "StkPushParams",
    "StkPushResult",
]
