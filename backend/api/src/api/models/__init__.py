"""API-specific request/response models.

Domain models (Payment, Plantation, ...) are in shared.models and are
reused here where appropriate.

Modules:
- payments: Return-check and provider verification models
- webhooks: Webhook acknowledgement models
"""

__all__: list[str] = []
