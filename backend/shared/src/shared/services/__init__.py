"""Backend services for AgriCapital payment reconciliation."""

from .activation import ActivationCascade, compute_activation
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .payment_service import PaymentService
from .providers import FedaPayClient, KkiapayClient, TransactionVerifier, build_verifiers
from .reconciliation import Reconciler
from .return_flow import PollingSchedule, ReturnFlowPoller, ReturnParams
from .ssm_service import SSMService, SSMServiceError, get_ssm_service
from .webhook_handler import WebhookHandler, classify_event, parse_event

__all__ = [
    "ActivationCascade",
    "compute_activation",
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "PaymentService",
    "FedaPayClient",
    "KkiapayClient",
    "TransactionVerifier",
    "build_verifiers",
    "Reconciler",
    "PollingSchedule",
    "ReturnFlowPoller",
    "ReturnParams",
    "SSMService",
    "SSMServiceError",
    "get_ssm_service",
    "WebhookHandler",
    "classify_event",
    "parse_event",
]
