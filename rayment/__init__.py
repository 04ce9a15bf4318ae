"""
Rayment: client for a pay-per-render GPU marketplace.

Lets a caller:
- Price a job from a provider's tariff (same rounding as the provider)
- Submit a scene, pay the 402 quote, confirm, poll, download the result
- Render many scenes at once under a concurrency bound, with progress callbacks

Keys stay with the caller: the client only needs an address and a payment
callable (pay_to, amount, memo) -> proof. AgentWallet provides both from an
eth_account key.
"""

__version__ = "0.1.0"

from rayment.batch import BatchObserver, BatchScheduler, CallbackObserver
from rayment.client import RaymentClient
from rayment.clock import Clock, ManualClock, SystemClock
from rayment.config import Settings, load_settings
from rayment.errors import (
    CancellationError,
    DeadlineExceeded,
    JobStopped,
    PaymentError,
    PaymentRequiredNotReturned,
    QuoteExpired,
    RaymentError,
    RemoteRejection,
    TransientNetworkError,
    ValidationError,
)
from rayment.hub import HubClient, JobApi
from rayment.lifecycle import JobLifecycle
from rayment.logging_config import setup_logging
from rayment.pricing import PLATFORM_FEE_RATE, ceil_amount, estimate, round_amount
from rayment.progress import aggregate, summarize
from rayment.schema import (
    BatchFileResult,
    BatchProgress,
    BatchResult,
    FileStatus,
    JobCharacteristics,
    JobRecord,
    JobStatus,
    PriceBreakdown,
    Provider,
    Quote,
    RenderSettings,
    StatusReport,
    Tariff,
)
from rayment.wallet import AgentWallet

__all__ = [
    "__version__",
    "RaymentClient",
    "HubClient",
    "JobApi",
    "JobLifecycle",
    "BatchScheduler",
    "BatchObserver",
    "CallbackObserver",
    "AgentWallet",
    "Clock",
    "SystemClock",
    "ManualClock",
    "Settings",
    "load_settings",
    "setup_logging",
    "estimate",
    "round_amount",
    "ceil_amount",
    "PLATFORM_FEE_RATE",
    "aggregate",
    "summarize",
    "Tariff",
    "JobCharacteristics",
    "PriceBreakdown",
    "Quote",
    "StatusReport",
    "JobStatus",
    "JobRecord",
    "FileStatus",
    "BatchProgress",
    "BatchFileResult",
    "BatchResult",
    "Provider",
    "RenderSettings",
    "RaymentError",
    "ValidationError",
    "RemoteRejection",
    "PaymentRequiredNotReturned",
    "TransientNetworkError",
    "DeadlineExceeded",
    "QuoteExpired",
    "CancellationError",
    "JobStopped",
    "PaymentError",
]
