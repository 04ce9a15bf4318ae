"""
RaymentClient: the one object most callers need.

Wires a HubClient, a wallet address and a payment capability together and
exposes estimate → render → render_batch, plus the hub's read-only views.

    client = RaymentClient.from_env()
    record = client.render("scene.blend", output_path="render.png")
    result = client.render_batch(["a.blend", "b.blend"], output_dir="renders", concurrency=2)
"""

from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from rayment.batch import BatchObserver, BatchScheduler
from rayment.clock import Clock, SystemClock
from rayment.config import Settings, load_settings
from rayment.errors import RaymentError, RemoteRejection, ValidationError
from rayment.hub import HubClient, JobApi
from rayment.lifecycle import JobLifecycle
from rayment.payments import SendPayment, get_balance
from rayment.pricing import PLATFORM_FEE_RATE, estimate
from rayment.schema import (
    BatchProgress,
    BatchResult,
    FileStatus,
    HubStats,
    JobCharacteristics,
    JobRecord,
    PriceBreakdown,
    Provider,
    RenderSettings,
)
from rayment.wallet import AgentWallet


class RaymentClient:
    def __init__(
        self,
        wallet_address: str,
        send_payment: Optional[SendPayment] = None,
        api: Optional[JobApi] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        if not wallet_address:
            raise ValidationError("Wallet address required")
        self.settings = settings or Settings()
        self.wallet_address = wallet_address
        self.send_payment = send_payment
        self.api = api or HubClient(self.settings.hub_url, timeout=self.settings.request_timeout)
        self.clock = clock or SystemClock()

    @classmethod
    def from_wallet(cls, wallet: AgentWallet, settings: Optional[Settings] = None, **kwargs) -> "RaymentClient":
        """Client that pays on chain from wallet's account."""
        settings = settings or Settings()
        return cls(
            wallet.address,
            send_payment=wallet.payment(rpc_url=settings.rpc_url, chain_id=settings.chain_id),
            settings=settings,
            **kwargs,
        )

    @classmethod
    def from_env(cls) -> "RaymentClient":
        """Settings and key from RAYMENT_* env vars (and .env)."""
        settings = load_settings()
        wallet = AgentWallet.from_env()
        if wallet is None:
            raise ValidationError("Set RAYMENT_CLIENT_PRIVATE_KEY in the environment (never commit it).")
        return cls.from_wallet(wallet, settings=settings)

    def _require_payment(self) -> SendPayment:
        if self.send_payment is None:
            raise ValidationError("A payment capability is required to render")
        return self.send_payment

    def _hub(self) -> HubClient:
        if not isinstance(self.api, HubClient):
            raise RaymentError("Hub views need a HubClient api")
        return self.api

    # -- hub views ----------------------------------------------------------

    def get_providers(self, status: Optional[str] = None) -> List[Provider]:
        return self._hub().get_providers(status)

    def get_provider(self, provider_id: str) -> Provider:
        return self._hub().get_provider(provider_id)

    def get_stats(self) -> HubStats:
        return self._hub().get_stats()

    def get_balance(self) -> float:
        return get_balance(self.wallet_address, self.settings.rpc_url)

    # -- pricing ------------------------------------------------------------

    def estimate_cost(
        self,
        file_size_bytes: int,
        frame_count: int = 1,
        provider_id: Optional[str] = None,
        estimated_time_seconds: Optional[float] = None,
        platform_fee_rate: float = PLATFORM_FEE_RATE,
    ) -> Tuple[Provider, PriceBreakdown]:
        """
        Price a job locally against a provider's tariff without submitting it.
        Without provider_id, the first online provider is used.
        """
        if provider_id:
            provider = self.get_provider(provider_id)
        else:
            providers = self.get_providers("online")
            if not providers:
                raise RemoteRejection("No providers available")
            provider = providers[0]
        if estimated_time_seconds is None:
            estimated_time_seconds = self.settings.estimated_render_seconds
        characteristics = JobCharacteristics(
            size_bytes=file_size_bytes,
            work_units=frame_count,
            estimated_time_seconds=estimated_time_seconds,
        )
        return provider, estimate(provider.pricing, characteristics, platform_fee_rate)

    # -- rendering ----------------------------------------------------------

    def lifecycle(
        self,
        file_path: str,
        output_path: Optional[str] = None,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
        max_price: Optional[float] = None,
        on_transition: Optional[Callable[[JobRecord], None]] = None,
    ) -> JobLifecycle:
        """A lifecycle for one file, for callers who want to drive the steps themselves."""
        return JobLifecycle(
            str(file_path),
            self.api,
            self._require_payment(),
            self.wallet_address,
            settings=settings,
            provider_id=provider_id,
            clock=self.clock,
            poll_interval=self.settings.poll_interval,
            timeout=self.settings.job_timeout,
            poll_retries=self.settings.poll_retries,
            poll_backoff=self.settings.poll_backoff,
            max_price=max_price,
            output_path=Path(output_path) if output_path else None,
            on_transition=on_transition,
        )

    def render(
        self,
        file_path: str,
        output_path: Optional[str] = None,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
        max_price: Optional[float] = None,
        on_transition: Optional[Callable[[JobRecord], None]] = None,
    ) -> JobRecord:
        """Request → pay → wait → download for one file. Failures are in the record."""
        return self.lifecycle(
            file_path,
            output_path=output_path,
            settings=settings,
            provider_id=provider_id,
            max_price=max_price,
            on_transition=on_transition,
        ).run()

    def scheduler(
        self,
        output_dir: Optional[str] = None,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
        max_price: Optional[float] = None,
    ) -> BatchScheduler:
        return BatchScheduler(
            self.api,
            self._require_payment(),
            self.wallet_address,
            settings=settings,
            provider_id=provider_id,
            clock=self.clock,
            poll_interval=self.settings.poll_interval,
            timeout=self.settings.job_timeout,
            poll_retries=self.settings.poll_retries,
            poll_backoff=self.settings.poll_backoff,
            max_price=max_price,
            output_dir=Path(output_dir) if output_dir else None,
        )

    def render_batch(
        self,
        files: Iterable[str],
        output_dir: Optional[str] = None,
        concurrency: Optional[int] = None,
        stop_on_error: bool = False,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
        max_price: Optional[float] = None,
        on_file_progress: Optional[Callable[[str, FileStatus], None]] = None,
        on_batch_progress: Optional[Callable[[BatchProgress], None]] = None,
        observer: Optional[BatchObserver] = None,
    ) -> BatchResult:
        """Render many files, at most `concurrency` at a time (default from settings)."""
        scheduler = self.scheduler(
            output_dir=output_dir, settings=settings, provider_id=provider_id, max_price=max_price
        )
        return scheduler.run_batch(
            list(files),
            self.settings.concurrency if concurrency is None else concurrency,
            stop_on_error=stop_on_error,
            on_file_progress=on_file_progress,
            on_batch_progress=on_batch_progress,
            observer=observer,
        )
