"""
HTTP client for the render hub.

Submit → 402 + quote, confirm payment, poll status, fetch result; plus the
read-only provider and stats endpoints. Transport failures become
TransientNetworkError; explicit hub refusals become RemoteRejection. Nothing
here retries: that decision belongs to the caller (only status polls are
retried, by the lifecycle).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import requests

from rayment.config import DEFAULT_HUB_URL
from rayment.errors import PaymentRequiredNotReturned, RemoteRejection, TransientNetworkError
from rayment.schema import HubStats, Provider, Quote, RenderSettings, StatusReport

logger = logging.getLogger(__name__)

# Gateway errors are worth another poll; other 5xx are the hub's answer.
TRANSIENT_STATUS_CODES = frozenset({502, 503, 504})


class JobApi(Protocol):
    """The four hub capabilities a job lifecycle needs."""

    def submit_job(
        self,
        input_ref: str,
        wallet_address: str,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
    ) -> Quote: ...

    def confirm_payment(self, job_id: str, payment_proof: str) -> bool: ...

    def poll_job_status(self, job_id: str) -> StatusReport: ...

    def fetch_result(self, job_id: str) -> bytes: ...


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.text or f"HTTP {response.status_code}"


class HubClient:
    """requests-based implementation of JobApi against the hub's REST API."""

    def __init__(
        self,
        hub_url: str = DEFAULT_HUB_URL,
        timeout: float = 300.0,
        session: Optional[requests.Session] = None,
    ):
        self.hub_url = (hub_url or DEFAULT_HUB_URL).strip().rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.hub_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, self._url(path), **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientNetworkError(f"{method} {path}: {e}") from e
        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientNetworkError(f"{method} {path}: hub returned {response.status_code}")
        return response

    def _data(self, response: requests.Response) -> Any:
        """Unwrap the hub's {success, data, error} envelope."""
        if response.status_code >= 400:
            raise RemoteRejection(_error_text(response), status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteRejection(f"Invalid JSON from hub: {e}", status_code=response.status_code) from e
        if isinstance(body, dict) and body.get("success") is False:
            raise RemoteRejection(str(body.get("error") or "Hub reported failure"), status_code=response.status_code)
        return body.get("data") if isinstance(body, dict) else body

    # -- job lifecycle ------------------------------------------------------

    def submit_job(
        self,
        input_ref: str,
        wallet_address: str,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
    ) -> Quote:
        """
        Upload the scene file. The hub answers 402 Payment Required with the
        quote; any other answer is PaymentRequiredNotReturned.
        """
        settings = settings or RenderSettings()
        form: Dict[str, str] = {
            "clientWallet": wallet_address,
            "settings": json.dumps(settings.to_wire()),
        }
        if provider_id:
            form["providerId"] = provider_id

        path = Path(input_ref)
        with open(path, "rb") as fh:
            response = self._request(
                "POST",
                "/render",
                data=form,
                files={"file": (path.name, fh, "application/octet-stream")},
            )

        if response.status_code != 402:
            if response.status_code >= 400:
                raise RemoteRejection(_error_text(response), status_code=response.status_code)
            raise PaymentRequiredNotReturned(
                f"Expected 402 response, got {response.status_code}", status_code=response.status_code
            )
        try:
            body = response.json()
            payment = body["payment"]
        except (ValueError, KeyError, TypeError) as e:
            raise PaymentRequiredNotReturned(f"402 response without a quote: {e}", status_code=402) from e
        quote = Quote.model_validate(payment)
        logger.info("Submitted %s → job %s, quoted %s to %s", path.name, quote.job_id, quote.price, quote.pay_to)
        return quote

    def confirm_payment(self, job_id: str, payment_proof: str) -> bool:
        """True if the hub accepted the payment proof for job_id."""
        response = self._request("POST", "/render/pay", json={"jobId": job_id, "txSignature": payment_proof})
        if response.status_code >= 500:
            raise RemoteRejection(_error_text(response), status_code=response.status_code)
        try:
            body = response.json()
        except ValueError:
            return False
        accepted = isinstance(body, dict) and bool(body.get("success"))
        if not accepted:
            logger.warning("Hub refused payment for job %s: %s", job_id, _error_text(response))
        return accepted

    def poll_job_status(self, job_id: str) -> StatusReport:
        data = self._data(self._request("GET", f"/render/{job_id}"))
        if not isinstance(data, dict):
            raise RemoteRejection(f"Hub returned no job view for {job_id}")
        return StatusReport.model_validate(data)

    def fetch_result(self, job_id: str) -> bytes:
        response = self._request("GET", f"/render/{job_id}/result")
        if response.status_code >= 400:
            raise RemoteRejection(_error_text(response), status_code=response.status_code)
        return response.content

    # -- hub views ----------------------------------------------------------

    def get_providers(self, status: Optional[str] = None) -> List[Provider]:
        params = {"status": status} if status else None
        data = self._data(self._request("GET", "/providers", params=params))
        return [Provider.model_validate(p) for p in (data or {}).get("providers", [])]

    def get_provider(self, provider_id: str) -> Provider:
        return Provider.model_validate(self._data(self._request("GET", f"/providers/{provider_id}")))

    def get_stats(self) -> HubStats:
        return HubStats.model_validate(self._data(self._request("GET", "/stats")))
