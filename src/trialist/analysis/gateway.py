"""Client for the remote N-of-1 analysis service."""

from typing import Any, Dict, Optional
import httpx

from ..config.settings import settings
from ..core.errors import AnalysisSubmissionError
from ..core.models import NormalizedDocument
from ..utils.logging import get_logger

logger = get_logger(__name__)


class AnalysisClient:
    """
    Posts normalized documents to the analysis service.

    A submission is attempted exactly once.  Any non-200 answer, transport
    failure or non-object body raises AnalysisSubmissionError so the caller
    can leave the trial unprocessed for the next run.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url or settings.analysis_url
        self.client = httpx.Client(
            timeout=timeout or settings.analysis_timeout,
            headers={"Content-Type": "application/json", "User-Agent": "TrialistProcessor/0.1.0"},
            transport=transport,
        )

    def submit(self, document: NormalizedDocument) -> Dict[str, Any]:
        """Send a document for analysis and return the decoded JSON result."""
        try:
            response = self.client.post(self.url, json=document.to_payload())
        except httpx.HTTPError as e:
            logger.error(f"Problem with HTTP POST to {self.url}: {e}")
            raise AnalysisSubmissionError(f"Could not reach the analysis service: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Received a non-200 response from the analysis service: {response.status_code}",
                extra={"body": response.text[:1000]},
            )
            raise AnalysisSubmissionError(
                f"Analysis service answered with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AnalysisSubmissionError("Analysis service returned a body that is not JSON") from e
        if not isinstance(payload, dict):
            raise AnalysisSubmissionError("Analysis service returned JSON that is not an object")
        return payload

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
