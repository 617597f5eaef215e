import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request credentials and tracing, passed explicitly into every
    outbound call instead of living in ambient (thread-local) state.
    """
    token: Optional[str] = None
    subject: Optional[str] = None
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def outbound_headers(self) -> Dict[str, str]:
        headers = {"X-Correlation-ID": self.correlation_id}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers
