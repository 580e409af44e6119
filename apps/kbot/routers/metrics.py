"""
Prometheus Metrics Endpoint.

Exposes /metrics for Prometheus scraping:

```
# HELP kbot_messages_total Total number of messages received by the bot
# TYPE kbot_messages_total counter
kbot_messages_total{command="hello",status="success"} 42.0
```
"""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

router = APIRouter()


@router.get("/metrics")
async def metrics(request: Request):
    """Render the recorder bound to the app in the text exposition format."""
    recorder = request.app.state.metrics
    return Response(content=recorder.snapshot(), media_type=CONTENT_TYPE_LATEST)
