import json

import pytest

from transports.health import create_app, health


@pytest.mark.asyncio
async def test_health_reports_ok():
    response = await health(None)
    assert response.status == 200
    assert json.loads(response.text) == {"status": "OK"}


def test_health_route_registered():
    app = create_app()
    paths = [route.resource.canonical for route in app.router.routes()]
    assert "/health" in paths
