"""
Pytest-BDD specific configuration and fixtures.

This module provides fixtures specific to BDD step definitions.
"""

import asyncio

import pytest

from campaign_forge.simulation.errors import CampaignForgeError


@pytest.fixture
def build_campaign(context, make_orchestrator):
    """
    Run the request held in the context and store the result or error.

    Steps are synchronous, so each build gets its own event loop.
    """

    def _build(request=None):
        request = request or context["request"]
        orchestrator = make_orchestrator(content_filler=context.get("content_filler"))
        try:
            return asyncio.run(orchestrator.run(request, context.get("cancel_event")))
        except CampaignForgeError as e:
            context["error"] = e
            return None

    return _build
