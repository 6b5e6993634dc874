"""
Property-Based Tests for Health Check Completeness

The deep health check always reports api, database and search_engine, and
only an API or database outage makes the service unhealthy.
"""
import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from app.api.v1.health import check_with_timeout, determine_overall_status, health_check_deep
from app.models.schemas import ComponentHealth, ComponentStatus, HealthResponse

REQUIRED_COMPONENTS = {"api", "database", "search_engine"}


component_status_strategy = st.sampled_from(list(ComponentStatus))


# =============================================================================
# Property Tests
# =============================================================================

class TestOverallStatusProperties:

    @given(
        api_status=component_status_strategy,
        db_status=component_status_strategy,
        engine_status=component_status_strategy,
    )
    @settings(max_examples=100, deadline=None)
    def test_overall_status(self, api_status, db_status, engine_status):
        """
        Property: healthy iff all healthy; unhealthy iff api or database is
        unavailable; degraded otherwise. The engine alone never makes it unhealthy.
        """
        components = {
            "api": ComponentHealth(name="API", status=api_status),
            "database": ComponentHealth(name="Database", status=db_status),
            "search_engine": ComponentHealth(name="Search Engine", status=engine_status),
        }

        overall = determine_overall_status(components)

        statuses = {api_status, db_status, engine_status}
        if statuses == {ComponentStatus.HEALTHY}:
            assert overall == "healthy"
        elif ComponentStatus.UNAVAILABLE in (api_status, db_status):
            assert overall == "unhealthy"
        else:
            assert overall == "degraded"

    @given(engine_status=component_status_strategy)
    @settings(max_examples=20, deadline=None)
    def test_serialization_preserves_components(self, engine_status):
        """
        Property: HealthResponse survives a JSON dump and reload.
        """
        response = HealthResponse(
            status="degraded",
            version="1.0.0",
            environment="test",
            components={
                "api": ComponentHealth(name="API", status=ComponentStatus.HEALTHY),
                "database": ComponentHealth(name="Database", status=ComponentStatus.HEALTHY),
                "search_engine": ComponentHealth(name="Search Engine", status=engine_status),
            },
        )

        restored = HealthResponse.model_validate_json(response.model_dump_json())

        assert set(restored.components) == REQUIRED_COMPONENTS
        assert restored.components["search_engine"].status == engine_status


class TestHealthCheckIntegration:

    @pytest.mark.asyncio
    async def test_engine_outage_only_degrades(self, monkeypatch):
        class DownEngine:
            async def health(self):
                return False

        monkeypatch.setattr("app.core.database.test_connection", lambda: True)
        monkeypatch.setattr("app.services.search_client.get_search_client", lambda: DownEngine())

        response = await health_check_deep()

        assert set(response.components) == REQUIRED_COMPONENTS
        assert response.components["search_engine"].status == ComponentStatus.UNAVAILABLE
        assert response.status == "degraded"

    @pytest.mark.asyncio
    async def test_database_outage_is_unhealthy(self, monkeypatch):
        class UpEngine:
            async def health(self):
                return True

        monkeypatch.setattr("app.core.database.test_connection", lambda: False)
        monkeypatch.setattr("app.services.search_client.get_search_client", lambda: UpEngine())

        response = await health_check_deep()

        assert response.status == "unhealthy"

    @pytest.mark.asyncio
    async def test_slow_check_times_out(self):
        async def slow():
            await asyncio.sleep(1)

        result = await check_with_timeout(slow, "Slow", timeout_seconds=0.01)

        assert result.status == ComponentStatus.UNAVAILABLE
        assert "timeout" in result.message
