"""Tests for startup-time queue provisioning."""

from __future__ import annotations

from typing import Any

import pytest

from src.core.config import Settings
from src.pipeline.errors import ProvisioningError
from src.pipeline.gateway import QueueGateway
from src.pipeline.provisioning import PipelineQueues, create_gateway, provision_queues


class TestProvisionQueues:
    @pytest.mark.asyncio
    async def test_resolves_all_four_queues(self, gateway: QueueGateway, test_settings: Settings) -> None:
        queues = await provision_queues(gateway, test_settings)

        assert queues == PipelineQueues(
            task_queue_url="taskrelay:queue:task-queue",
            results_queue_url="taskrelay:queue:results-queue",
            task_dead_letter_url="taskrelay:queue:task-queue-failed",
            results_dead_letter_url="taskrelay:queue:results-queue-failed",
        )
        assert len(queues.all_urls()) == 4

    @pytest.mark.asyncio
    async def test_primary_queues_redrive_to_their_dead_letter_queue(
        self, gateway: QueueGateway, test_settings: Settings
    ) -> None:
        queues = await provision_queues(gateway, test_settings)

        task_attrs = await gateway.get_attributes(queues.task_queue_url)
        results_attrs = await gateway.get_attributes(queues.results_queue_url)
        assert task_attrs.dead_letter_target == queues.task_dead_letter_url
        assert results_attrs.dead_letter_target == queues.results_dead_letter_url

    @pytest.mark.asyncio
    async def test_repeated_provisioning_is_idempotent(
        self, gateway: QueueGateway, test_settings: Settings, fake_redis: Any
    ) -> None:
        first = await provision_queues(gateway, test_settings)
        hashes_before = {k: dict(v) for k, v in fake_redis.hashes.items()}

        second = await provision_queues(gateway, test_settings)

        assert first == second
        assert fake_redis.hashes == hashes_before

    @pytest.mark.asyncio
    async def test_redis_down_is_fatal(
        self, gateway: QueueGateway, test_settings: Settings, fake_redis: Any
    ) -> None:
        fake_redis.fail_on.add("hgetall")
        with pytest.raises(ProvisioningError):
            await provision_queues(gateway, test_settings)

    @pytest.mark.asyncio
    async def test_missing_queue_name_is_fatal(self, gateway: QueueGateway, test_settings: Settings) -> None:
        settings = test_settings.model_copy(update={"results_queue_name": ""})
        with pytest.raises(ProvisioningError, match="must be configured"):
            await provision_queues(gateway, settings)


class TestCreateGateway:
    def test_uses_queue_settings(self, fake_redis: Any) -> None:
        settings = Settings(
            queue_visibility_timeout=30,
            queue_message_retention_period=3600,
            _env_file=None,  # type: ignore[call-arg]
        )
        gateway = create_gateway(fake_redis, settings)

        assert gateway._visibility_timeout == 30
        assert gateway._retention == 3600
        assert gateway.consumer_name
