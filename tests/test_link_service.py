"""Link registry and sync engine tests."""

import pytest

from jira_integration.integrations.errors import (
    ErrorCode,
    InactiveIntegrationError,
    NotFoundError,
    TrackerAPIError,
)
from jira_integration.models import EntityType, SyncDirection, SyncOutcome, SyncStatus
from jira_integration.repositories import EntitySnapshot


class TestLinkRegistry:
    """Test linking and unlinking."""

    @pytest.mark.asyncio
    async def test_link_creates_synced_link(self, link_service, link_repo, jira_client, integration):
        jira_client.add_issue("ABC-1", "Login fails", status="To Do")

        link = await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")

        assert link.sync_status == SyncStatus.SYNCED
        assert link.sync_direction == SyncDirection.BIDIRECTIONAL
        assert link.issue_summary == "Login fails"
        assert link.issue_status == "To Do"
        assert link.issue_type == "Bug"
        assert link.last_synced_at is not None
        assert len(link_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_link_twice_updates_single_row(self, link_service, link_repo, jira_client, integration):
        jira_client.add_issue("ABC-1", "Login fails")
        first = await link_service.link(
            integration.id, None, "ABC-1", EntityType.CASE, "c1", direction=SyncDirection.FROM_EXTERNAL
        )

        jira_client.add_issue("ABC-1", "Login fails on Safari", status="In Progress")
        second = await link_service.link(
            integration.id, None, "ABC-1", EntityType.CASE, "c1", direction=SyncDirection.TO_EXTERNAL
        )

        assert len(link_repo.rows) == 1
        assert second.id == first.id
        assert second.issue_summary == "Login fails on Safari"
        assert second.issue_status == "In Progress"
        # Direction is only set when the link is created
        assert second.sync_direction == SyncDirection.FROM_EXTERNAL

    @pytest.mark.asyncio
    async def test_link_unlink_link(self, link_service, link_repo, jira_client, integration):
        jira_client.add_issue("ABC-1", "Login fails")

        await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")
        assert await link_service.unlink("ABC-1", EntityType.CASE, "c1") is True
        await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")

        assert len(link_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_unlink_missing_is_not_an_error(self, link_service):
        assert await link_service.unlink("ABC-9", EntityType.CASE, "nope") is False

    @pytest.mark.asyncio
    async def test_link_requires_integration(self, link_service):
        with pytest.raises(NotFoundError) as exc_info:
            await link_service.link("missing", None, "ABC-1", EntityType.CASE, "c1")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_link_requires_active_integration(self, link_service, integration_repo, integration):
        await integration_repo.update_fields(integration.id, {"is_active": False})

        with pytest.raises(InactiveIntegrationError) as exc_info:
            await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")

        assert exc_info.value.code == ErrorCode.INACTIVE

    @pytest.mark.asyncio
    async def test_link_unknown_issue(self, link_service, link_repo, integration):
        with pytest.raises(NotFoundError):
            await link_service.link(integration.id, None, "ABC-404", EntityType.CASE, "c1")

        assert link_repo.rows == {}

    @pytest.mark.asyncio
    async def test_set_direction(self, link_service, jira_client, integration):
        jira_client.add_issue("ABC-1", "Login fails")
        link = await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")

        updated = await link_service.set_direction(link.id, SyncDirection.TO_EXTERNAL)

        assert updated.sync_direction == SyncDirection.TO_EXTERNAL

    @pytest.mark.asyncio
    async def test_remove_issue_links_is_scoped(self, link_service, link_repo, jira_client, integration):
        jira_client.add_issue("ABC-1", "Login fails")
        jira_client.add_issue("ABC-2", "Logout fails")
        await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")
        await link_service.link(integration.id, None, "ABC-1", EntityType.DEFECT, "d1")
        await link_service.link(integration.id, None, "ABC-2", EntityType.CASE, "c2")

        removed = await link_service.remove_issue_links(integration.id, "ABC-1")

        assert removed == 2
        assert [link.issue_key for link in link_repo.rows.values()] == ["ABC-2"]


class TestSyncToExternal:
    """Test pushing local entities to Jira."""

    @pytest.mark.asyncio
    async def test_pushes_title_and_description(self, link_service, link_repo, entity_stores, jira_client, integration):
        jira_client.add_issue("ABC-1", "Old title")
        link = await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")
        entity_stores[EntityType.CASE].rows["c1"] = EntitySnapshot(title="New title", description="Body")

        outcome = await link_service.sync_entity_to_external(EntityType.CASE, "c1")

        assert outcome == SyncOutcome.SYNCED
        assert ("update_issue", "ABC-1", "New title", "Body") in jira_client.calls
        assert link_repo.rows[link.id].sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_no_link(self, link_service, jira_client):
        outcome = await link_service.sync_entity_to_external(EntityType.CASE, "unlinked")

        assert outcome == SyncOutcome.SKIPPED_NO_LINK
        assert jira_client.calls == []

    @pytest.mark.asyncio
    async def test_from_external_link_never_calls_jira(self, link_service, entity_stores, jira_client, integration):
        jira_client.add_issue("ABC-1", "Title")
        await link_service.link(
            integration.id, None, "ABC-1", EntityType.CASE, "c1", direction=SyncDirection.FROM_EXTERNAL
        )
        entity_stores[EntityType.CASE].rows["c1"] = EntitySnapshot(title="Local")

        outcome = await link_service.sync_entity_to_external(EntityType.CASE, "c1")

        assert outcome == SyncOutcome.SKIPPED_BY_DIRECTION
        assert jira_client.count("update_issue") == 0

    @pytest.mark.asyncio
    async def test_failure_marks_failed_and_keeps_summary(
        self, link_service, link_repo, entity_stores, jira_client, integration
    ):
        jira_client.add_issue("ABC-1", "Cached summary")
        link = await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")
        entity_stores[EntityType.CASE].rows["c1"] = EntitySnapshot(title="Local")
        jira_client.fail_updates = True

        with pytest.raises(TrackerAPIError):
            await link_service.sync_entity_to_external(EntityType.CASE, "c1")

        stored = link_repo.rows[link.id]
        assert stored.sync_status == SyncStatus.FAILED
        assert stored.issue_summary == "Cached summary"

    @pytest.mark.asyncio
    async def test_success_after_failure(self, link_service, link_repo, entity_stores, jira_client, integration):
        jira_client.add_issue("ABC-1", "Title")
        link = await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")
        entity_stores[EntityType.CASE].rows["c1"] = EntitySnapshot(title="Local")

        jira_client.fail_updates = True
        with pytest.raises(TrackerAPIError):
            await link_service.sync_entity_to_external(EntityType.CASE, "c1")

        jira_client.fail_updates = False
        await link_service.sync_entity_to_external(EntityType.CASE, "c1")

        assert link_repo.rows[link.id].sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_missing_local_entity_fails(self, link_service, link_repo, jira_client, integration):
        jira_client.add_issue("ABC-1", "Title")
        link = await link_service.link(integration.id, None, "ABC-1", EntityType.CASE, "c1")

        with pytest.raises(NotFoundError):
            await link_service.sync_entity_to_external(EntityType.CASE, "c1")

        assert link_repo.rows[link.id].sync_status == SyncStatus.FAILED
        assert jira_client.count("update_issue") == 0


class TestSyncFromExternal:
    """Test pulling Jira issues into links and entities."""

    async def _linked(self, link_service, jira_client, integration, direction):
        jira_client.add_issue("ABC-1", "Original")
        return await link_service.link(
            integration.id, None, "ABC-1", EntityType.CASE, "c1", direction=direction
        )

    @pytest.mark.asyncio
    async def test_bidirectional_overwrites_entity(self, link_service, link_repo, entity_stores, jira_client, integration):
        link = await self._linked(link_service, jira_client, integration, SyncDirection.BIDIRECTIONAL)
        store = entity_stores[EntityType.CASE]
        store.rows["c1"] = EntitySnapshot(title="Local title", description="Local body")
        jira_client.add_issue("ABC-1", "Jira title", status="Done", description="Jira body")

        outcome = await link_service.sync_from_external("ABC-1")

        assert outcome == SyncOutcome.SYNCED
        assert store.rows["c1"] == EntitySnapshot(title="Jira title", description="Jira body")
        stored = link_repo.rows[link.id]
        assert stored.issue_summary == "Jira title"
        assert stored.issue_status == "Done"

    @pytest.mark.asyncio
    async def test_from_external_only_refreshes_cache(
        self, link_service, link_repo, entity_stores, jira_client, integration
    ):
        link = await self._linked(link_service, jira_client, integration, SyncDirection.FROM_EXTERNAL)
        store = entity_stores[EntityType.CASE]
        store.rows["c1"] = EntitySnapshot(title="Local title")
        jira_client.add_issue("ABC-1", "Jira title", status="Done")

        outcome = await link_service.sync_from_external("ABC-1")

        assert outcome == SyncOutcome.SYNCED
        assert store.rows["c1"].title == "Local title"
        assert store.updates == []
        assert link_repo.rows[link.id].issue_summary == "Jira title"

    @pytest.mark.asyncio
    async def test_to_external_is_skipped(self, link_service, link_repo, entity_stores, jira_client, integration):
        link = await self._linked(link_service, jira_client, integration, SyncDirection.TO_EXTERNAL)
        store = entity_stores[EntityType.CASE]
        store.rows["c1"] = EntitySnapshot(title="Local title")
        jira_client.add_issue("ABC-1", "Jira title")
        calls_before = len(jira_client.calls)

        outcome = await link_service.sync_from_external("ABC-1")

        assert outcome == SyncOutcome.SKIPPED_BY_DIRECTION
        assert len(jira_client.calls) == calls_before
        assert store.updates == []
        assert link_repo.rows[link.id].issue_summary == "Original"

    @pytest.mark.asyncio
    async def test_no_link(self, link_service):
        assert await link_service.sync_from_external("ABC-404") == SyncOutcome.SKIPPED_NO_LINK

    @pytest.mark.asyncio
    async def test_unchanged_issue_does_not_rewrite_entity(self, link_service, link_repo, entity_stores, jira_client, integration):
        link = await self._linked(link_service, jira_client, integration, SyncDirection.BIDIRECTIONAL)
        store = entity_stores[EntityType.CASE]
        store.rows["c1"] = EntitySnapshot(title="Original")

        await link_service.sync_from_external("ABC-1")
        await link_service.sync_from_external("ABC-1")

        assert store.updates == []
        assert len(link_repo.rows) == 1
        assert link_repo.rows[link.id].sync_status == SyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_failure_marks_failed(self, link_service, link_repo, jira_client, integration):
        link = await self._linked(link_service, jira_client, integration, SyncDirection.BIDIRECTIONAL)
        del jira_client.issues["ABC-1"]

        with pytest.raises(NotFoundError):
            await link_service.sync_from_external("ABC-1")

        stored = link_repo.rows[link.id]
        assert stored.sync_status == SyncStatus.FAILED
        assert stored.issue_summary == "Original"

    @pytest.mark.asyncio
    async def test_updates_integration_last_sync(self, link_service, integration_repo, jira_client, integration):
        await self._linked(link_service, jira_client, integration, SyncDirection.BIDIRECTIONAL)

        await link_service.sync_from_external("ABC-1")

        assert integration_repo.rows[integration.id].last_sync_at is not None
