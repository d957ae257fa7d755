"""Link and sync API endpoints."""

from fastapi import APIRouter, Depends, status
import logging

from jira_integration.models import EntityType
from jira_integration.schemas.integration import (
    DirectionUpdate,
    LinkRequest,
    LinkResponse,
    SyncFromExternalRequest,
    SyncResponse,
    SyncToExternalRequest,
    UnlinkRequest,
)
from jira_integration.services import IntegrationService, LinkService
from jira_integration.api.dependencies import (
    get_current_user,
    get_integration_service,
    get_link_service,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/links/{project_id}", status_code=status.HTTP_201_CREATED)
async def link_entity(
    project_id: str,
    request: LinkRequest,
    current_user=Depends(get_current_user),
    integration_service: IntegrationService = Depends(get_integration_service),
    link_service: LinkService = Depends(get_link_service),
):
    """Link an entity to a Jira issue."""
    integration = await integration_service.require_integration(project_id)
    link = await link_service.link(
        integration.id,
        request.project_mapping_id,
        request.issue_key,
        request.entity_type,
        request.entity_id,
        direction=request.sync_direction,
    )
    return {
        "success": True,
        "message": "Entity linked to Jira successfully",
        "data": LinkResponse.from_model(link),
    }


@router.post("/unlink")
async def unlink_entity(
    request: UnlinkRequest,
    current_user=Depends(get_current_user),
    link_service: LinkService = Depends(get_link_service),
):
    """Unlink an entity from Jira. Unlinking twice is not an error."""
    removed = await link_service.unlink(request.issue_key, request.entity_type, request.entity_id)
    return {
        "success": True,
        "message": "Entity unlinked from Jira successfully",
        "data": {"removed": removed},
    }


@router.get("/links/{entity_type}/{entity_id}")
async def get_entity_links(
    entity_type: EntityType,
    entity_id: str,
    current_user=Depends(get_current_user),
    link_service: LinkService = Depends(get_link_service),
):
    """Get Jira links for an entity."""
    links = await link_service.get_entity_links(entity_type, entity_id)
    return {"success": True, "data": [LinkResponse.from_model(link) for link in links]}


@router.patch("/links/{link_id}/direction")
async def set_link_direction(
    link_id: str,
    request: DirectionUpdate,
    current_user=Depends(get_current_user),
    link_service: LinkService = Depends(get_link_service),
):
    link = await link_service.set_direction(link_id, request.sync_direction)
    return {"success": True, "data": LinkResponse.from_model(link)}


@router.post("/sync/to-jira")
async def sync_to_jira(
    request: SyncToExternalRequest,
    current_user=Depends(get_current_user),
    link_service: LinkService = Depends(get_link_service),
):
    """Push an entity to its linked Jira issue."""
    outcome = await link_service.sync_entity_to_external(request.entity_type, request.entity_id)
    return {"success": True, "data": SyncResponse(outcome=outcome)}


@router.post("/sync/from-jira")
async def sync_from_jira(
    request: SyncFromExternalRequest,
    current_user=Depends(get_current_user),
    link_service: LinkService = Depends(get_link_service),
):
    """Pull a Jira issue into its link."""
    outcome = await link_service.sync_from_external(request.issue_key)
    return {"success": True, "data": SyncResponse(outcome=outcome)}
