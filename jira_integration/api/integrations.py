"""Jira integration management API endpoints."""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
import logging

from jira_integration.schemas.integration import (
    ConnectionConfig,
    IntegrationResponse,
    IntegrationSetupRequest,
    ProjectMappingResponse,
    ProjectMapRequest,
    SetupResponse,
    ToggleRequest,
    WebhookRegisterRequest,
)
from jira_integration.services import IntegrationService
from jira_integration.api.dependencies import get_current_user, get_integration_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/connection/test")
async def test_connection(
    config: ConnectionConfig,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Test Jira connection without saving."""
    result = await service.test_connection(config)

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({"success": False, "data": result}),
        )
    return {"success": True, "message": "Connection successful", "data": result}


@router.post("/integrations/{project_id}")
async def setup_integration(
    project_id: str,
    request: IntegrationSetupRequest,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Set up Jira integration for a project."""
    integration, connection = await service.setup_integration(project_id, request)
    return {
        "success": True,
        "message": "Jira integration configured successfully",
        "data": SetupResponse(
            integration=IntegrationResponse.from_model(integration),
            connection=connection,
        ),
    }


@router.get("/integrations/{project_id}")
async def get_integration(
    project_id: str,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Get Jira integration settings. ``data`` is null when none is configured."""
    integration = await service.get_integration(project_id)
    if not integration:
        return {"success": True, "data": None}

    mappings = await service.list_mappings(project_id)
    data = IntegrationResponse.from_model(integration).model_dump()
    data["projects"] = [ProjectMappingResponse.from_model(m) for m in mappings]
    return {"success": True, "data": data}


@router.patch("/integrations/{project_id}/toggle")
async def toggle_integration(
    project_id: str,
    request: ToggleRequest,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Enable or disable Jira integration."""
    integration = await service.toggle_integration(project_id, request.is_active)
    return {
        "success": True,
        "message": f"Jira integration {'enabled' if request.is_active else 'disabled'}",
        "data": IntegrationResponse.from_model(integration),
    }


@router.post("/integrations/{project_id}/webhook")
async def register_webhook(
    project_id: str,
    request: WebhookRegisterRequest,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Register a Jira webhook pointing at this service."""
    integration = await service.register_webhook(project_id, request.events)
    return {"success": True, "data": IntegrationResponse.from_model(integration)}


@router.get("/projects/{project_id}")
async def list_jira_projects(
    project_id: str,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """List the Jira projects visible to the integration."""
    projects = await service.list_external_projects(project_id)
    return {"success": True, "data": projects}


@router.post("/projects/{project_id}/map", status_code=status.HTTP_201_CREATED)
async def map_jira_project(
    project_id: str,
    request: ProjectMapRequest,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Map a Jira project to sync."""
    mapping = await service.map_project(project_id, request)
    return {
        "success": True,
        "message": "Jira project mapped successfully",
        "data": ProjectMappingResponse.from_model(mapping),
    }


@router.get("/projects/{project_id}/mappings")
async def list_project_mappings(
    project_id: str,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    mappings = await service.list_mappings(project_id)
    return {"success": True, "data": [ProjectMappingResponse.from_model(m) for m in mappings]}


@router.get("/projects/{project_id}/{project_key}/issue-types")
async def get_issue_types(
    project_id: str,
    project_key: str,
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Get issue types for a Jira project."""
    issue_types = await service.get_issue_types(project_id, project_key)
    return {"success": True, "data": issue_types}


@router.get("/search/{project_id}")
async def search_issues(
    project_id: str,
    jql: str = Query(""),
    max_results: int = Query(50, ge=1, le=100),
    current_user=Depends(get_current_user),
    service: IntegrationService = Depends(get_integration_service),
):
    """Search Jira issues using JQL."""
    issues = await service.search_issues(project_id, jql, max_results)
    return {"success": True, "data": issues}
