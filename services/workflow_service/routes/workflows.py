# workflows.py - CRUD endpoints for workflow templates
# This file defines the API endpoints for browsing and managing workflow templates.

from fastapi import APIRouter, HTTPException, Depends, Request
from typing import List
import logging

from ..exceptions import WorkflowError, TemplateProtectedError
from ..models import WorkflowTemplate
from ..templates import BUILTIN_TEMPLATE_IDS
from ..workflow_registry import TemplateRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/templates", tags=["templates"])

# Dependencies
def get_registry(request: Request) -> TemplateRegistry:
    return request.app.state.registry

@router.get("/", response_model=List[WorkflowTemplate])
async def list_templates(
    registry: TemplateRegistry = Depends(get_registry)
):
    """List all workflow templates."""
    try:
        return await registry.list_templates()

    except Exception as e:
        logger.error(f"Failed to list templates: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/", response_model=WorkflowTemplate, status_code=201)
async def create_template(
    template: WorkflowTemplate,
    registry: TemplateRegistry = Depends(get_registry)
):
    """Register a workflow template, replacing any custom template with the same id."""
    try:
        if template.id in BUILTIN_TEMPLATE_IDS:
            raise TemplateProtectedError(template.id)

        success = await registry.store_template(template)
        if not success:
            raise HTTPException(status_code=500, detail="Failed to store template")

        logger.info(f"Created template {template.id}: {template.name}")
        return template

    except HTTPException:
        raise
    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to create template: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{template_id}", response_model=WorkflowTemplate)
async def get_template(
    template_id: str,
    registry: TemplateRegistry = Depends(get_registry)
):
    """Get specific workflow template."""
    try:
        template = await registry.load_template(template_id)
        if not template:
            raise HTTPException(status_code=404, detail=f"Workflow template {template_id} not found")

        return template

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get template {template_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    registry: TemplateRegistry = Depends(get_registry)
):
    """Delete a workflow template. Running executions keep their own copy."""
    try:
        if template_id in BUILTIN_TEMPLATE_IDS:
            raise TemplateProtectedError(template_id)

        success = await registry.delete_template(template_id)
        if not success:
            raise HTTPException(status_code=404, detail=f"Workflow template {template_id} not found")

        return {"message": f"Template {template_id} deleted successfully"}

    except HTTPException:
        raise
    except WorkflowError:
        raise
    except Exception as e:
        logger.error(f"Failed to delete template {template_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
