"""
Agents Router — agent listing, feedback, manual runs and status changes.
"""

from fastapi import APIRouter, Depends, Response, status

from agents.service import AgentService
from alerts.schemas import AgentResponse, AgentRunResult, AgentStatusUpdate, FeedbackCreate
from alerts.service import AlertService
from api.deps import api_rate_limit, get_agent_service, get_alert_service

router = APIRouter(prefix="/api/agents", tags=["agents"], dependencies=[Depends(api_rate_limit)])


@router.get("", response_model=list[AgentResponse])
async def list_agents(service: AgentService = Depends(get_agent_service)):
    agents = await service.list_agents()
    return [AgentResponse.model_validate(a) for a in agents]


@router.post("/run/{agent_id}", response_model=AgentRunResult)
async def run_agent(agent_id: str, service: AgentService = Depends(get_agent_service)):
    """Trigger one analysis pass; may produce an alert."""
    return await service.run_agent(agent_id)


@router.post("/{agent_id}/feedback", status_code=status.HTTP_204_NO_CONTENT)
async def submit_feedback(
    agent_id: str,
    body: FeedbackCreate,
    service: AlertService = Depends(get_alert_service),
):
    """Record an analyst rating and refresh the agent's accuracy."""
    await service.submit_feedback(agent_id, body)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{agent_id}/status", status_code=status.HTTP_204_NO_CONTENT)
async def update_agent_status(
    agent_id: str,
    body: AgentStatusUpdate,
    service: AgentService = Depends(get_agent_service),
):
    await service.set_status(agent_id, body.status)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
