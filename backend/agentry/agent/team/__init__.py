# Team delegation: coordinator, assignTask tool and team assembly

from .schema import DelegationRequest, DelegationResult, TaskPriority
from .delegation_tool import AssignTaskTool, DELEGATION_TOOL_NAME
from .coordinator import TeamCoordinator
from .team import Team, create_team

__all__ = [
    'DelegationRequest',
    'DelegationResult',
    'TaskPriority',
    'AssignTaskTool',
    'DELEGATION_TOOL_NAME',
    'TeamCoordinator',
    'Team',
    'create_team',
]
