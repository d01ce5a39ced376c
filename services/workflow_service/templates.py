# templates.py - Built-in workflow template catalog
# Static definitions loaded into the template registry at startup; never mutated at runtime.

from typing import List

from .models import (
    WorkflowTemplate, WorkflowStep, StepType, AIAnalysisConfig, DecisionPointConfig,
    ApprovalConfig, ActionConfig, ConditionConfig, EscalationConfig, WorkflowCondition,
    ConditionOperator
)

BUDGET_APPROVAL = "budget-approval"
HIRING_DECISION = "hiring-decision"
RISK_ASSESSMENT = "risk-assessment"
PROJECT_APPROVAL = "project-approval"
VENDOR_SELECTION = "vendor-selection"
INCIDENT_RESPONSE = "incident-response"
STRATEGIC_PLANNING = "strategic-planning"

BUILTIN_TEMPLATE_IDS = frozenset({
    BUDGET_APPROVAL, HIRING_DECISION, RISK_ASSESSMENT, PROJECT_APPROVAL,
    VENDOR_SELECTION, INCIDENT_RESPONSE, STRATEGIC_PLANNING
})

def budget_approval_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=BUDGET_APPROVAL,
        name="Budget Approval Workflow",
        description="Standard workflow for budget approval processes",
        category="financial",
        complexity="moderate",
        estimated_duration=120,
        steps=[
            WorkflowStep(
                id="analyze_request",
                type=StepType.AI_ANALYSIS,
                name="Analyze Budget Request",
                description="AI analysis of budget request and financial impact",
                config=AIAnalysisConfig(
                    prompt="Analyze this budget request for financial impact, risks, and recommendations",
                    required_agents=["CFO", "Financial_Analyst"],
                    confidence_threshold=0.7,
                    analysis_type="financial"
                ),
                next_steps=["decision_point"]
            ),
            WorkflowStep(
                id="decision_point",
                type=StepType.DECISION_POINT,
                name="Budget Decision",
                description="Human decision on budget approval",
                config=DecisionPointConfig(options=["approve", "revise", "reject"]),
                next_steps=["approval"]
            ),
            WorkflowStep(
                id="approval",
                type=StepType.APPROVAL,
                name="Manager Approval",
                description="Manager approval for budget allocation",
                config=ApprovalConfig(
                    required_roles=["manager", "director"],
                    approval_type="any",
                    escalation_hours=24,
                    escalation_to=["vp", "cfo"]
                ),
                next_steps=[]
            )
        ],
        start_step_id="analyze_request",
        rating=4.5,
        tags=["budget", "financial", "approval"],
        requires_documents=True,
        min_participants=2,
        max_participants=5,
        required_roles=["manager"]
    )

def hiring_decision_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=HIRING_DECISION,
        name="Hiring Decision Workflow",
        description="Comprehensive workflow for hiring decisions",
        category="hr",
        complexity="complex",
        estimated_duration=180,
        steps=[
            WorkflowStep(
                id="candidate_analysis",
                type=StepType.AI_ANALYSIS,
                name="Candidate Analysis",
                description="AI review of candidate fit, compensation and team impact",
                config=AIAnalysisConfig(
                    prompt="Assess the candidate against the role requirements, compensation band and team needs",
                    required_agents=["HR", "CTO"],
                    confidence_threshold=0.75,
                    analysis_type="operational"
                ),
                next_steps=["hiring_decision"]
            ),
            WorkflowStep(
                id="hiring_decision",
                type=StepType.DECISION_POINT,
                name="Hiring Decision",
                description="Panel decision on the offer",
                config=DecisionPointConfig(options=["offer", "hold", "decline"], decision_roles=["hr", "hiring_manager"]),
                next_steps=["offer_approval"]
            ),
            WorkflowStep(
                id="offer_approval",
                type=StepType.APPROVAL,
                name="Offer Approval",
                description="HR and finance sign-off on the offer",
                config=ApprovalConfig(
                    required_roles=["hr", "finance"],
                    approval_type="all",
                    escalation_hours=48,
                    escalation_to=["ceo"]
                ),
                next_steps=["send_offer"]
            ),
            WorkflowStep(
                id="send_offer",
                type=StepType.ACTION,
                name="Send Offer",
                description="Email the offer letter to the candidate",
                config=ActionConfig(type="email", parameters={"template": "offer_letter"}),
                next_steps=[]
            )
        ],
        start_step_id="candidate_analysis",
        rating=4.3,
        tags=["hiring", "hr", "decision"],
        requires_documents=True,
        min_participants=3,
        max_participants=8,
        required_roles=["hr"]
    )

def risk_assessment_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=RISK_ASSESSMENT,
        name="Risk Assessment Workflow",
        description="Comprehensive risk analysis and mitigation planning",
        category="compliance",
        complexity="moderate",
        estimated_duration=90,
        steps=[
            WorkflowStep(
                id="risk_analysis",
                type=StepType.AI_ANALYSIS,
                name="Risk Analysis",
                description="AI identification of risk factors and mitigations",
                config=AIAnalysisConfig(
                    prompt="Identify the key risks, their likelihood and impact, and mitigation strategies",
                    required_agents=["CFO", "CTO"],
                    confidence_threshold=0.8,
                    analysis_type="risk"
                ),
                next_steps=["high_exposure_check"]
            ),
            WorkflowStep(
                id="high_exposure_check",
                type=StepType.CONDITION,
                name="High Exposure Check",
                description="Route large exposures to the board",
                config=ConditionConfig(
                    conditions=[WorkflowCondition(field="exposure_amount", operator=ConditionOperator.GREATER_THAN, value=1000000)],
                    on_true=["board_escalation"],
                    on_false=["mitigation_plan"]
                )
            ),
            WorkflowStep(
                id="board_escalation",
                type=StepType.ESCALATION,
                name="Board Escalation",
                description="Exposure exceeds the executive approval limit",
                config=EscalationConfig(escalate_to=["board"]),
                next_steps=["mitigation_plan"]
            ),
            WorkflowStep(
                id="mitigation_plan",
                type=StepType.ACTION,
                name="Create Mitigation Tasks",
                description="Open mitigation tasks for risk owners",
                config=ActionConfig(type="task", parameters={"queue": "risk-mitigation"}),
                next_steps=[]
            )
        ],
        start_step_id="risk_analysis",
        rating=4.4,
        tags=["risk", "compliance", "assessment"],
        requires_documents=True,
        min_participants=2,
        max_participants=6,
        required_roles=["cfo"]
    )

def project_approval_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=PROJECT_APPROVAL,
        name="Project Approval Workflow",
        description="Project proposal evaluation and approval process",
        category="operational",
        complexity="moderate",
        estimated_duration=150,
        steps=[
            WorkflowStep(
                id="proposal_analysis",
                type=StepType.AI_ANALYSIS,
                name="Proposal Analysis",
                description="AI evaluation of scope, cost and strategic fit",
                config=AIAnalysisConfig(
                    prompt="Evaluate the project proposal for strategic fit, cost, delivery risk and expected value",
                    required_agents=["CEO", "CFO", "CTO"],
                    confidence_threshold=0.7,
                    analysis_type="strategic"
                ),
                next_steps=["steering_decision"]
            ),
            WorkflowStep(
                id="steering_decision",
                type=StepType.DECISION_POINT,
                name="Steering Committee Decision",
                description="Go / no-go decision on the project",
                config=DecisionPointConfig(options=["go", "no_go", "rescope"]),
                next_steps=["executive_approval"]
            ),
            WorkflowStep(
                id="executive_approval",
                type=StepType.APPROVAL,
                name="Executive Approval",
                description="Majority sign-off from the executive team",
                config=ApprovalConfig(
                    required_roles=["ceo", "cfo", "cto"],
                    approval_type="majority",
                    escalation_hours=24,
                    escalation_to=["board"]
                ),
                next_steps=["kickoff"]
            ),
            WorkflowStep(
                id="kickoff",
                type=StepType.ACTION,
                name="Schedule Kickoff",
                description="Book the project kickoff meeting",
                config=ActionConfig(type="calendar", parameters={"duration_minutes": 60}),
                next_steps=[]
            )
        ],
        start_step_id="proposal_analysis",
        rating=4.2,
        tags=["project", "approval", "evaluation"],
        requires_documents=True,
        min_participants=3,
        max_participants=7,
        required_roles=["ceo"]
    )

def vendor_selection_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=VENDOR_SELECTION,
        name="Vendor Selection Workflow",
        description="Vendor evaluation and selection process",
        category="operational",
        complexity="moderate",
        estimated_duration=120,
        steps=[
            WorkflowStep(
                id="vendor_analysis",
                type=StepType.AI_ANALYSIS,
                name="Vendor Comparison",
                description="AI comparison of shortlisted vendors",
                config=AIAnalysisConfig(
                    prompt="Compare the shortlisted vendors on price, capability, support and contractual risk",
                    required_agents=["CFO", "CTO"],
                    confidence_threshold=0.7,
                    analysis_type="operational"
                ),
                next_steps=["vendor_decision"]
            ),
            WorkflowStep(
                id="vendor_decision",
                type=StepType.DECISION_POINT,
                name="Vendor Decision",
                description="Select the vendor",
                next_steps=["procurement_approval"]
            ),
            WorkflowStep(
                id="procurement_approval",
                type=StepType.APPROVAL,
                name="Procurement Approval",
                description="Procurement sign-off on the selected vendor",
                config=ApprovalConfig(required_roles=["procurement"], approval_type="any", escalation_hours=24),
                next_steps=[]
            )
        ],
        start_step_id="vendor_analysis",
        rating=4.1,
        tags=["vendor", "procurement", "selection"],
        requires_documents=True,
        min_participants=2,
        max_participants=5,
        required_roles=["procurement"]
    )

def incident_response_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=INCIDENT_RESPONSE,
        name="Incident Response Workflow",
        description="Triage and escalation of operational incidents",
        category="operational",
        complexity="simple",
        estimated_duration=30,
        steps=[
            WorkflowStep(
                id="severity_check",
                type=StepType.CONDITION,
                name="Severity Check",
                description="Critical incidents go straight to the executive team",
                config=ConditionConfig(
                    conditions=[WorkflowCondition(field="severity", operator=ConditionOperator.EQUALS, value="critical")],
                    on_true=["executive_escalation"],
                    on_false=["notify_oncall"]
                )
            ),
            WorkflowStep(
                id="executive_escalation",
                type=StepType.ESCALATION,
                name="Executive Escalation",
                description="Critical incident requires executive attention",
                config=EscalationConfig(escalate_to=["ceo", "cto"]),
                next_steps=["notify_oncall"]
            ),
            WorkflowStep(
                id="notify_oncall",
                type=StepType.ACTION,
                name="Notify On-call",
                description="Page the on-call team",
                config=ActionConfig(type="notification", parameters={"channel": "oncall"}),
                next_steps=[]
            )
        ],
        start_step_id="severity_check",
        rating=4.6,
        tags=["incident", "operations", "escalation"],
        min_participants=1,
        max_participants=10,
        required_roles=["cto"]
    )

def strategic_planning_template() -> WorkflowTemplate:
    return WorkflowTemplate(
        id=STRATEGIC_PLANNING,
        name="Strategic Planning Workflow",
        description="Long-term strategic planning and decision workflow",
        category="strategic",
        complexity="complex",
        estimated_duration=240,
        steps=[
            WorkflowStep(
                id="strategic_analysis",
                type=StepType.AI_ANALYSIS,
                name="Strategic Analysis",
                description="AI review of market position, opportunities and long-term risks",
                config=AIAnalysisConfig(
                    prompt="Assess the strategic options, market position and long-term risks of this plan",
                    required_agents=["CEO", "CFO", "Strategy_Lead"],
                    confidence_threshold=0.75,
                    analysis_type="strategic"
                ),
                next_steps=["choose_direction"]
            ),
            WorkflowStep(
                id="choose_direction",
                type=StepType.DECISION_POINT,
                name="Choose Strategic Direction",
                description="Leadership picks the direction to pursue",
                config=DecisionPointConfig(
                    options=["grow", "consolidate", "pivot", "defer"],
                    decision_roles=["ceo"]
                ),
                next_steps=["board_approval"]
            ),
            WorkflowStep(
                id="board_approval",
                type=StepType.APPROVAL,
                name="Board Approval",
                description="Executive sign-off on the strategic plan",
                config=ApprovalConfig(
                    required_roles=["ceo", "cfo", "coo"],
                    approval_type="majority",
                    escalation_hours=72,
                    escalation_to=["board"]
                ),
                next_steps=["publish_plan"]
            ),
            WorkflowStep(
                id="publish_plan",
                type=StepType.ACTION,
                name="Publish Plan",
                description="Share the approved plan with the leadership team",
                config=ActionConfig(type="email", parameters={"subject": "Approved strategic plan: ${choose_direction_decision}"}),
                next_steps=[]
            )
        ],
        start_step_id="strategic_analysis",
        rating=4.7,
        tags=["strategy", "planning", "long-term"],
        requires_documents=True,
        min_participants=4,
        max_participants=10,
        required_roles=["ceo"]
    )

def builtin_templates() -> List[WorkflowTemplate]:
    """Fresh copies of every built-in template."""
    return [
        budget_approval_template(),
        hiring_decision_template(),
        risk_assessment_template(),
        project_approval_template(),
        vendor_selection_template(),
        incident_response_template(),
        strategic_planning_template()
    ]
