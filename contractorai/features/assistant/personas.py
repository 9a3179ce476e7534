"""Per-persona tool registries."""

from typing import Dict, Mapping, Optional

from contractorai.features.assistant import tools as t
from contractorai.features.assistant.executors import EXECUTORS
from contractorai.features.assistant.llm import ToolChoice
from contractorai.features.assistant.tools import ToolDefinition, ToolName, ToolRegistry
from contractorai.models.assistant import Persona


DEFINITIONS: Dict[ToolName, ToolDefinition] = {
    definition.name: definition
    for definition in (
        ToolDefinition(
            ToolName.CLEAR_ESTIMATE,
            "Clear all items from the current estimate. Use when the user wants to start over or change prices.",
        ),
        ToolDefinition(
            ToolName.ADD_CUSTOM_LINE_ITEM,
            "Add a custom line item to the estimate (permits, fees, custom materials, labor)",
            t.AddCustomLineItemArgs,
        ),
        ToolDefinition(ToolName.CALCULATE_DECK_MATERIALS, "Calculate materials for a deck project", t.DeckMaterialsArgs),
        ToolDefinition(
            ToolName.CALCULATE_CONCRETE,
            "Calculate concrete materials for slabs, pads, driveways",
            t.ConcreteArgs,
        ),
        ToolDefinition(
            ToolName.CALCULATE_SONOTUBES,
            "Calculate concrete for sonotubes/piers/cylindrical footings. Use for deck footings, post holes, column piers.",
            t.SonotubesArgs,
        ),
        ToolDefinition(
            ToolName.CALCULATE_ROOFING_MATERIALS,
            "Calculate roofing materials including shingles and underlayment",
            t.RoofingMaterialsArgs,
        ),
        ToolDefinition(
            ToolName.GET_EMPLOYEES,
            "Get employees with their details, rates, and contact information",
            t.GetEmployeesArgs,
        ),
        ToolDefinition(
            ToolName.GET_PROJECTS,
            "Get projects with their status, timeline, and tasks",
            t.GetProjectsArgs,
        ),
        ToolDefinition(ToolName.GET_CALENDAR_EVENTS, "Query calendar events by date range", t.GetCalendarEventsArgs),
        ToolDefinition(ToolName.CREATE_CALENDAR_EVENT, "Schedule a new calendar event", t.CreateCalendarEventArgs),
        ToolDefinition(
            ToolName.DRAFT_EMPLOYEE_EMAIL,
            "Draft an email to employees. This requires user approval before sending.",
            t.DraftEmployeeEmailArgs,
            requires_approval=True,
        ),
        ToolDefinition(ToolName.GET_CLIENTS, "Get list of clients with optional filters", t.GetClientsArgs),
        ToolDefinition(
            ToolName.GET_CLIENT_DETAILS,
            "Get detailed information about a specific client including their projects",
            t.ClientLookupArgs,
        ),
        ToolDefinition(ToolName.ADD_CLIENT, "Create a new client", t.AddClientArgs),
        ToolDefinition(ToolName.UPDATE_CLIENT, "Update existing client information", t.UpdateClientArgs),
        ToolDefinition(
            ToolName.GET_PROJECTS_BY_CLIENT,
            "Get all projects associated with a client",
            t.ProjectsByClientArgs,
        ),
        ToolDefinition(
            ToolName.GET_PROJECT_DETAILS,
            "Get detailed information about a specific project",
            t.ProjectLookupArgs,
        ),
        ToolDefinition(ToolName.ADD_PROJECT, "Create a new project for a client", t.AddProjectArgs),
        ToolDefinition(ToolName.UPDATE_CALENDAR_EVENT, "Update an existing calendar event", t.UpdateCalendarEventArgs),
        ToolDefinition(
            ToolName.DRAFT_EMAIL,
            "Draft an email to a customer (requires human approval before sending)",
            t.DraftEmailArgs,
            requires_approval=True,
        ),
        ToolDefinition(ToolName.GET_COMPANY_SETTINGS, "Get company profile and settings information"),
        ToolDefinition(ToolName.ADD_EXPENSE, "Add a new expense record to track spending", t.AddExpenseArgs),
        ToolDefinition(ToolName.ADD_REVENUE, "Add revenue/income record", t.AddRevenueArgs),
        ToolDefinition(ToolName.GET_EXPENSES, "Get expenses with optional filters", t.GetExpensesArgs),
        ToolDefinition(ToolName.ADD_BUDGET_ITEM, "Set a budget for a category", t.AddBudgetItemArgs),
        ToolDefinition(
            ToolName.GET_FINANCIAL_SUMMARY,
            "Get financial summary for a date range",
            t.FinancialSummaryArgs,
        ),
        ToolDefinition(ToolName.CHECK_BUDGET_STATUS, "Check current budget status and alerts", t.BudgetStatusArgs),
    )
}

PERSONA_TOOLS = {
    Persona.ESTIMATING: (
        [
            ToolName.CLEAR_ESTIMATE,
            ToolName.ADD_CUSTOM_LINE_ITEM,
            ToolName.CALCULATE_DECK_MATERIALS,
            ToolName.CALCULATE_CONCRETE,
            ToolName.CALCULATE_SONOTUBES,
            ToolName.CALCULATE_ROOFING_MATERIALS,
        ],
        ToolChoice.AUTO,
    ),
    Persona.PROJECTS: (
        [
            ToolName.GET_EMPLOYEES,
            ToolName.GET_PROJECTS,
            ToolName.GET_CALENDAR_EVENTS,
            ToolName.CREATE_CALENDAR_EVENT,
            ToolName.DRAFT_EMPLOYEE_EMAIL,
        ],
        ToolChoice.AUTO,
    ),
    # Cindy must always act through a tool
    Persona.CRM: (
        [
            ToolName.GET_CLIENTS,
            ToolName.GET_CLIENT_DETAILS,
            ToolName.ADD_CLIENT,
            ToolName.UPDATE_CLIENT,
            ToolName.GET_PROJECTS_BY_CLIENT,
            ToolName.GET_PROJECT_DETAILS,
            ToolName.ADD_PROJECT,
            ToolName.CREATE_CALENDAR_EVENT,
            ToolName.UPDATE_CALENDAR_EVENT,
            ToolName.GET_CALENDAR_EVENTS,
            ToolName.DRAFT_EMAIL,
            ToolName.GET_COMPANY_SETTINGS,
        ],
        ToolChoice.REQUIRED,
    ),
    Persona.FINANCE: (
        [
            ToolName.ADD_EXPENSE,
            ToolName.ADD_REVENUE,
            ToolName.GET_EXPENSES,
            ToolName.ADD_BUDGET_ITEM,
            ToolName.GET_FINANCIAL_SUMMARY,
            ToolName.CHECK_BUDGET_STATUS,
        ],
        ToolChoice.AUTO,
    ),
}


def build_registries(executors: Optional[Mapping[ToolName, object]] = None) -> Dict[Persona, ToolRegistry]:
    executors = EXECUTORS if executors is None else executors
    return {
        persona: ToolRegistry(persona, [DEFINITIONS[name] for name in names], executors, tool_choice=choice)
        for persona, (names, choice) in PERSONA_TOOLS.items()
    }
