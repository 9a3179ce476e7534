"""
Tool executors: one function per ToolName, `(ctx, args) -> dict`.

Executors only ever act on behalf of ctx.user_id; every repository call is
scoped by it. Missing records are raised as NotFoundError and reported back
to the model as a failed tool result.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

from contractorai.core.errors import NotFoundError, ValidationError
from contractorai.core.serialization import as_utc
from contractorai.features.assistant import tools as t
from contractorai.features.assistant.tools import ToolName
from contractorai.features.crm.service import ClientService, CompanyService
from contractorai.features.email.service import EmailDraftService
from contractorai.features.estimating import calculators
from contractorai.features.finance.service import FinanceService
from contractorai.features.projects.service import ProjectService, CalendarService, EmployeeService
from contractorai.models.assistant import PendingApproval, Persona
from contractorai.models.estimate import Estimate


DEFAULT_EVENT_WINDOW_DAYS = 7


@dataclass
class ToolContext:
    """Request-scoped state handed to every executor."""

    user_id: str
    persona: Persona
    clients: ClientService
    company: CompanyService
    projects: ProjectService
    calendar: CalendarService
    employees: EmployeeService
    finance: FinanceService
    email: EmailDraftService
    estimate: Estimate = field(default_factory=Estimate)
    pending_approvals: List[PendingApproval] = field(default_factory=list)


def build_tool_context(
    user_id: str,
    persona: Persona,
    estimate: Optional[Estimate] = None,
    session_factory=None,
    email: Optional[EmailDraftService] = None,
) -> ToolContext:
    return ToolContext(
        user_id=user_id,
        persona=persona,
        clients=ClientService(session_factory),
        company=CompanyService(session_factory),
        projects=ProjectService(session_factory),
        calendar=CalendarService(session_factory),
        employees=EmployeeService(session_factory),
        finance=FinanceService(session_factory),
        email=email or EmailDraftService(session_factory=session_factory),
        estimate=estimate if estimate is not None else Estimate(),
    )


def _resolve_client(ctx: ToolContext, client_id: Optional[str], client_name: Optional[str]) -> Optional[Dict[str, Any]]:
    if client_id:
        return ctx.clients.get_client(ctx.user_id, client_id)
    if client_name:
        return ctx.clients.find_client_by_name(ctx.user_id, client_name)
    return None


def _require_client(ctx: ToolContext, client_id: Optional[str], client_name: Optional[str]) -> Dict[str, Any]:
    if not client_id and not client_name:
        raise ValidationError("Provide clientId or clientName")
    client = _resolve_client(ctx, client_id, client_name)
    if client is None:
        raise NotFoundError("Client not found")
    return client


def _draft(ctx: ToolContext, recipients: List[str], subject: str, body: str, client_id: Optional[str] = None) -> PendingApproval:
    pending = ctx.email.save_draft(ctx.user_id, ctx.persona.value, recipients, subject, body, client_id=client_id)
    ctx.pending_approvals.append(pending)
    return pending


# estimating

def _append(ctx: ToolContext, result: calculators.CalculatorResult) -> Dict[str, Any]:
    items, summary = result
    ctx.estimate.add(*items)
    return {
        "summary": summary,
        "items": [item.model_dump(by_alias=True, mode="json") for item in items],
        "estimateTotal": ctx.estimate.total,
        "itemCount": len(ctx.estimate.items),
    }


def clear_estimate(ctx: ToolContext, args: t.NoArguments) -> Dict[str, Any]:
    ctx.estimate.clear()
    return {"message": "Estimate cleared", "itemCount": 0}


def add_custom_line_item(ctx: ToolContext, args: t.AddCustomLineItemArgs) -> Dict[str, Any]:
    return _append(
        ctx,
        calculators.custom_line_item(args.name, args.quantity, args.unit, args.unit_price, args.item_type),
    )


def calculate_deck_materials(ctx: ToolContext, args: t.DeckMaterialsArgs) -> Dict[str, Any]:
    return _append(ctx, calculators.deck_materials(args.length, args.width, args.decking_type))


def calculate_concrete(ctx: ToolContext, args: t.ConcreteArgs) -> Dict[str, Any]:
    price = args.concrete_price or calculators.DEFAULT_CONCRETE_PRICE_PER_YARD
    return _append(
        ctx,
        calculators.concrete(args.length, args.width, args.depth, price_per_yard=price, include_mesh=args.include_mesh),
    )


def calculate_sonotubes(ctx: ToolContext, args: t.SonotubesArgs) -> Dict[str, Any]:
    return _append(
        ctx,
        calculators.sonotubes(args.number_of_tubes, args.diameter_inches, args.depth_inches, bag_size=args.bag_size),
    )


def calculate_roofing_materials(ctx: ToolContext, args: t.RoofingMaterialsArgs) -> Dict[str, Any]:
    return _append(ctx, calculators.roofing_materials(args.roof_area_sq_ft, args.material_type))


# projects

def get_employees(ctx: ToolContext, args: t.GetEmployeesArgs) -> Dict[str, Any]:
    employees = ctx.employees.list_employees(ctx.user_id, status=args.status)
    return {"employees": employees, "count": len(employees)}


def get_projects(ctx: ToolContext, args: t.GetProjectsArgs) -> Dict[str, Any]:
    projects = ctx.projects.list_projects(ctx.user_id, status=args.status, include_tasks=True)
    return {"projects": projects, "count": len(projects)}


def get_calendar_events(ctx: ToolContext, args: t.GetCalendarEventsArgs) -> Dict[str, Any]:
    start = args.start_date or date.today()
    end = args.end_date or start + timedelta(days=DEFAULT_EVENT_WINDOW_DAYS)
    if end < start:
        raise ValidationError("endDate must not be before startDate")
    events = ctx.calendar.list_events(ctx.user_id, start, end, client_id=args.client_id)
    return {
        "events": events,
        "count": len(events),
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
    }


def create_calendar_event(ctx: ToolContext, args: t.CreateCalendarEventArgs) -> Dict[str, Any]:
    client = _resolve_client(ctx, args.client_id, args.client_name)
    event = ctx.calendar.create_event(
        ctx.user_id,
        title=args.title,
        start=as_utc(args.start),
        end=as_utc(args.end),
        description=args.description,
        location=args.location,
        all_day=args.all_day,
        client_id=client["id"] if client else None,
        project_id=args.project_id,
    )
    return {"event": event}


def draft_employee_email(ctx: ToolContext, args: t.DraftEmployeeEmailArgs) -> Dict[str, Any]:
    recipients = [address.strip() for address in args.recipients if address and address.strip()]
    if not recipients:
        raise ValidationError("At least one recipient is required")
    pending = _draft(ctx, recipients, args.subject, args.body)
    return {
        "drafted": True,
        "draftId": pending.draft_id,
        "recipients": recipients,
        "requiresApproval": True,
    }


# crm

def get_clients(ctx: ToolContext, args: t.GetClientsArgs) -> Dict[str, Any]:
    clients = ctx.clients.list_clients(ctx.user_id, status=args.status, search_term=args.search_term)
    return {"clients": clients, "count": len(clients)}


def get_client_details(ctx: ToolContext, args: t.ClientLookupArgs) -> Dict[str, Any]:
    client = _require_client(ctx, args.client_id, args.client_name)
    projects = ctx.projects.list_projects(ctx.user_id, client_id=client["id"])
    return {"client": client, "projects": projects}


def add_client(ctx: ToolContext, args: t.AddClientArgs) -> Dict[str, Any]:
    client = ctx.clients.add_client(ctx.user_id, **args.model_dump(exclude_none=True))
    return {"client": client}


def update_client(ctx: ToolContext, args: t.UpdateClientArgs) -> Dict[str, Any]:
    updates = args.model_dump(exclude={"client_id"}, exclude_none=True)
    if not updates:
        raise ValidationError("No client fields to update")
    client = ctx.clients.update_client(ctx.user_id, args.client_id, updates)
    return {"client": client}


def get_projects_by_client(ctx: ToolContext, args: t.ProjectsByClientArgs) -> Dict[str, Any]:
    client = _require_client(ctx, args.client_id, args.client_name)
    projects = ctx.projects.list_projects(ctx.user_id, status=args.status, client_id=client["id"])
    return {
        "client": {"id": client["id"], "name": client["name"]},
        "projects": projects,
        "count": len(projects),
    }


def get_project_details(ctx: ToolContext, args: t.ProjectLookupArgs) -> Dict[str, Any]:
    if args.project_id:
        project = ctx.projects.get_project(ctx.user_id, args.project_id)
    elif args.project_name:
        project = ctx.projects.find_project_by_name(ctx.user_id, args.project_name)
    else:
        raise ValidationError("Provide projectId or projectName")
    if project is None:
        raise NotFoundError("Project not found")
    return {"project": project}


def add_project(ctx: ToolContext, args: t.AddProjectArgs) -> Dict[str, Any]:
    # An unmatched client name is not an error: the project keeps the name as given
    client = _resolve_client(ctx, args.client_id, args.client_name)
    client_id = client["id"] if client else None
    project = ctx.projects.add_project(
        ctx.user_id,
        name=args.name,
        client_id=client_id,
        client_name=args.client_name or (client["name"] if client else None),
        description=args.description,
        start_date=args.start_date,
        end_date=args.end_date,
        budget=args.budget,
        status=args.status,
    )
    return {"project": project, "clientFound": client is not None, "clientId": client_id}


def update_calendar_event(ctx: ToolContext, args: t.UpdateCalendarEventArgs) -> Dict[str, Any]:
    updates = {
        "title": args.title,
        "description": args.description,
        "location": args.location,
        "start_date": as_utc(args.start),
        "end_date": as_utc(args.end),
    }
    updates = {key: value for key, value in updates.items() if value is not None}
    if not updates:
        raise ValidationError("No event fields to update")
    event = ctx.calendar.update_event(ctx.user_id, args.event_id, updates)
    return {"event": event}


def draft_email(ctx: ToolContext, args: t.DraftEmailArgs) -> Dict[str, Any]:
    client = _require_client(ctx, args.client_id, args.client_name)
    if not client.get("email"):
        raise ValidationError(f"{client['name']} has no email address on file")
    pending = _draft(ctx, [client["email"]], args.subject, args.body, client_id=client["id"])
    return {
        "drafted": True,
        "draftId": pending.draft_id,
        "to": client["email"],
        "clientName": client["name"],
        "requiresApproval": True,
    }


def get_company_settings(ctx: ToolContext, args: t.NoArguments) -> Dict[str, Any]:
    profile = ctx.company.get_settings(ctx.user_id)
    if profile is None:
        return {"settings": None, "message": "Company profile has not been set up"}
    return {"settings": profile}


# finance

def add_expense(ctx: ToolContext, args: t.AddExpenseArgs) -> Dict[str, Any]:
    expense = ctx.finance.add_expense(
        ctx.user_id,
        amount=args.amount,
        category=args.category,
        description=args.description,
        vendor=args.vendor,
        expense_date=args.expense_date,
        project_id=args.project_id,
    )
    return {"expense": expense}


def add_revenue(ctx: ToolContext, args: t.AddRevenueArgs) -> Dict[str, Any]:
    revenue = ctx.finance.add_revenue(
        ctx.user_id,
        amount=args.amount,
        source=args.source,
        revenue_date=args.revenue_date,
        client_id=args.client_id,
        project_id=args.project_id,
    )
    return {"revenue": revenue}


def get_expenses(ctx: ToolContext, args: t.GetExpensesArgs) -> Dict[str, Any]:
    expenses = ctx.finance.list_expenses(ctx.user_id, start=args.start_date, end=args.end_date, category=args.category)
    return {
        "expenses": expenses,
        "count": len(expenses),
        "total": round(sum(float(expense["amount"]) for expense in expenses), 2),
    }


def add_budget_item(ctx: ToolContext, args: t.AddBudgetItemArgs) -> Dict[str, Any]:
    budget = ctx.finance.add_budget(
        ctx.user_id,
        category=args.category,
        amount=args.amount,
        period=args.period,
        start_date=args.start_date,
    )
    return {"budget": budget}


def get_financial_summary(ctx: ToolContext, args: t.FinancialSummaryArgs) -> Dict[str, Any]:
    if args.end_date < args.start_date:
        raise ValidationError("endDate must not be before startDate")
    return ctx.finance.financial_summary(ctx.user_id, args.start_date, args.end_date)


def check_budget_status(ctx: ToolContext, args: t.BudgetStatusArgs) -> Dict[str, Any]:
    return ctx.finance.budget_status(ctx.user_id, category=args.category)


EXECUTORS: Dict[ToolName, Callable[[ToolContext, Any], Dict[str, Any]]] = {
    ToolName.CLEAR_ESTIMATE: clear_estimate,
    ToolName.ADD_CUSTOM_LINE_ITEM: add_custom_line_item,
    ToolName.CALCULATE_DECK_MATERIALS: calculate_deck_materials,
    ToolName.CALCULATE_CONCRETE: calculate_concrete,
    ToolName.CALCULATE_SONOTUBES: calculate_sonotubes,
    ToolName.CALCULATE_ROOFING_MATERIALS: calculate_roofing_materials,
    ToolName.GET_EMPLOYEES: get_employees,
    ToolName.GET_PROJECTS: get_projects,
    ToolName.GET_CALENDAR_EVENTS: get_calendar_events,
    ToolName.CREATE_CALENDAR_EVENT: create_calendar_event,
    ToolName.DRAFT_EMPLOYEE_EMAIL: draft_employee_email,
    ToolName.GET_CLIENTS: get_clients,
    ToolName.GET_CLIENT_DETAILS: get_client_details,
    ToolName.ADD_CLIENT: add_client,
    ToolName.UPDATE_CLIENT: update_client,
    ToolName.GET_PROJECTS_BY_CLIENT: get_projects_by_client,
    ToolName.GET_PROJECT_DETAILS: get_project_details,
    ToolName.ADD_PROJECT: add_project,
    ToolName.UPDATE_CALENDAR_EVENT: update_calendar_event,
    ToolName.DRAFT_EMAIL: draft_email,
    ToolName.GET_COMPANY_SETTINGS: get_company_settings,
    ToolName.ADD_EXPENSE: add_expense,
    ToolName.ADD_REVENUE: add_revenue,
    ToolName.GET_EXPENSES: get_expenses,
    ToolName.ADD_BUDGET_ITEM: add_budget_item,
    ToolName.GET_FINANCIAL_SUMMARY: get_financial_summary,
    ToolName.CHECK_BUDGET_STATUS: check_budget_status,
}
