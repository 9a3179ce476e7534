"""
Tool registry for the assistant personas.

Every tool the model may call is a ToolName with a typed argument model.
Arguments arrive as JSON text from the model and are validated here, before
any executor touches the database. Argument models use camelCase aliases,
which is how the tools are declared to the model.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Type, Union, get_args, get_origin
import json

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from contractorai.core.errors import ConfigurationError, ValidationError
from contractorai.features.assistant.llm import ToolChoice
from contractorai.models.assistant import Persona, ToolInvocation


class ToolName(str, Enum):
    # estimating
    CLEAR_ESTIMATE = "clear_estimate"
    ADD_CUSTOM_LINE_ITEM = "add_custom_line_item"
    CALCULATE_DECK_MATERIALS = "calculate_deck_materials"
    CALCULATE_CONCRETE = "calculate_concrete"
    CALCULATE_SONOTUBES = "calculate_sonotubes"
    CALCULATE_ROOFING_MATERIALS = "calculate_roofing_materials"
    # projects
    GET_EMPLOYEES = "get_employees"
    GET_PROJECTS = "get_projects"
    GET_CALENDAR_EVENTS = "get_calendar_events"
    CREATE_CALENDAR_EVENT = "create_calendar_event"
    DRAFT_EMPLOYEE_EMAIL = "draft_employee_email"
    # crm
    GET_CLIENTS = "get_clients"
    GET_CLIENT_DETAILS = "get_client_details"
    ADD_CLIENT = "add_client"
    UPDATE_CLIENT = "update_client"
    GET_PROJECTS_BY_CLIENT = "get_projects_by_client"
    GET_PROJECT_DETAILS = "get_project_details"
    ADD_PROJECT = "add_project"
    UPDATE_CALENDAR_EVENT = "update_calendar_event"
    DRAFT_EMAIL = "draft_email"
    GET_COMPANY_SETTINGS = "get_company_settings"
    # finance
    ADD_EXPENSE = "add_expense"
    ADD_REVENUE = "add_revenue"
    GET_EXPENSES = "get_expenses"
    ADD_BUDGET_ITEM = "add_budget_item"
    GET_FINANCIAL_SUMMARY = "get_financial_summary"
    CHECK_BUDGET_STATUS = "check_budget_status"


ClientStatus = Literal["active", "inactive", "prospect"]
ExpenseCategory = Literal[
    "Materials", "Labor", "Equipment", "Permits", "Insurance",
    "Utilities", "Fuel", "Marketing", "Office", "Other",
]


class ToolArguments(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NoArguments(ToolArguments):
    pass


# estimating

class AddCustomLineItemArgs(ToolArguments):
    name: str = Field(description="Name of the line item")
    quantity: float = Field(description="Quantity")
    unit: str = Field(description="Unit (permit, hour, linear foot, etc.)")
    unit_price: float = Field(description="Price per unit")
    item_type: Literal["material", "labor", "permit", "fee", "other"] = Field(alias="type", description="Type of line item")


class DeckMaterialsArgs(ToolArguments):
    length: float = Field(description="Deck length in feet")
    width: float = Field(description="Deck width in feet")
    decking_type: Literal["trex-transcend", "trex-select", "5/4-deck", "2x6-pt"] = Field(description="Type of decking")


class ConcreteArgs(ToolArguments):
    length: float = Field(description="Length in feet")
    width: float = Field(description="Width in feet")
    depth: float = Field(description="Depth in inches")
    concrete_price: Optional[float] = Field(None, description="Price per cubic yard (default: 185)")
    include_mesh: bool = Field(False, description="Include wire mesh reinforcement")


class SonotubesArgs(ToolArguments):
    number_of_tubes: int = Field(description="Number of sonotubes/piers")
    diameter_inches: float = Field(description="Diameter of each tube in inches (common: 8, 10, 12, 16, 18, 24)")
    depth_inches: float = Field(description="Depth/height of each tube in inches")
    bag_size: Literal[60, 80] = Field(80, description="Bag size in pounds (60 or 80). Default 80.")


class RoofingMaterialsArgs(ToolArguments):
    roof_area_sq_ft: float = Field(alias="roofAreaSqFt", description="Roof area in square feet")
    material_type: Literal["asphalt", "architectural", "metal", "tile"] = Field("asphalt", description="Roofing material type")


# projects

class GetEmployeesArgs(ToolArguments):
    status: Literal["active", "inactive", "all"] = Field("active", description="Filter by employment status. Default is active.")


class GetProjectsArgs(ToolArguments):
    status: Literal["active", "completed", "scheduled", "planning", "on-hold", "all"] = Field(
        "active", description="Filter by project status. Default is active."
    )


class GetCalendarEventsArgs(ToolArguments):
    start_date: Optional[date] = Field(None, description="Start date (YYYY-MM-DD). Default is today.")
    end_date: Optional[date] = Field(None, description="End date (YYYY-MM-DD). Default is 7 days from start.")
    client_id: Optional[str] = Field(None, description="Filter by client (optional)")


class CreateCalendarEventArgs(ToolArguments):
    title: str = Field(description="Event title")
    start: datetime = Field(description="Start date/time (ISO 8601 format)")
    end: Optional[datetime] = Field(None, description="End date/time (ISO 8601 format, optional)")
    description: Optional[str] = Field(None, description="Event description (optional)")
    location: Optional[str] = Field(None, description="Event location (optional)")
    all_day: bool = Field(False, description="All-day event flag")
    client_id: Optional[str] = Field(None, description="Associated client ID (optional)")
    client_name: Optional[str] = Field(None, description="Associated client name (optional)")
    project_id: Optional[str] = Field(None, description="Associated project ID (optional)")


class DraftEmployeeEmailArgs(ToolArguments):
    recipients: List[str] = Field(description="Email addresses of recipients")
    subject: str = Field(description="Email subject line")
    body: str = Field(description="Email body content")


# crm

class GetClientsArgs(ToolArguments):
    status: Optional[Literal["active", "inactive", "prospect", "all"]] = Field(None, description="Filter by client status")
    search_term: Optional[str] = Field(None, description="Search by name, email, or company")


class ClientLookupArgs(ToolArguments):
    client_id: Optional[str] = Field(None, description="Client ID")
    client_name: Optional[str] = Field(None, description="Client name (alternative to ID)")


class AddClientArgs(ToolArguments):
    name: str = Field(description="Client full name")
    email: str = Field(description="Client email address")
    phone: str = Field(description="Client phone number")
    company: Optional[str] = Field(None, description="Company name (optional)")
    address: Optional[str] = Field(None, description="Street address (optional)")
    city: Optional[str] = Field(None, description="City (optional)")
    state: Optional[str] = Field(None, description="State (optional)")
    zip: Optional[str] = Field(None, description="ZIP code (optional)")
    notes: Optional[str] = Field(None, description="Additional notes (optional)")
    status: ClientStatus = Field("prospect", description="Client status")


class UpdateClientArgs(ToolArguments):
    client_id: str = Field(description="Client ID to update")
    name: Optional[str] = Field(None, description="Updated name (optional)")
    email: Optional[str] = Field(None, description="Updated email (optional)")
    phone: Optional[str] = Field(None, description="Updated phone (optional)")
    company: Optional[str] = Field(None, description="Updated company (optional)")
    address: Optional[str] = Field(None, description="Updated address (optional)")
    city: Optional[str] = Field(None, description="Updated city (optional)")
    state: Optional[str] = Field(None, description="Updated state (optional)")
    zip: Optional[str] = Field(None, description="Updated ZIP (optional)")
    notes: Optional[str] = Field(None, description="Updated notes (optional)")
    status: Optional[ClientStatus] = Field(None, description="Updated status (optional)")


class ProjectsByClientArgs(ClientLookupArgs):
    status: Optional[Literal["active", "completed", "on_hold", "cancelled", "all"]] = Field(
        None, description="Filter by project status"
    )


class ProjectLookupArgs(ToolArguments):
    project_id: Optional[str] = Field(None, description="Project ID")
    project_name: Optional[str] = Field(None, description="Project name (alternative to ID)")


class AddProjectArgs(ToolArguments):
    name: str = Field(description="Project name")
    client_id: Optional[str] = Field(None, description="Client ID")
    client_name: Optional[str] = Field(None, description="Client name (alternative to ID)")
    description: Optional[str] = Field(None, description="Project description (optional)")
    start_date: Optional[date] = Field(None, description="Project start date (YYYY-MM-DD, optional)")
    end_date: Optional[date] = Field(None, description="Project end date (YYYY-MM-DD, optional)")
    budget: Optional[float] = Field(None, description="Project budget (optional)")
    status: Literal["planning", "active", "completed", "on-hold"] = Field("active", description="Project status")


class UpdateCalendarEventArgs(ToolArguments):
    event_id: str = Field(description="Event ID to update")
    title: Optional[str] = Field(None, description="Updated title (optional)")
    start: Optional[datetime] = Field(None, description="Updated start time (optional)")
    end: Optional[datetime] = Field(None, description="Updated end time (optional)")
    description: Optional[str] = Field(None, description="Updated description (optional)")
    location: Optional[str] = Field(None, description="Updated location (optional)")


class DraftEmailArgs(ClientLookupArgs):
    subject: str = Field(description="Email subject line")
    body: str = Field(description="Email body content")


# finance

class AddExpenseArgs(ToolArguments):
    amount: float = Field(description="Expense amount in dollars")
    category: ExpenseCategory = Field(description="Expense category")
    description: str = Field(description="Description of the expense")
    project_id: Optional[str] = Field(None, description="Project ID if expense is project-specific (optional)")
    expense_date: Optional[date] = Field(None, alias="date", description="Date of expense (YYYY-MM-DD), defaults to today")
    vendor: Optional[str] = Field(None, description="Vendor or supplier name (optional)")


class AddRevenueArgs(ToolArguments):
    amount: float = Field(description="Revenue amount in dollars")
    source: str = Field(description='Source of revenue (e.g., "Project payment", "Deposit")')
    client_id: Optional[str] = Field(None, description="Client ID (optional)")
    project_id: Optional[str] = Field(None, description="Project ID (optional)")
    revenue_date: Optional[date] = Field(None, alias="date", description="Date of revenue (YYYY-MM-DD), defaults to today")


class GetExpensesArgs(ToolArguments):
    start_date: Optional[date] = Field(None, description="Start date (YYYY-MM-DD)")
    end_date: Optional[date] = Field(None, description="End date (YYYY-MM-DD)")
    category: Optional[str] = Field(None, description="Filter by category")


class AddBudgetItemArgs(ToolArguments):
    category: str = Field(description="Budget category")
    amount: float = Field(description="Budget amount")
    period: Literal["monthly", "quarterly", "yearly"] = Field(description="Budget period")
    start_date: Optional[date] = Field(None, description="Budget start date (YYYY-MM-DD)")


class FinancialSummaryArgs(ToolArguments):
    start_date: date = Field(description="Start date (YYYY-MM-DD)")
    end_date: date = Field(description="End date (YYYY-MM-DD)")


class BudgetStatusArgs(ToolArguments):
    category: Optional[str] = Field(None, description="Specific category to check (optional)")


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    date: "string",
    datetime: "string",
}


def _parameter_schema(field) -> Dict[str, Any]:
    annotation = field.annotation
    if get_origin(annotation) is Union:
        annotation = next(arg for arg in get_args(annotation) if arg is not type(None))

    schema: Dict[str, Any] = {}
    if get_origin(annotation) is Literal:
        values = list(get_args(annotation))
        schema["type"] = _JSON_TYPES.get(type(values[0]), "string")
        schema["enum"] = values
    elif get_origin(annotation) is list:
        schema["type"] = "array"
        schema["items"] = {"type": "string"}
    else:
        schema["type"] = _JSON_TYPES.get(annotation, "string")
    schema["description"] = field.description or ""
    return schema


def _alias(name: str, field) -> str:
    return field.alias or name


@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    description: str
    arguments: Type[ToolArguments] = NoArguments
    requires_approval: bool = False

    def required_parameters(self) -> List[str]:
        return [
            _alias(name, field)
            for name, field in self.arguments.model_fields.items()
            if field.is_required()
        ]

    def to_schema(self) -> Dict[str, Any]:
        """Function declaration in the chat-completions `tools` format."""
        properties = {
            _alias(name, field): _parameter_schema(field)
            for name, field in self.arguments.model_fields.items()
        }
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": self.required_parameters(),
                },
            },
        }


Executor = Callable[[Any, ToolArguments], Any]


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


class ToolRegistry:
    """The fixed tool set of one persona. Built once; never mutated afterwards."""

    def __init__(
        self,
        persona: Persona,
        definitions: Sequence[ToolDefinition],
        executors: Mapping[ToolName, Executor],
        tool_choice: ToolChoice = ToolChoice.AUTO,
    ):
        by_name: Dict[ToolName, ToolDefinition] = {}
        for definition in definitions:
            if definition.name in by_name:
                raise ConfigurationError(f"Tool {definition.name.value} registered twice for {persona.value}")
            by_name[definition.name] = definition

        missing = [name.value for name in by_name if name not in executors]
        if missing:
            raise ConfigurationError(
                f"No executor registered for {persona.value} tools: {', '.join(missing)}"
            )

        self._persona = persona
        self._tool_choice = tool_choice
        self._definitions = MappingProxyType(by_name)
        self._executors = MappingProxyType({name: executors[name] for name in by_name})

    @property
    def persona(self) -> Persona:
        return self._persona

    @property
    def tool_choice(self) -> ToolChoice:
        return self._tool_choice

    @property
    def names(self) -> Tuple[ToolName, ...]:
        return tuple(self._definitions)

    def __contains__(self, name: Any) -> bool:
        return name in self._definitions

    def definition(self, name: ToolName) -> ToolDefinition:
        return self._definitions[name]

    def executor(self, name: ToolName) -> Executor:
        return self._executors[name]

    def schemas(self) -> List[Dict[str, Any]]:
        return [definition.to_schema() for definition in self._definitions.values()]

    def validate(self, invocation: ToolInvocation) -> Tuple[ToolDefinition, ToolArguments]:
        """Resolve and type-check one invocation; raises ValidationError on any problem."""
        try:
            name = ToolName(invocation.name)
        except ValueError:
            raise ValidationError(f"Unknown tool: {invocation.name}")
        if name not in self._definitions:
            raise ValidationError(f"Tool {name.value} is not available to the {self._persona.value} assistant")
        definition = self._definitions[name]

        try:
            raw = json.loads(invocation.arguments or "{}")
        except ValueError:
            raise ValidationError(f"Arguments for {name.value} are not valid JSON")
        if not isinstance(raw, dict):
            raise ValidationError(f"Arguments for {name.value} must be an object")

        missing = [
            _alias(field_name, field)
            for field_name, field in definition.arguments.model_fields.items()
            if field.is_required()
            and _is_blank(raw.get(_alias(field_name, field)))
            and _is_blank(raw.get(field_name))
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        try:
            arguments = definition.arguments.model_validate(raw)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise ValidationError(f"Invalid arguments for {name.value}: {problems}")
        return definition, arguments
