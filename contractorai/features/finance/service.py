"""
Finance data: expenses, revenue (payments), budgets and their summaries.

Every query is filtered by the caller's user_id.
"""

from calendar import monthrange
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert

from contractorai.core.database import get_db_session, finance_expenses, payments, budgets
from contractorai.core.serialization import new_id, row_to_dict


# Share of a budget at which a category is flagged before it is exceeded
BUDGET_WARNING_PERCENT = 80


def _budget_state(percent_used: float) -> str:
    if percent_used > 100:
        return "over"
    if percent_used > BUDGET_WARNING_PERCENT:
        return "warning"
    return "ok"


class FinanceService:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_db_session

    def _insert(self, table, **values) -> Dict[str, Any]:
        record_id = new_id()
        with self._session_factory() as session:
            session.execute(insert(table).values(id=record_id, **values))
            row = session.execute(select(table).where(table.c.id == record_id)).first()
        return row_to_dict(row)

    def add_expense(
        self,
        user_id: str,
        amount: float,
        category: str,
        description: str,
        vendor: Optional[str] = None,
        expense_date: Optional[date] = None,
        project_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self._insert(
            finance_expenses,
            user_id=user_id,
            amount=amount,
            category=category,
            description=description,
            notes=notes,
            vendor=vendor or "Unknown",
            date=expense_date or date.today(),
            project_id=project_id,
            status="processed",
        )

    def add_revenue(
        self,
        user_id: str,
        amount: float,
        source: str,
        revenue_date: Optional[date] = None,
        client_id: Optional[str] = None,
        project_id: Optional[str] = None,
        method: str = "Other",
    ) -> Dict[str, Any]:
        return self._insert(
            payments,
            user_id=user_id,
            amount=amount,
            source=source,
            description=source,
            method=method,
            date=revenue_date or date.today(),
            client_id=client_id,
            project_id=project_id,
            status="completed",
        )

    def add_budget(
        self,
        user_id: str,
        category: str,
        amount: float,
        period: str = "monthly",
        start_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        return self._insert(
            budgets,
            user_id=user_id,
            category=category,
            amount=amount,
            period=period,
            start_date=start_date or date.today(),
        )

    def list_expenses(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        category: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        query = select(finance_expenses).where(finance_expenses.c.user_id == user_id)
        if start:
            query = query.where(finance_expenses.c.date >= start)
        if end:
            query = query.where(finance_expenses.c.date <= end)
        if category:
            query = query.where(finance_expenses.c.category == category)
        with self._session_factory() as session:
            rows = session.execute(query.order_by(finance_expenses.c.date.desc())).fetchall()
        return [row_to_dict(row) for row in rows]

    def _completed_payments(self, user_id: str, start: date, end: date) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = session.execute(
                select(payments)
                .where(payments.c.user_id == user_id)
                .where(payments.c.status == "completed")
                .where(payments.c.date >= start)
                .where(payments.c.date <= end)
            ).fetchall()
        return [row_to_dict(row) for row in rows]

    def financial_summary(self, user_id: str, start: date, end: date) -> Dict[str, Any]:
        expenses = self.list_expenses(user_id, start, end)
        revenue_rows = self._completed_payments(user_id, start, end)

        by_category: Dict[str, float] = {}
        for expense in expenses:
            category = expense["category"] or "Other"
            by_category[category] = round(by_category.get(category, 0.0) + float(expense["amount"]), 2)

        total_expenses = round(sum(float(e["amount"]) for e in expenses), 2)
        total_revenue = round(sum(float(p["amount"]) for p in revenue_rows), 2)
        return {
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "revenue": total_revenue,
            "expenses": total_expenses,
            "profit": round(total_revenue - total_expenses, 2),
            "expensesByCategory": by_category,
            "transactionCount": len(expenses) + len(revenue_rows),
        }

    def budget_status(self, user_id: str, category: Optional[str] = None, today: Optional[date] = None) -> Dict[str, Any]:
        """Monthly budgets against this calendar month's spending."""
        current = today or date.today()
        month_start = current.replace(day=1)
        month_end = current.replace(day=monthrange(current.year, current.month)[1])

        query = select(budgets).where(budgets.c.user_id == user_id).where(budgets.c.period == "monthly")
        if category:
            query = query.where(budgets.c.category == category)
        with self._session_factory() as session:
            budget_rows = [row_to_dict(row) for row in session.execute(query).fetchall()]

        spending: Dict[str, float] = {}
        for expense in self.list_expenses(user_id, month_start, month_end, category):
            key = expense["category"] or "Other"
            spending[key] = spending.get(key, 0.0) + float(expense["amount"])

        statuses = []
        for budget in budget_rows:
            budgeted = float(budget["amount"])
            spent = round(spending.get(budget["category"], 0.0), 2)
            percent_used = round(spent / budgeted * 100, 1) if budgeted else 0.0
            statuses.append({
                "category": budget["category"],
                "budgeted": budgeted,
                "spent": spent,
                "remaining": round(budgeted - spent, 2),
                "percentUsed": percent_used,
                "status": _budget_state(percent_used),
            })

        return {
            "budgets": statuses,
            "totalBudgeted": round(sum(float(b["amount"]) for b in budget_rows), 2),
            "totalSpent": round(sum(spending.values()), 2),
            "alerts": [item for item in statuses if item["status"] in ("over", "warning")],
        }
