from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, with_loader_criteria


@event.listens_for(Session, "do_orm_execute")
def _apply_department_filter(execute_state) -> None:
    """
    Transparent department isolation.

    Handlers keep writing plain queries:
        db.scalars(select(Assignment)).all()
    and non-executive callers on a `filter_by_department` route only get rows
    from their own department.
    """

    if not execute_state.is_select:
        return

    authz = execute_state.session.info.get("authz")
    if authz is None or not authz.filter_by_department or authz.unrestricted:
        return

    # Local import to avoid cycles.
    from orgauthz.models.security import Assignment  # noqa: WPS433 (local import)

    department_code = authz.department_code
    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(Assignment, lambda cls: cls.department_code == department_code, include_aliases=True),
    )
