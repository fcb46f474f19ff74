from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models.hr import Employee
from orgauthz.models.org import OrgNode
from orgauthz.schemas.org import OrgNodeCreateIn, OrgNodeMoveIn, OrgNodeOut, OrgTreeOut
from orgauthz.security.dependencies import get_current_employee
from orgauthz.services import org_tree

router = APIRouter(prefix="/org", tags=["org"])


@router.get("/tree", response_model=OrgTreeOut)
def tree(root_id: int | None = None, db: Session = Depends(get_db)) -> dict[str, Any]:
    result = org_tree.get_tree(db, root_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization has no root node")
    return result


@router.get("/nodes/{node_id}/path", response_model=list[OrgNodeOut])
def path_to_root(node_id: int, db: Session = Depends(get_db)) -> list[OrgNode]:
    return org_tree.get_path_to_root(db, node_id)


@router.get("/nodes/{node_id}/descendants", response_model=list[OrgNodeOut])
def descendants(node_id: int, include_inactive: bool = False, db: Session = Depends(get_db)) -> list[OrgNode]:
    org_tree.get_node(db, node_id)
    return org_tree.get_descendants(db, node_id, include_inactive=include_inactive)


@router.post("/nodes", response_model=OrgNodeOut, status_code=status.HTTP_201_CREATED)
def create_node(body: OrgNodeCreateIn, db: Session = Depends(get_db)) -> OrgNode:
    return org_tree.create_node(
        db,
        name=body.name,
        node_type=body.node_type,
        department_code=body.department_code,
        parent_id=body.parent_id,
        description=body.description,
    )


@router.post("/nodes/{node_id}/move", response_model=OrgNodeOut)
def move_node(
    node_id: int,
    body: OrgNodeMoveIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> OrgNode:
    return org_tree.move_node(db, node_id, body.new_parent_id, actor_id=caller.id)


@router.get("/verify")
def verify(db: Session = Depends(get_db)) -> dict[str, Any]:
    violations = org_tree.verify_tree(db)
    return {"healthy": not violations, "violations": violations}
