from __future__ import annotations

import uuid
from dataclasses import dataclass

from fastapi import HTTPException, Request, status


@dataclass
class Operator:
    id: uuid.UUID
    username: str
    active: bool
    session_token: str


def get_current_operator(request: Request) -> Operator:
    operator = getattr(request.state, 'operator', None)
    if not operator:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not operator.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return operator
