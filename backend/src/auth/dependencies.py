"""FastAPI dependencies for actor identification.

Authentication lives in front of this service; requests arrive with the
acting user's id in the X-Actor-Id header. The id is recorded on match
history, rules and jobs. Permissions are not enforced here.

Usage:
    @router.post("/decide")
    def decide(actor_id: str = Depends(get_actor_id)):
        ...
"""

from typing import Optional

from fastapi import Header, HTTPException, status

ACTOR_HEADER = "X-Actor-Id"


def get_actor_id(x_actor_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER)) -> str:
    """Return the acting user's id from the request header.

    Raises:
        HTTPException 401: Header missing or blank
    """
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ACTOR_HEADER} header",
        )
    return actor_id

