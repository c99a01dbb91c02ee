"""
Flow session schema
"""
from typing import List, Optional

from pydantic import BaseModel


class FlowSession(BaseModel):
    """Secrets of one in-flight authorization attempt, stored server side only"""
    pkce_verifier: str
    csrf_token: str
    project_id: Optional[str] = None

    def __repr__(self) -> str:
        return f"FlowSession(project_id={self.project_id!r})"


class FlowRedirect(BaseModel):
    """Outcome of a flow step: where to send the user agent and which cookies to set"""
    location: str
    set_cookies: List[str] = []
