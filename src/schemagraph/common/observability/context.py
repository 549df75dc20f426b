from contextvars import ContextVar
from typing import Optional

crawl_id_var: ContextVar[Optional[str]] = ContextVar("crawl_id", default=None)
source_id_var: ContextVar[Optional[str]] = ContextVar("source_id", default=None)
